# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/noderig/workflow/state.py
from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Iterator, Optional

from . import keys


class StepState(str, Enum):
    NOT_STARTED = "not_started"
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"
    ROLLED_BACK = "rolled_back"


class Phase(str, Enum):
    """Sub-actions whose completion makes this run responsible for undoing them."""

    DOWNLOADED = keys.DOWNLOADED_BY_THIS_STEP
    EXTRACTED = keys.EXTRACTED_BY_THIS_STEP
    INSTALLED = keys.INSTALLED_BY_THIS_STEP
    CLEANED_UP = keys.CLEANED_UP_BY_THIS_STEP
    CONFIGURED = keys.CONFIGURED_BY_THIS_STEP
    UPGRADED = keys.UPGRADED_BY_THIS_STEP
    MIGRATED = keys.MIGRATED

    @property
    def key(self) -> str:
        return self.value


class StateBag:
    """
    Per-step memory for a single execution.

    Phase flags gate rollback; anything else (revisions, nested workflows)
    goes through ``set``/``get``. Never persisted.
    """

    def __init__(self) -> None:
        self._phases: set[Phase] = set()
        self._values: Dict[str, Any] = {}

    def mark(self, phase: Phase) -> None:
        self._phases.add(phase)

    def done(self, phase: Phase) -> bool:
        return phase in self._phases

    def phases(self) -> Iterator[Phase]:
        return iter(sorted(self._phases, key=lambda p: list(Phase).index(p)))

    def set(self, key: str, value: Any) -> None:
        self._values[key] = value

    def get(self, key: str, default: Optional[Any] = None) -> Any:
        return self._values.get(key, default)

    def bool(self, key: str) -> bool:
        return bool(self._values.get(key, False))

    def clear(self) -> None:
        self._phases.clear()
        self._values.clear()

    def __len__(self) -> int:
        return len(self._phases) + len(self._values)

    def __repr__(self) -> str:
        return f"StateBag(phases={[p.name for p in self.phases()]}, values={self._values!r})"
