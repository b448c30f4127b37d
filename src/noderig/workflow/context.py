# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/noderig/workflow/context.py
from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Mapping, Optional

from ..errors import cancelled_error


@dataclass(frozen=True)
class ExecutionContext:
    """
    Threaded through every prepare/execute/rollback call.

    Derived contexts (``with_value``/``with_timeout``) share the parent's
    cancel token, so cancelling any of them cancels the whole run.
    """

    dry_run: bool = False
    deadline: Optional[float] = None          # time.monotonic() based
    values: Mapping[str, Any] = field(default_factory=dict)
    cancel_event: threading.Event = field(default_factory=threading.Event, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "values", MappingProxyType(dict(self.values)))

    # ------------------------- values -------------------------

    def with_value(self, key: str, value: Any) -> "ExecutionContext":
        merged = dict(self.values)
        merged[key] = value
        return replace(self, values=merged)

    def value(self, key: str, default: Optional[Any] = None) -> Any:
        return self.values.get(key, default)

    # ------------------------- cancellation -------------------------

    def with_timeout(self, seconds: float) -> "ExecutionContext":
        deadline = time.monotonic() + seconds
        if self.deadline is not None:
            deadline = min(deadline, self.deadline)
        return replace(self, deadline=deadline)

    def cancel(self) -> None:
        self.cancel_event.set()

    @property
    def cancelled(self) -> bool:
        if self.cancel_event.is_set():
            return True
        return self.deadline is not None and time.monotonic() >= self.deadline

    def remaining(self, default: Optional[float] = None) -> Optional[float]:
        """Seconds left before the deadline, or ``default`` when there is none."""
        if self.deadline is None:
            return default
        left = max(0.0, self.deadline - time.monotonic())
        return left if default is None else min(left, default)

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise cancelled_error()

    def detached(self) -> "ExecutionContext":
        """Same values, fresh cancel token, no deadline. Used for rollback."""
        return replace(self, deadline=None, cancel_event=threading.Event())
