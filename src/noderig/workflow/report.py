# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/noderig/workflow/report.py
from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple

from ..errors import ProvisionError


class Status(str, Enum):
    SUCCESS = "success"
    SKIPPED = "skipped"
    FAILED = "failed"


class Action(str, Enum):
    EXECUTE = "execute"
    ROLLBACK = "rollback"


@dataclass(frozen=True)
class Report:
    """
    Outcome of one execute or rollback attempt.

    FAILED if and only if ``error`` is set. A report is never mutated;
    ``with_rollback`` returns a copy carrying the rollback outcome.
    """

    step_id: str
    action: Action
    status: Status
    error: Optional[ProvisionError] = None
    detail: str = ""
    metadata: Mapping[str, str] = field(default_factory=dict)
    step_reports: Tuple["Report", ...] = ()
    rollback: Optional["Report"] = None

    def __post_init__(self) -> None:
        if (self.status is Status.FAILED) != (self.error is not None):
            raise ValueError(
                f"report for {self.step_id!r}: status {self.status.value} "
                f"inconsistent with error={self.error!r}"
            )
        object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata)))
        object.__setattr__(self, "step_reports", tuple(self.step_reports))

    # ------------------------- predicates -------------------------

    @property
    def ok(self) -> bool:
        return self.status is not Status.FAILED

    @property
    def failed(self) -> bool:
        return self.status is Status.FAILED

    @property
    def skipped(self) -> bool:
        return self.status is Status.SKIPPED

    def flag(self, key: str) -> bool:
        return self.metadata.get(key) == "true"

    # ------------------------- derived copies -------------------------

    def with_rollback(self, rollback: "Report") -> "Report":
        return replace(self, rollback=rollback)

    def child(self, step_id: str) -> Optional["Report"]:
        for r in self.step_reports:
            if r.step_id == step_id:
                return r
        return None

    def dict(self) -> Dict[str, Any]:
        return {
            "step_id": self.step_id,
            "action": self.action.value,
            "status": self.status.value,
            "error": str(self.error) if self.error else None,
            "error_kind": self.error.kind.value if self.error else None,
            "detail": self.detail,
            "metadata": dict(self.metadata),
            "step_reports": [r.dict() for r in self.step_reports],
            "rollback": self.rollback.dict() if self.rollback else None,
        }

    def render(self, indent: int = 0) -> str:
        """Human readable tree of this report and its children."""
        pad = "  " * indent
        line = f"{pad}{self.step_id}: {self.action.value} {self.status.value.upper()}"
        if self.error is not None:
            line += f" [{self.error.kind.value}] {self.error}"
        lines = [line]
        if self.rollback is not None:
            lines.append(f"{pad}  ↳ rollback {self.rollback.status.value.upper()}"
                         + (f" {self.rollback.error}" if self.rollback.error else ""))
        for r in self.step_reports:
            lines.append(r.render(indent + 1))
        return "\n".join(lines)


# ---------------------------------------------------------------------
# Constructors
# ---------------------------------------------------------------------
def success(step_id: str, action: Action = Action.EXECUTE, **kw: Any) -> Report:
    return Report(step_id=step_id, action=action, status=Status.SUCCESS, **kw)


def skipped(step_id: str, action: Action = Action.EXECUTE, **kw: Any) -> Report:
    return Report(step_id=step_id, action=action, status=Status.SKIPPED, **kw)


def failure(step_id: str, error: ProvisionError, action: Action = Action.EXECUTE, **kw: Any) -> Report:
    return Report(step_id=step_id, action=action, status=Status.FAILED, error=error, **kw)
