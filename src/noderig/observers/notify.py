# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/noderig/observers/notify.py
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict, Optional

from .dispatcher import EventBus
from .events import (
    new_ctx,
    stamp,
    StepStarted,
    StepFailed,
    StepCompleted,
    RollbackStarted,
    RollbackResult,
    WorkflowSummary,
)

if TYPE_CHECKING:
    from ..workflow.report import Report

log = logging.getLogger("noderig")


class Notifier:
    """
    Sink for step lifecycle notifications.

    Logs every notification and forwards it as an event to the bus.
    Nothing here may raise into the caller: notification is observational.
    """

    def __init__(self, bus: Optional[EventBus] = None, run_ctx: Optional[Dict[str, Any]] = None):
        self.bus = bus or EventBus()
        self.run_ctx = run_ctx or new_ctx(env="local", context=None)

    @property
    def run_id(self) -> str:
        return self.run_ctx["run_id"]

    def _emit(self, event_cls, **fields: Any) -> None:
        try:
            self.bus.emit(event_cls(**fields, **stamp(self.run_ctx)))
        except Exception as e:
            log.debug("dropping %s notification: %s", event_cls.__name__, e)

    # ------------------------- step lifecycle -------------------------

    def step_start(self, step_id: str) -> None:
        log.info("▶ %s", step_id)
        self._emit(StepStarted, step_id=step_id)

    def step_failure(self, step_id: str, report: "Report") -> None:
        err = report.error
        kind = err.kind.value if err is not None else "unknown"
        log.error("✖ %s failed [%s]: %s", step_id, kind, err)
        if err is not None and err.resolution:
            log.error("  resolution: %s", err.resolution)
        self._emit(
            StepFailed,
            step_id=step_id,
            error_kind=kind,
            error=str(err),
            metadata=dict(report.metadata),
        )

    def step_completion(self, step_id: str, report: "Report") -> None:
        log.info("✔ %s %s", step_id, report.status.value)
        log.debug("  metadata: %s", dict(report.metadata))
        self._emit(
            StepCompleted,
            step_id=step_id,
            status=report.status.value,
            metadata=dict(report.metadata),
        )

    # ------------------------- rollback -------------------------

    def rollback_start(self, step_id: str) -> None:
        log.warning("↺ rolling back %s", step_id)
        self._emit(RollbackStarted, step_id=step_id)

    def rollback_result(self, step_id: str, report: "Report") -> None:
        if report.failed:
            log.error("↺ rollback of %s failed: %s", step_id, report.error)
        else:
            log.info("↺ rollback of %s %s", step_id, report.status.value)
        self._emit(
            RollbackResult,
            step_id=step_id,
            status=report.status.value,
            error=str(report.error) if report.error else None,
        )

    # ------------------------- summary -------------------------

    def workflow_summary(self, workflow_id: str, report: "Report") -> None:
        children = report.step_reports
        succeeded = sum(1 for r in children if r.status.value == "success")
        skipped = sum(1 for r in children if r.status.value == "skipped")
        failed = sum(1 for r in children if r.status.value == "failed")
        rolled_back = sum(1 for r in children if r.rollback is not None and r.rollback.status.value == "success")
        log.info(
            "%s %s: ok=%d skipped=%d failed=%d rolled_back=%d",
            workflow_id, report.status.value.upper(), succeeded, skipped, failed, rolled_back,
        )
        self._emit(
            WorkflowSummary,
            workflow_id=workflow_id,
            status=report.status.value,
            succeeded=succeeded,
            skipped=skipped,
            failed=failed,
            rolled_back=rolled_back,
            error=str(report.error) if report.error else None,
        )


# A process-wide default sink. Swap it with set_default() (tests, runner).
_DEFAULT: Notifier = Notifier()


def get() -> Notifier:
    return _DEFAULT


def set_default(notifier: Notifier) -> Notifier:
    """Install ``notifier`` as the default; returns the previous one."""
    global _DEFAULT
    previous = _DEFAULT
    _DEFAULT = notifier
    return previous
