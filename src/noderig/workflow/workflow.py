# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/noderig/workflow/workflow.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Union

from ..errors import ProvisionError, WorkflowBuildError
from ..observers import notify
from .context import ExecutionContext
from .report import Action, Report, Status
from .step import Step, StepBuilder, run_step

log = logging.getLogger("noderig")


@dataclass
class _Executed:
    step: Step
    ctx: ExecutionContext
    report: Report


class Workflow(Step):
    """
    Ordered, fail-fast composition of steps.

    Steps run in declaration order. When one fails, the failing step and
    every step before it are rolled back in reverse order; each rollback
    report is attached to the matching step report. The workflow's error is
    always the triggering step's error, untouched.

    A Workflow is a Step, so workflows nest.
    """

    def __init__(self, workflow_id: str, steps: Sequence[Step], notifier: Optional[notify.Notifier] = None):
        super().__init__(workflow_id)
        self.steps: List[Step] = list(steps)
        self._notifier = notifier
        self._executed: List[_Executed] = []

    def inherit_notifier(self, notifier: notify.Notifier) -> None:
        """Use `notifier` here and in every child that has none of its own."""
        super().inherit_notifier(notifier)
        for step in self.steps:
            step.inherit_notifier(notifier)

    def _execute(self, ctx: ExecutionContext) -> Report:
        self._executed = []
        error: Optional[ProvisionError] = None
        failed_step: Optional[str] = None

        for step in self.steps:
            try:
                ctx.raise_if_cancelled()
            except ProvisionError as e:
                error, failed_step = e, step.id
                log.warning("[%s] cancelled before %s", self.id, step.id)
                break

            report, step_ctx = run_step(step, ctx, self.notifier)
            self._executed.append(_Executed(step, step_ctx, report))
            if report.failed:
                error, failed_step = report.error, step.id
                break

        if error is None:
            return self.succeed(step_reports=[e.report for e in self._executed])

        reports = self._cascade()
        return self.fail(
            error,
            detail=f"step {failed_step} failed; rolled back {len(reports)} step(s)",
            step_reports=reports,
        )

    def _cascade(self) -> List[Report]:
        """Roll back every executed step, last first, never stopping early."""
        reports = [e.report for e in self._executed]
        for i in range(len(self._executed) - 1, -1, -1):
            entry = self._executed[i]
            self.notifier.rollback_start(entry.step.id)
            rb = entry.step.rollback(entry.ctx.detached())
            self.notifier.rollback_result(entry.step.id, rb)
            reports[i] = reports[i].with_rollback(rb)
        return reports

    def _rollback(self, ctx: ExecutionContext) -> Report:
        # Called by an enclosing workflow. Children already rolled back by our
        # own cascade report SKIPPED, so nothing is undone twice.
        child_reports: List[Report] = []
        for entry in reversed(self._executed):
            self.notifier.rollback_start(entry.step.id)
            rb = entry.step.rollback(entry.ctx.detached())
            self.notifier.rollback_result(entry.step.id, rb)
            child_reports.append(rb)
        child_reports.reverse()
        return aggregate_rollback(self.id, child_reports)


def aggregate_rollback(step_id: str, reports: Sequence[Report]) -> Report:
    """FAILED if any child failed, SKIPPED if all were skipped, else SUCCESS."""
    first_error = next((r.error for r in reports if r.failed), None)
    if first_error is not None:
        return Report(step_id, Action.ROLLBACK, Status.FAILED, error=first_error, step_reports=tuple(reports))
    if all(r.skipped for r in reports):
        return Report(step_id, Action.ROLLBACK, Status.SKIPPED, step_reports=tuple(reports))
    return Report(step_id, Action.ROLLBACK, Status.SUCCESS, step_reports=tuple(reports))


StepLike = Union[Step, StepBuilder, "WorkflowBuilder"]


class WorkflowBuilder:
    """
    Collects steps (or builders of steps) and produces a validated Workflow.

        wf = (
            WorkflowBuilder("setup-cilium")
            .add(install_step(...))
            .add(configure_step(...))
            .build()
        )
    """

    def __init__(self, workflow_id: str):
        self._id = workflow_id
        self._steps: List[StepLike] = []
        self._notifier: Optional[notify.Notifier] = None

    @property
    def id(self) -> str:
        return self._id

    def add(self, step: StepLike) -> "WorkflowBuilder":
        self._steps.append(step)
        return self

    def add_all(self, steps: Sequence[StepLike]) -> "WorkflowBuilder":
        self._steps.extend(steps)
        return self

    def notifier(self, notifier: notify.Notifier) -> "WorkflowBuilder":
        self._notifier = notifier
        return self

    def __len__(self) -> int:
        return len(self._steps)

    def build(self) -> Workflow:
        if not self._id or not self._id.strip():
            raise WorkflowBuildError("workflow id must not be empty")
        if not self._steps:
            raise WorkflowBuildError(f"workflow {self._id!r} has no steps")

        built: List[Step] = []
        seen: set[str] = set()
        for s in self._steps:
            step = s.build() if isinstance(s, (StepBuilder, WorkflowBuilder)) else s
            if step.id in seen:
                raise WorkflowBuildError(f"workflow {self._id!r}: duplicate step id {step.id!r}")
            seen.add(step.id)
            built.append(step)

        wf = Workflow(self._id, built)
        if self._notifier is not None:
            wf.inherit_notifier(self._notifier)
        return wf
