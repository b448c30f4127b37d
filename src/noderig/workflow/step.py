# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/noderig/workflow/step.py
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional, Tuple

from ..errors import ErrorKind, ProvisionError, WorkflowBuildError, wrap
from ..observers import notify
from . import keys
from .context import ExecutionContext
from .report import Action, Report, Status, failure, skipped, success
from .state import Phase, StateBag, StepState

log = logging.getLogger("noderig")


class Step(ABC):
    """
    Atomic unit of provisioning work.

    Subclasses implement ``_execute`` and, when they own something they can
    undo, ``_rollback``. The public ``execute``/``rollback`` wrappers enforce
    the lifecycle:

        NOT_STARTED -> EXECUTING -> COMPLETED | FAILED -> ROLLED_BACK

    Rolling back a step that never ran (or was already rolled back) is a
    no-op that reports SKIPPED.
    """

    # stage tag for exceptions escaping _execute untagged
    error_kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(self, step_id: str):
        self.id = step_id
        self.state = StepState.NOT_STARTED
        self.bag = StateBag()
        self._notifier: Optional[notify.Notifier] = None

    @property
    def notifier(self) -> notify.Notifier:
        """The sink of the enclosing run, or the process default."""
        return self._notifier or notify.get()

    def inherit_notifier(self, notifier: notify.Notifier) -> None:
        if self._notifier is None:
            self._notifier = notifier

    # ------------------------- overridables -------------------------

    def prepare(self, ctx: ExecutionContext) -> ExecutionContext:
        return ctx

    @abstractmethod
    def _execute(self, ctx: ExecutionContext) -> Report:
        ...

    def _rollback(self, ctx: ExecutionContext) -> Report:
        return self.skip(action=Action.ROLLBACK, detail="nothing to roll back")

    def on_failure(self, ctx: ExecutionContext, report: Report) -> None:
        pass

    def on_completion(self, ctx: ExecutionContext, report: Report) -> None:
        pass

    # ------------------------- lifecycle -------------------------

    def reset(self) -> None:
        """Forget the previous run: state and ownership flags."""
        self.bag.clear()
        self.state = StepState.NOT_STARTED

    def execute(self, ctx: ExecutionContext) -> Report:
        self.reset()
        self.state = StepState.EXECUTING
        try:
            report = self._execute(ctx)
        except Exception as e:
            err = wrap(e, self.error_kind, f"step {self.id} failed")
            report = self.fail(err, metadata=self.flags())
        self.state = StepState.FAILED if report.failed else StepState.COMPLETED
        return report

    def rollback(self, ctx: ExecutionContext) -> Report:
        if self.state in (StepState.NOT_STARTED, StepState.EXECUTING):
            return self.skip(action=Action.ROLLBACK, detail=f"step was {self.state.value}")
        if self.state is StepState.ROLLED_BACK:
            return self.skip(action=Action.ROLLBACK, detail="already rolled back")

        try:
            report = self._rollback(ctx)
        except Exception as e:
            err = wrap(e, ErrorKind.INTERNAL, f"rollback of {self.id} failed")
            report = self.fail(err, action=Action.ROLLBACK)
        # a failed rollback is never attempted again
        self.state = StepState.ROLLED_BACK
        return report

    # ------------------------- report helpers -------------------------

    def flags(self, **extra: str) -> dict[str, str]:
        """Report metadata for every phase this run completed so far."""
        meta = {p.key: keys.TRUE for p in self.bag.phases()}
        meta.update(extra)
        return meta

    def mark(self, phase: Phase) -> None:
        self.bag.mark(phase)

    def succeed(self, action: Action = Action.EXECUTE, **kw: Any) -> Report:
        return success(self.id, action, **kw)

    def skip(self, action: Action = Action.EXECUTE, **kw: Any) -> Report:
        return skipped(self.id, action, **kw)

    def fail(self, error: ProvisionError, action: Action = Action.EXECUTE, **kw: Any) -> Report:
        return failure(self.id, error, action, **kw)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(id={self.id!r}, state={self.state.value})"


ExecuteFn = Callable[["FuncStep", ExecutionContext], Optional[Report]]
RollbackFn = Callable[["FuncStep", ExecutionContext], Optional[Report]]
PrepareFn = Callable[[ExecutionContext], ExecutionContext]
HookFn = Callable[[ExecutionContext, Report], None]


class FuncStep(Step):
    """Step assembled from plain callables by StepBuilder."""

    def __init__(
        self,
        step_id: str,
        execute_fn: ExecuteFn,
        rollback_fn: Optional[RollbackFn] = None,
        prepare_fn: Optional[PrepareFn] = None,
        on_failure_fn: Optional[HookFn] = None,
        on_completion_fn: Optional[HookFn] = None,
        error_kind: ErrorKind = ErrorKind.INTERNAL,
    ):
        super().__init__(step_id)
        self._execute_fn = execute_fn
        self._rollback_fn = rollback_fn
        self._prepare_fn = prepare_fn
        self._on_failure_fn = on_failure_fn
        self._on_completion_fn = on_completion_fn
        self.error_kind = error_kind

    def prepare(self, ctx: ExecutionContext) -> ExecutionContext:
        if self._prepare_fn is None:
            return ctx
        return self._prepare_fn(ctx)

    def _execute(self, ctx: ExecutionContext) -> Report:
        report = self._execute_fn(self, ctx)
        if report is None:
            return self.succeed(metadata=self.flags())
        return report

    def _rollback(self, ctx: ExecutionContext) -> Report:
        if self._rollback_fn is None:
            return super()._rollback(ctx)
        report = self._rollback_fn(self, ctx)
        if report is None:
            return self.succeed(action=Action.ROLLBACK)
        return report

    def on_failure(self, ctx: ExecutionContext, report: Report) -> None:
        if self._on_failure_fn:
            self._on_failure_fn(ctx, report)

    def on_completion(self, ctx: ExecutionContext, report: Report) -> None:
        if self._on_completion_fn:
            self._on_completion_fn(ctx, report)


class StepBuilder:
    """
    Fluent construction of a FuncStep.

        step = (
            StepBuilder("create-namespace")
            .on_execute(lambda s, ctx: ...)
            .on_rollback(lambda s, ctx: ...)
            .build()
        )
    """

    def __init__(self, step_id: str):
        self._id = step_id
        self._execute: Optional[ExecuteFn] = None
        self._rollback: Optional[RollbackFn] = None
        self._prepare: Optional[PrepareFn] = None
        self._on_failure: Optional[HookFn] = None
        self._on_completion: Optional[HookFn] = None
        self._kind = ErrorKind.INTERNAL

    @property
    def id(self) -> str:
        return self._id

    def on_execute(self, fn: ExecuteFn) -> "StepBuilder":
        self._execute = fn
        return self

    def on_rollback(self, fn: RollbackFn) -> "StepBuilder":
        self._rollback = fn
        return self

    def on_prepare(self, fn: PrepareFn) -> "StepBuilder":
        self._prepare = fn
        return self

    def on_failure(self, fn: HookFn) -> "StepBuilder":
        self._on_failure = fn
        return self

    def on_completion(self, fn: HookFn) -> "StepBuilder":
        self._on_completion = fn
        return self

    def error_kind(self, kind: ErrorKind) -> "StepBuilder":
        self._kind = kind
        return self

    def build(self) -> FuncStep:
        if not self._id or not self._id.strip():
            raise WorkflowBuildError("step id must not be empty")
        if self._execute is None:
            raise WorkflowBuildError(f"step {self._id!r} has no execute handler")
        return FuncStep(
            self._id,
            self._execute,
            rollback_fn=self._rollback,
            prepare_fn=self._prepare,
            on_failure_fn=self._on_failure,
            on_completion_fn=self._on_completion,
            error_kind=self._kind,
        )


def _safe_hook(step: Step, name: str, ctx: ExecutionContext, report: Report) -> None:
    try:
        getattr(step, name)(ctx, report)
    except Exception as e:
        log.warning("[%s] %s hook raised %s; ignoring", step.id, name, e)


def run_step(
    step: Step,
    ctx: ExecutionContext,
    notifier: Optional["notify.Notifier"] = None,
) -> Tuple[Report, ExecutionContext]:
    """
    prepare -> start event -> execute -> failure/completion hooks.

    Returns the report and the prepared context, which is the context the
    step must later be rolled back with.
    """
    notifier = notifier or notify.get()
    try:
        step_ctx = step.prepare(ctx)
    except Exception as e:
        err = wrap(e, ErrorKind.INTERNAL, f"prepare of {step.id} failed")
        # prepare failed before anything ran: nothing of an earlier run may be undone
        step.reset()
        report = step.fail(err)
        notifier.step_failure(step.id, report)
        _safe_hook(step, "on_failure", ctx, report)
        return report, ctx

    notifier.step_start(step.id)
    report = step.execute(step_ctx)
    if report.status is Status.FAILED:
        notifier.step_failure(step.id, report)
        _safe_hook(step, "on_failure", step_ctx, report)
    else:
        notifier.step_completion(step.id, report)
        _safe_hook(step, "on_completion", step_ctx, report)
    return report, step_ctx
