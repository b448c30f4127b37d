# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/noderig/provision/runner.py
from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

from ..config.models import NodeConfig
from ..logging.log import init_logging
from ..observers import notify
from ..observers.console import ConsoleObserver
from ..observers.dispatcher import EventBus
from ..observers.events import new_ctx
from ..observers.jsonfile import JsonFileObserver
from ..observers.logger import LoggerObserver
from ..workflow.context import ExecutionContext
from ..workflow.report import Report
from ..workflow.step import run_step
from ..workflow.workflow import WorkflowBuilder

log = logging.getLogger("noderig")


def default_observers(
    logger: logging.Logger,
    events_path: Optional[Path] = None,
    console: bool = False,
) -> List:
    observers: List = [LoggerObserver(logger)]
    if console:
        observers.append(ConsoleObserver())
    if events_path is not None:
        observers.append(JsonFileObserver(events_path))
    return observers


def execute_workflow(
    builder: WorkflowBuilder,
    *,
    ctx: Optional[ExecutionContext] = None,
    observers: Optional[List] = None,
    node_name: str = "local",
    kube_context: Optional[str] = None,
    run_id: Optional[str] = None,
) -> Report:
    """
    Build, run and summarize a workflow. Emits observer events if observers are provided.
    WorkflowBuildError propagates: nothing has run yet.
    """
    ctx = ctx or ExecutionContext()
    notifier = notify.Notifier(
        EventBus(observers or []),
        new_ctx(env=node_name, context=kube_context, run_id=run_id),
    )
    workflow = builder.notifier(notifier).build()

    log.debug("running %s with %d step(s)", workflow.id, len(workflow.steps))
    report, _ = run_step(workflow, ctx, notifier)
    notifier.workflow_summary(workflow.id, report)
    log.debug("report:\n%s", report.render())
    return report


def provision(
    cfg: NodeConfig,
    builder: WorkflowBuilder,
    *,
    ctx: Optional[ExecutionContext] = None,
    verbose: bool = False,
    console_events: bool = False,
) -> Report:
    """
    Run ``builder`` for the node in ``cfg`` with logging initialised under
    ``paths.log_dir`` and events appended to ``<log_dir>/events.jsonl``.
    """
    log_dir = Path(cfg.paths.log_dir) if cfg.paths.log_dir else None
    logger, run_id, log_path = init_logging(base_dir=log_dir, verbose=verbose)
    observers = default_observers(logger, log_path.parent / "events.jsonl", console=console_events)

    report = execute_workflow(
        builder,
        ctx=ctx,
        observers=observers,
        node_name=cfg.node_name,
        kube_context=cfg.kube_context,
        run_id=run_id,
    )
    logger.info("full log: %s", log_path)
    return report
