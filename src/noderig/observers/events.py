# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/noderig/observers/events.py

from __future__ import annotations
from dataclasses import dataclass, asdict, field
from typing import Dict, Any, Optional
from datetime import datetime, timezone
import uuid


# ---------------------------------------------------------------------
# Base context and helper
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class BaseEvent:
    ts: str           # ISO timestamp
    run_id: str       # correlates all events of one provisioning run
    env: str          # node name
    context: Optional[str]  # kube-context

    def dict(self) -> Dict[str, Any]:
        return asdict(self)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")


def new_ctx(env: str, context: Optional[str], run_id: Optional[str] = None) -> Dict[str, Any]:
    return {
        "ts": _now(),
        "run_id": run_id or str(uuid.uuid4()),
        "env": env,
        "context": context,
    }


def stamp(run_ctx: Dict[str, Any]) -> Dict[str, Any]:
    """Same run, fresh timestamp."""
    return {**run_ctx, "ts": _now()}


# ---------------------------------------------------------------------
# Step lifecycle
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class StepStarted(BaseEvent):
    step_id: str

@dataclass(frozen=True)
class StepFailed(BaseEvent):
    step_id: str
    error_kind: str
    error: str
    metadata: Dict[str, str] = field(default_factory=dict)

@dataclass(frozen=True)
class StepCompleted(BaseEvent):
    step_id: str
    status: str       # "success" | "skipped"
    metadata: Dict[str, str] = field(default_factory=dict)


# ---------------------------------------------------------------------
# Rollback & Summary
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class RollbackStarted(BaseEvent):
    step_id: str

@dataclass(frozen=True)
class RollbackResult(BaseEvent):
    step_id: str
    status: str       # "success" | "skipped" | "failed"
    error: Optional[str] = None

@dataclass(frozen=True)
class WorkflowSummary(BaseEvent):
    workflow_id: str
    status: str
    succeeded: int
    skipped: int
    failed: int
    rolled_back: int
    error: Optional[str] = None
