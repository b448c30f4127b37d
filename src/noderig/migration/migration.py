# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/noderig/migration/migration.py
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..errors import ErrorKind, wrap
from ..workflow.context import ExecutionContext
from ..workflow.step import StepBuilder
from ..workflow.workflow import WorkflowBuilder

log = logging.getLogger("noderig")


@dataclass
class MigrationContext:
    """What a migration needs to decide and act; shared by all migrations of one upgrade."""

    component: str
    installed_version: Optional[str] = None
    target_version: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)

    def get_string(self, key: str) -> str:
        v = self.data.get(key)
        return v if isinstance(v, str) else ""

    def set(self, key: str, value: Any) -> None:
        self.data[key] = value


class Migration(ABC):
    """
    A one-off change required when upgrading across a breaking boundary.
    ``rollback`` must undo ``execute`` and tolerate a partial execute.
    """

    id: str
    description: str

    @abstractmethod
    def applies(self, mctx: MigrationContext) -> bool: ...

    @abstractmethod
    def execute(self, ctx: ExecutionContext, mctx: MigrationContext) -> None: ...

    def rollback(self, ctx: ExecutionContext, mctx: MigrationContext) -> None:
        return None


class MigrationManager:
    """Ordered registry of migrations per component."""

    def __init__(self) -> None:
        self._registry: Dict[str, List[Migration]] = {}

    def register(self, component: str, migration: Migration) -> None:
        """Register in chronological order; execution follows registration order."""
        self._registry.setdefault(component, []).append(migration)

    def registered(self, component: str) -> List[Migration]:
        return list(self._registry.get(component, []))

    def applicable(self, mctx: MigrationContext) -> List[Migration]:
        found = []
        for m in self._registry.get(mctx.component, []):
            try:
                applies = m.applies(mctx)
            except Exception as e:
                raise wrap(e, ErrorKind.ILLEGAL_STATE, f"failed to check if migration {m.id!r} applies") from e
            if applies:
                found.append(m)
        return found

    def clear(self) -> None:
        self._registry.clear()


def _migration_step(migration: Migration, mctx: MigrationContext) -> StepBuilder:
    def _execute(step, ctx):
        log.info("[migration] %s: %s", migration.id, migration.description)
        migration.execute(ctx, mctx)
        return step.succeed(metadata={"migration": migration.id})

    def _rollback(step, ctx):
        log.warning("[migration] rolling back %s", migration.id)
        migration.rollback(ctx, mctx)
        return None

    return (
        StepBuilder(f"migration-{migration.id}")
        .on_execute(_execute)
        .on_rollback(_rollback)
        .error_kind(ErrorKind.ILLEGAL_STATE)
    )


def to_workflow(migrations: List[Migration], mctx: MigrationContext) -> WorkflowBuilder:
    """One step per migration, in order; the workflow rolls itself back on failure."""
    wb = WorkflowBuilder(f"{mctx.component}-migrations")
    for m in migrations:
        wb.add(_migration_step(m, mctx))
    return wb
