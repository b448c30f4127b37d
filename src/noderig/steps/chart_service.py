# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/noderig/steps/chart_service.py
from __future__ import annotations

import logging
from typing import Optional

from ..config.models import ChartServiceConfig
from ..errors import ErrorKind, illegal_state_error
from ..migration.migration import MigrationContext, MigrationManager, to_workflow
from ..migration.version import parse_version
from ..resources.manager import ResourceManager
from ..resources.migrations import VALUES_FILE, register_storage_migrations
from ..workflow import keys
from ..workflow.context import ExecutionContext
from ..workflow.provider import Provider
from ..workflow.report import Action, Report
from ..workflow.state import Phase
from ..workflow.step import Step, StepBuilder, run_step
from ..workflow.workflow import Workflow, WorkflowBuilder

log = logging.getLogger("noderig")

Managers = Provider[ResourceManager]

MIGRATION_WORKFLOW = "migration_workflow"
PREVIOUS_REVISION = "previous_revision"


# ---------------------------------------------------------------------
# Setup: storage -> namespace -> PVs -> chart -> annotation -> readiness
# ---------------------------------------------------------------------
def setup_storage(managers: Managers) -> StepBuilder:
    # directories are never removed on rollback: they may hold data
    def _execute(step, ctx):
        managers.get().setup_storage(ctx)

    return StepBuilder("setup-storage").on_execute(_execute).error_kind(ErrorKind.ILLEGAL_STATE)


def create_namespace(managers: Managers) -> StepBuilder:
    def _execute(step, ctx):
        mgr = managers.get()
        if mgr.namespace_exists(ctx):
            return step.skip(metadata={keys.ALREADY_CONFIGURED: keys.TRUE})
        mgr.create_namespace(ctx)
        step.mark(Phase.CONFIGURED)

    def _rollback(step, ctx):
        if not step.bag.done(Phase.CONFIGURED):
            return step.skip(action=Action.ROLLBACK, detail="namespace not created by this step")
        managers.get().delete_namespace(ctx)

    return (
        StepBuilder("create-namespace")
        .on_execute(_execute)
        .on_rollback(_rollback)
        .error_kind(ErrorKind.ILLEGAL_STATE)
    )


def create_persistent_volumes(managers: Managers) -> StepBuilder:
    def _execute(step, ctx):
        mgr = managers.get()
        if mgr.persistent_volumes_exist(ctx):
            return step.skip(metadata={keys.ALREADY_CONFIGURED: keys.TRUE})
        mgr.create_persistent_volumes(ctx)
        step.mark(Phase.CONFIGURED)

    def _rollback(step, ctx):
        if not step.bag.done(Phase.CONFIGURED):
            return step.skip(action=Action.ROLLBACK, detail="volumes not created by this step")
        managers.get().delete_persistent_volumes(ctx)

    return (
        StepBuilder("create-persistent-volumes")
        .on_execute(_execute)
        .on_rollback(_rollback)
        .error_kind(ErrorKind.ILLEGAL_STATE)
    )


def install_chart(managers: Managers) -> StepBuilder:
    def _execute(step, ctx):
        mgr = managers.get()
        values_file = mgr.compute_values_file(ctx)
        if not mgr.install_chart(ctx, values_file):
            return step.skip(metadata={keys.ALREADY_INSTALLED: keys.TRUE})
        step.mark(Phase.INSTALLED)

    def _rollback(step, ctx):
        if not step.bag.done(Phase.INSTALLED):
            return step.skip(action=Action.ROLLBACK, detail="release not installed by this step")
        managers.get().uninstall_chart(ctx)

    return (
        StepBuilder("install-chart")
        .on_execute(_execute)
        .on_rollback(_rollback)
        .error_kind(ErrorKind.INSTALLATION)
    )


def annotate_service(managers: Managers) -> StepBuilder:
    def _execute(step, ctx):
        managers.get().annotate_service(ctx)

    return StepBuilder("annotate-service").on_execute(_execute).error_kind(ErrorKind.CONFIGURATION)


def wait_for_ready(managers: Managers) -> StepBuilder:
    def _execute(step, ctx):
        managers.get().wait_for_pod_ready(ctx)
        return step.succeed(metadata={keys.IS_READY: keys.TRUE})

    return StepBuilder("wait-for-ready").on_execute(_execute).error_kind(ErrorKind.ILLEGAL_STATE)


def setup_chart_service(service: ChartServiceConfig, managers: Managers) -> WorkflowBuilder:
    return (
        WorkflowBuilder(f"setup-{service.name}")
        .add(setup_storage(managers))
        .add(create_namespace(managers))
        .add(create_persistent_volumes(managers))
        .add(install_chart(managers))
        .add(annotate_service(managers))
        .add(wait_for_ready(managers))
    )


# ---------------------------------------------------------------------
# Upgrade
# ---------------------------------------------------------------------
class UpgradeChartStep(Step):
    """
    Upgrades a release, through a nested migration workflow when the upgrade
    crosses a migration boundary.

    The migrate-or-upgrade decision is taken once per execute. A failed
    migration workflow has already rolled itself back; this step reports its
    error and leaves nothing for its own rollback to do.
    """

    error_kind = ErrorKind.ILLEGAL_STATE

    def __init__(self, service: ChartServiceConfig, managers: Managers, migrations: MigrationManager):
        super().__init__("upgrade-chart")
        self.service = service
        self.managers = managers
        self.migrations = migrations

    def _execute(self, ctx: ExecutionContext) -> Report:
        mgr = self.managers.get()
        installed = mgr.installed_version(ctx)
        if installed is None:
            return self.fail(
                illegal_state_error(
                    f"{self.service.release} is not installed, cannot upgrade",
                    resolution=f"run the setup workflow for {self.service.name} first",
                )
            )

        values_file = mgr.compute_values_file(ctx)
        if self._up_to_date(ctx, mgr, installed):
            return self.skip(
                metadata={keys.ALREADY_CONFIGURED: keys.TRUE},
                detail=f"{self.service.release} already at {installed} with requested values",
            )

        mctx = MigrationContext(
            component=self.service.name,
            installed_version=installed,
            target_version=self.service.version,
            data={VALUES_FILE: values_file},
        )
        pending = self.migrations.applicable(mctx)
        if pending:
            return self._migrate(ctx, mctx, pending)

        self.bag.set(PREVIOUS_REVISION, mgr.release_revision(ctx))
        mgr.upgrade_chart(ctx, values_file)
        self.mark(Phase.UPGRADED)
        log.info("[%s] upgraded %s %s -> %s", self.id, self.service.release, installed, self.service.version)
        return self.succeed(metadata=self.flags())

    def _up_to_date(self, ctx: ExecutionContext, mgr: ResourceManager, installed: str) -> bool:
        """Same chart version, and with reuse_values off, the same release values."""
        if parse_version(installed, "installed version") != parse_version(self.service.version, "target version"):
            return False
        if self.service.reuse_values:
            return True
        return mgr.release_values(ctx) == mgr.requested_values(ctx)

    def _migrate(self, ctx: ExecutionContext, mctx: MigrationContext, pending) -> Report:
        log.info(
            "[%s] %d migration(s) required for %s -> %s",
            self.id, len(pending), mctx.installed_version, mctx.target_version,
        )
        workflow = to_workflow(pending, mctx).build()
        workflow.inherit_notifier(self.notifier)
        report, _ = run_step(workflow, ctx, self.notifier)
        if report.failed:
            return self.fail(report.error, metadata=self.flags(), step_reports=[report])

        self.bag.set(MIGRATION_WORKFLOW, workflow)
        self.mark(Phase.MIGRATED)
        self.mark(Phase.UPGRADED)
        return self.succeed(metadata=self.flags(), step_reports=[report])

    def _rollback(self, ctx: ExecutionContext) -> Report:
        if self.bag.done(Phase.MIGRATED):
            workflow: Workflow = self.bag.get(MIGRATION_WORKFLOW)
            rb = workflow.rollback(ctx)
            return Report(self.id, Action.ROLLBACK, rb.status, error=rb.error, step_reports=(rb,))

        if self.bag.done(Phase.UPGRADED):
            revision: Optional[int] = self.bag.get(PREVIOUS_REVISION)
            if not revision:
                return self.fail(
                    illegal_state_error(f"no previous revision recorded for {self.service.release}"),
                    action=Action.ROLLBACK,
                )
            self.managers.get().rollback_chart(ctx, revision)
            return self.succeed(action=Action.ROLLBACK, detail=f"rolled back to revision {revision}")

        return self.skip(action=Action.ROLLBACK, detail="release not upgraded by this step")


def upgrade_chart_service(
    service: ChartServiceConfig,
    managers: Managers,
    migrations: Optional[MigrationManager] = None,
) -> WorkflowBuilder:
    if migrations is None:
        migrations = register_storage_migrations(MigrationManager(), service, managers)
    return (
        WorkflowBuilder(f"upgrade-{service.name}")
        .add(UpgradeChartStep(service, managers, migrations))
        .add(wait_for_ready(managers))
    )
