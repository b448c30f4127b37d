# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/noderig/resources/migrations.py
from __future__ import annotations

import logging

from ..config.models import ChartServiceConfig, StorageVolume
from ..migration.migration import MigrationContext, MigrationManager
from ..migration.version import VersionMigration, parse_version
from ..workflow.context import ExecutionContext
from ..workflow.provider import Provider
from .manager import ResourceManager

log = logging.getLogger("noderig")

VALUES_FILE = "values_file"


class StorageVolumeMigration(VersionMigration):
    """
    A chart release started requiring a new volume. Creates its directory and,
    when absent, its PV/PVC, then upgrades the chart. Rollback restores the
    previous chart revision and removes only a PV/PVC this migration created;
    the directory stays.
    """

    def __init__(self, volume: StorageVolume, managers: Provider[ResourceManager]):
        super().__init__(
            f"storage-{volume.name}-{volume.since_version}",
            f"Add {volume.name} storage PV/PVC required from {volume.since_version}",
            volume.since_version or "0",
        )
        self.volume = volume
        self.managers = managers

    def _key(self, name: str) -> str:
        return f"{self.id}.{name}"

    def execute(self, ctx: ExecutionContext, mctx: MigrationContext) -> None:
        mgr = self.managers.get()
        mctx.set(self._key("revision"), mgr.release_revision(ctx))

        mgr.setup_storage(ctx, [self.volume])
        if mgr.persistent_volumes_exist(ctx, [self.volume]):
            log.info("[migration] %s: volume %s already present", self.id, self.volume.name)
        else:
            mgr.create_persistent_volumes(ctx, [self.volume])
            mctx.set(self._key("volumes_created"), True)

        mgr.upgrade_chart(ctx, mctx.get(VALUES_FILE))
        mctx.set(self._key("upgraded"), True)
        log.info("[migration] %s completed", self.id)

    def rollback(self, ctx: ExecutionContext, mctx: MigrationContext) -> None:
        mgr = self.managers.get()
        revision = mctx.get(self._key("revision"))
        if mctx.get(self._key("upgraded")) and revision:
            mgr.rollback_chart(ctx, revision)
        if mctx.get(self._key("volumes_created")):
            mgr.delete_persistent_volumes(ctx, [self.volume])


def register_storage_migrations(
    registry: MigrationManager,
    service: ChartServiceConfig,
    managers: Provider[ResourceManager],
) -> MigrationManager:
    """One migration per volume that declares ``since_version``, oldest boundary first."""
    versioned = [v for v in service.storage if v.since_version]
    versioned.sort(key=lambda v: parse_version(v.since_version, f"since_version of {v.name}"))
    for vol in versioned:
        registry.register(service.name, StorageVolumeMigration(vol, managers))
    return registry
