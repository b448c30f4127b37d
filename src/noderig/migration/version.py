# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/noderig/migration/version.py
from __future__ import annotations

from packaging.version import InvalidVersion, Version

from ..errors import illegal_state_error
from .migration import Migration, MigrationContext


def parse_version(raw: str, what: str) -> Version:
    try:
        return Version(raw.lstrip("v"))
    except InvalidVersion as e:
        raise illegal_state_error(f"cannot parse {what} {raw!r}", e) from e


class VersionMigration(Migration):
    """
    Applies when an upgrade crosses ``min_version``:
    installed < min_version <= target.
    """

    def __init__(self, migration_id: str, description: str, min_version: str):
        self.id = migration_id
        self.description = description
        self.min_version = min_version

    def applies(self, mctx: MigrationContext) -> bool:
        if not mctx.installed_version or not mctx.target_version:
            return False
        installed = parse_version(mctx.installed_version, "installed version")
        target = parse_version(mctx.target_version, "target version")
        boundary = parse_version(self.min_version, f"min version of {self.id}")
        return installed < boundary <= target
