# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/noderig/steps/software.py
from __future__ import annotations

import logging
from typing import Callable, List, Tuple

from ..errors import ErrorKind, wrap
from ..software.installable import Installable
from ..workflow import keys
from ..workflow.context import ExecutionContext
from ..workflow.provider import Provider
from ..workflow.report import Action, Report
from ..workflow.state import Phase
from ..workflow.step import Step
from ..workflow.workflow import WorkflowBuilder

log = logging.getLogger("noderig")


class InstallStep(Step):
    """
    download -> extract -> install -> cleanup, skipped when already installed.

    Only ``InstalledByThisStep`` gates rollback: an artifact downloaded or
    extracted by a run that never installed is left for the next run to reuse.
    """

    def __init__(self, step_id: str, installer: Provider[Installable]):
        super().__init__(step_id)
        self.installer = installer

    def _stages(self, sw: Installable) -> List[Tuple[Phase, ErrorKind, Callable[[ExecutionContext], None]]]:
        return [
            (Phase.DOWNLOADED, ErrorKind.DOWNLOAD, sw.download),
            (Phase.EXTRACTED, ErrorKind.EXTRACTION, sw.extract),
            (Phase.INSTALLED, ErrorKind.INSTALLATION, sw.install),
            (Phase.CLEANED_UP, ErrorKind.CLEANUP, sw.cleanup),
        ]

    def _execute(self, ctx: ExecutionContext) -> Report:
        sw = self.installer.get()
        try:
            installed = sw.is_installed(ctx)
        except Exception as e:
            return self.fail(wrap(e, ErrorKind.INSTALLATION, f"could not tell whether {sw.name} is installed"))
        if installed:
            return self.skip(metadata={keys.ALREADY_INSTALLED: keys.TRUE}, detail=f"{sw.name} already installed")

        for phase, kind, action in self._stages(sw):
            try:
                action(ctx)
            except Exception as e:
                err = wrap(e, kind, f"{kind.value} of {sw.name} failed")
                return self.fail(err, metadata=self.flags())
            self.mark(phase)
            log.debug("[%s] %s", self.id, phase.key)

        return self.succeed(metadata=self.flags())

    def _rollback(self, ctx: ExecutionContext) -> Report:
        if not self.bag.done(Phase.INSTALLED):
            return self.skip(action=Action.ROLLBACK, detail="nothing installed by this step")
        sw = self.installer.get()
        try:
            sw.uninstall(ctx)
        except Exception as e:
            return self.fail(wrap(e, ErrorKind.UNINSTALLATION, f"uninstall of {sw.name} failed"), action=Action.ROLLBACK)
        return self.succeed(action=Action.ROLLBACK, detail=f"{sw.name} uninstalled")


class ConfigureStep(Step):
    """configure, skipped when already configured; rollback removes what it wrote."""

    def __init__(self, step_id: str, installer: Provider[Installable]):
        super().__init__(step_id)
        self.installer = installer

    def _execute(self, ctx: ExecutionContext) -> Report:
        sw = self.installer.get()
        try:
            if sw.is_configured(ctx):
                return self.skip(metadata={keys.ALREADY_CONFIGURED: keys.TRUE}, detail=f"{sw.name} already configured")
            sw.configure(ctx)
        except Exception as e:
            return self.fail(wrap(e, ErrorKind.CONFIGURATION, f"configuration of {sw.name} failed"))
        self.mark(Phase.CONFIGURED)
        return self.succeed(metadata=self.flags())

    def _rollback(self, ctx: ExecutionContext) -> Report:
        if not self.bag.done(Phase.CONFIGURED):
            return self.skip(action=Action.ROLLBACK, detail="nothing configured by this step")
        sw = self.installer.get()
        try:
            sw.remove_configuration(ctx)
        except Exception as e:
            return self.fail(wrap(e, ErrorKind.CONFIGURATION, f"removing configuration of {sw.name} failed"), action=Action.ROLLBACK)
        return self.succeed(action=Action.ROLLBACK, detail=f"{sw.name} configuration removed")


def install_step(name: str, installer: Provider[Installable]) -> InstallStep:
    return InstallStep(f"install-{name}", installer)


def configure_step(name: str, installer: Provider[Installable]) -> ConfigureStep:
    return ConfigureStep(f"configure-{name}", installer)


def setup_software(name: str, installer: Provider[Installable]) -> WorkflowBuilder:
    """setup-<name>: install then configure, sharing one installer instance."""
    return (
        WorkflowBuilder(f"setup-{name}")
        .add(install_step(name, installer))
        .add(configure_step(name, installer))
    )
