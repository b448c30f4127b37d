# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/noderig/provision/node.py
from __future__ import annotations

from typing import Mapping, Optional

from ..config.models import ChartServiceConfig, NodeConfig, PathsConfig, SoftwareDefinition
from ..helm.cli_runner import HelmCliRunner
from ..kube.kubectl import KubectlRunner
from ..migration.migration import MigrationManager
from ..resources.manager import ChartServiceManager, ResourceManager
from ..software.base_installer import BaseInstaller
from ..software.installable import Installable
from ..steps.chart_service import setup_chart_service, upgrade_chart_service
from ..steps.self_check import check_installation
from ..steps.software import setup_software
from ..workflow.provider import Provider
from ..workflow.workflow import WorkflowBuilder


def installer_provider(definition: SoftwareDefinition, paths: PathsConfig) -> Provider[Installable]:
    return Provider(lambda: BaseInstaller(definition, paths))


def manager_provider(service: ChartServiceConfig, cfg: NodeConfig) -> Provider[ResourceManager]:
    def _build() -> ResourceManager:
        helm = HelmCliRunner(kube_context=cfg.kube_context, kubeconfig=cfg.kubeconfig)
        kubectl = KubectlRunner(kubeconfig=cfg.kubeconfig, kube_context=cfg.kube_context)
        return ChartServiceManager(service, cfg.paths, helm, kubectl)

    return Provider(_build)


def setup_node(
    cfg: NodeConfig,
    *,
    installers: Optional[Mapping[str, Provider[Installable]]] = None,
    managers: Optional[Mapping[str, Provider[ResourceManager]]] = None,
    self_check: bool = False,
) -> WorkflowBuilder:
    """
    setup-node:
      [check-noderig-installation]
      setup-<software>...   install -> configure
      setup-<service>...    storage -> namespace -> PVs -> chart -> annotate -> ready
    """
    installers = installers or {}
    managers = managers or {}

    wb = WorkflowBuilder(f"setup-node-{cfg.node_name}")
    if self_check:
        wb.add(check_installation(cfg.paths.bin_dir))
    for sw in cfg.software:
        wb.add(setup_software(sw.name, installers.get(sw.name) or installer_provider(sw, cfg.paths)))
    for svc in cfg.services:
        wb.add(setup_chart_service(svc, managers.get(svc.name) or manager_provider(svc, cfg)))
    return wb


def upgrade_service(
    cfg: NodeConfig,
    name: str,
    *,
    managers: Optional[Provider[ResourceManager]] = None,
    migrations: Optional[MigrationManager] = None,
) -> WorkflowBuilder:
    svc = cfg.service(name)
    return upgrade_chart_service(svc, managers or manager_provider(svc, cfg), migrations)
