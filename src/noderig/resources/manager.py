# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/noderig/resources/manager.py
from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

import yaml
from kubernetes.client.rest import ApiException
from kubernetes.config.config_exception import ConfigException

from ..config.loader import deep_merge
from ..config.models import ChartServiceConfig, PathsConfig, StorageVolume
from ..errors import ProvisionError, cancelled_error, illegal_state_error
from ..helm.cli_runner import HelmCliRunner
from ..helm.errors import HelmError
from ..kube import client as kube_client
from ..kube.kubectl import KubectlError, KubectlRunner
from ..templating import TemplateRenderer
from ..workflow.context import ExecutionContext

log = logging.getLogger("noderig")

TEMPLATES_DIR = Path(__file__).parent / "templates"
ADDRESS_POOL_ANNOTATION = "metallb.io/address-pool"

_CHART_VERSION = re.compile(r"-(v?\d+\.\d+\.\d+[\w.+-]*)$")


class ResourceManager(ABC):
    """
    Kubernetes/Helm side of a chart backed service.

    Every mutation is expected to be idempotent. Failures raise ProvisionError
    (ILLEGAL_STATE for cluster/helm problems, CANCELLED when the context is).
    """

    @abstractmethod
    def setup_storage(self, ctx: ExecutionContext, volumes: Optional[Sequence[StorageVolume]] = None) -> None: ...

    @abstractmethod
    def namespace_exists(self, ctx: ExecutionContext) -> bool: ...

    @abstractmethod
    def create_namespace(self, ctx: ExecutionContext) -> None: ...

    @abstractmethod
    def delete_namespace(self, ctx: ExecutionContext) -> None: ...

    @abstractmethod
    def persistent_volumes_exist(self, ctx: ExecutionContext, volumes: Optional[Sequence[StorageVolume]] = None) -> bool: ...

    @abstractmethod
    def create_persistent_volumes(self, ctx: ExecutionContext, volumes: Optional[Sequence[StorageVolume]] = None) -> None: ...

    @abstractmethod
    def delete_persistent_volumes(self, ctx: ExecutionContext, volumes: Optional[Sequence[StorageVolume]] = None) -> None: ...

    @abstractmethod
    def compute_values_file(self, ctx: ExecutionContext) -> Optional[str]: ...

    @abstractmethod
    def requested_values(self, ctx: ExecutionContext) -> Dict[str, Any]: ...

    @abstractmethod
    def is_installed(self, ctx: ExecutionContext) -> bool: ...

    @abstractmethod
    def install_chart(self, ctx: ExecutionContext, values_file: Optional[str]) -> bool: ...

    @abstractmethod
    def uninstall_chart(self, ctx: ExecutionContext) -> None: ...

    @abstractmethod
    def upgrade_chart(self, ctx: ExecutionContext, values_file: Optional[str]) -> None: ...

    @abstractmethod
    def rollback_chart(self, ctx: ExecutionContext, revision: int) -> None: ...

    @abstractmethod
    def annotate_service(self, ctx: ExecutionContext) -> None: ...

    @abstractmethod
    def wait_for_pod_ready(self, ctx: ExecutionContext) -> None: ...

    @abstractmethod
    def installed_version(self, ctx: ExecutionContext) -> Optional[str]: ...

    @abstractmethod
    def release_values(self, ctx: ExecutionContext) -> Dict[str, Any]: ...

    @abstractmethod
    def release_revision(self, ctx: ExecutionContext) -> Optional[int]: ...


class ChartServiceManager(ResourceManager):
    """ResourceManager backed by the helm and kubectl CLIs plus the kubernetes client."""

    def __init__(
        self,
        service: ChartServiceConfig,
        paths: PathsConfig,
        helm: HelmCliRunner,
        kubectl: KubectlRunner,
        *,
        renderer: Optional[TemplateRenderer] = None,
        core_api: Optional[Callable[[], Any]] = None,
        wait_timeout: float = 600,
    ):
        self.service = service
        self.paths = paths
        self.helm = helm
        self.kubectl = kubectl
        self.renderer = renderer or TemplateRenderer(TEMPLATES_DIR)
        self._core_api = core_api or (lambda: kube_client.core_api(kubectl.kube_context, kubectl.kubeconfig))
        self.wait_timeout = wait_timeout

    # ------------------------- helpers -------------------------

    @property
    def work_dir(self) -> Path:
        return Path(self.paths.temp_dir) / self.service.release

    def _timeout(self, ctx: ExecutionContext) -> float:
        ctx.raise_if_cancelled()
        return ctx.remaining(self.wait_timeout) or self.wait_timeout

    def _volumes(self, volumes: Optional[Sequence[StorageVolume]]) -> List[StorageVolume]:
        return list(self.service.storage if volumes is None else volumes)

    def _manifest(self, template: str, filename: str, **context: Any) -> str:
        self.work_dir.mkdir(parents=True, exist_ok=True)
        path = self.work_dir / filename
        path.write_text(self.renderer.render(template, context))
        return str(path)

    def _guard(self, what: str, fn: Callable[[], Any]) -> Any:
        try:
            return fn()
        except ProvisionError:
            raise
        except (HelmError, KubectlError, OSError) as e:
            raise illegal_state_error(f"failed to {what} for {self.service.release}", e) from e

    def _pv_manifest(self, volumes: Sequence[StorageVolume]) -> str:
        names = "-".join(v.name for v in volumes) or "none"
        return self._manifest(
            "storage.yaml.j2",
            f"storage-{names}.yaml",
            volumes=volumes,
            release=self.service.release,
            namespace=self.service.namespace,
            storage_class=self.service.storage_class,
        )

    # ------------------------- storage & namespace -------------------------

    def setup_storage(self, ctx: ExecutionContext, volumes: Optional[Sequence[StorageVolume]] = None) -> None:
        ctx.raise_if_cancelled()
        for vol in self._volumes(volumes):
            p = Path(vol.path)
            if p.is_dir():
                continue
            self._guard(f"create storage directory {p}", lambda: p.mkdir(parents=True, exist_ok=True))
            log.info("[%s] created storage directory %s", self.service.name, p)

    def namespace_exists(self, ctx: ExecutionContext) -> bool:
        return self._guard(
            "query namespace",
            lambda: self.kubectl.exists(kind="namespace", name=self.service.namespace),
        )

    def create_namespace(self, ctx: ExecutionContext) -> None:
        timeout = self._timeout(ctx)

        def _apply():
            path = self._manifest("namespace.yaml.j2", "namespace.yaml", namespace=self.service.namespace)
            self.kubectl.apply_file(path, timeout=timeout)

        self._guard("create namespace", _apply)

    def delete_namespace(self, ctx: ExecutionContext) -> None:
        timeout = self._timeout(ctx)

        def _delete():
            path = self._manifest("namespace.yaml.j2", "namespace.yaml", namespace=self.service.namespace)
            self.kubectl.delete_file(path, timeout=timeout)

        self._guard("delete namespace", _delete)

    def persistent_volumes_exist(self, ctx: ExecutionContext, volumes: Optional[Sequence[StorageVolume]] = None) -> bool:
        vols = self._volumes(volumes)

        def _all_exist() -> bool:
            return all(
                self.kubectl.exists(kind="pv", name=f"{self.service.release}-{v.name}-pv") for v in vols
            )

        return self._guard("query persistent volumes", _all_exist)

    def create_persistent_volumes(self, ctx: ExecutionContext, volumes: Optional[Sequence[StorageVolume]] = None) -> None:
        vols = self._volumes(volumes)
        if not vols:
            return
        timeout = self._timeout(ctx)
        self._guard("create persistent volumes", lambda: self.kubectl.apply_file(self._pv_manifest(vols), timeout=timeout))

    def delete_persistent_volumes(self, ctx: ExecutionContext, volumes: Optional[Sequence[StorageVolume]] = None) -> None:
        vols = self._volumes(volumes)
        if not vols:
            return
        timeout = self._timeout(ctx)
        self._guard("delete persistent volumes", lambda: self.kubectl.delete_file(self._pv_manifest(vols), timeout=timeout))

    # ------------------------- values -------------------------

    def requested_values(self, ctx: ExecutionContext) -> Dict[str, Any]:
        def _load() -> Dict[str, Any]:
            merged: Dict[str, Any] = {}
            if self.service.values_file:
                merged = yaml.safe_load(Path(self.service.values_file).read_text()) or {}
            return deep_merge(merged, dict(self.service.values))

        return self._guard("read values", _load)

    def compute_values_file(self, ctx: ExecutionContext) -> Optional[str]:
        """
        Writes the effective values (file then inline overrides) to the work dir.
        None means "no values of our own", only legal when reusing release values.
        """
        values = self.requested_values(ctx)
        if not values:
            return None

        def _write() -> str:
            self.work_dir.mkdir(parents=True, exist_ok=True)
            path = self.work_dir / "values.yaml"
            path.write_text(yaml.safe_dump(values, sort_keys=True))
            return str(path)

        return self._guard("write values file", _write)

    # ------------------------- chart -------------------------

    def _release(self) -> Optional[Dict[str, Any]]:
        return self._guard(
            "query release",
            lambda: self.helm.release(self.service.release, self.service.namespace),
        )

    def is_installed(self, ctx: ExecutionContext) -> bool:
        ctx.raise_if_cancelled()
        return self._release() is not None

    def install_chart(self, ctx: ExecutionContext, values_file: Optional[str]) -> bool:
        if self.is_installed(ctx):
            log.info("[%s] release %s already installed", self.service.name, self.service.release)
            return False
        timeout = self._timeout(ctx)
        self._guard(
            "install chart",
            lambda: self.helm.install(
                self.service.release,
                self.service.chart,
                self.service.namespace,
                version=self.service.version,
                values_files=[values_file] if values_file else [],
                wait=True,
                timeout=timeout,
            ),
        )
        return True

    def uninstall_chart(self, ctx: ExecutionContext) -> None:
        if not self.is_installed(ctx):
            return
        timeout = self._timeout(ctx)
        self._guard("uninstall chart", lambda: self.helm.uninstall(self.service.release, self.service.namespace, timeout=timeout))

    def upgrade_chart(self, ctx: ExecutionContext, values_file: Optional[str]) -> None:
        if not self.is_installed(ctx):
            raise illegal_state_error(
                f"{self.service.release} is not installed, cannot upgrade",
                resolution="install the service first",
            )
        if not values_file and not self.service.reuse_values:
            raise illegal_state_error(
                f"no values for {self.service.release} and reuse_values is off",
                resolution="set values/values_file or enable reuse_values",
            )
        timeout = self._timeout(ctx)
        self._guard(
            "upgrade chart",
            lambda: self.helm.upgrade(
                self.service.release,
                self.service.chart,
                self.service.namespace,
                version=self.service.version,
                values_files=[values_file] if values_file else [],
                reuse_values=self.service.reuse_values,
                wait=True,
                timeout=timeout,
            ),
        )

    def rollback_chart(self, ctx: ExecutionContext, revision: int) -> None:
        timeout = self._timeout(ctx)
        self._guard(
            "roll back chart",
            lambda: self.helm.rollback(self.service.release, self.service.namespace, revision, wait=True, timeout=timeout),
        )

    def installed_version(self, ctx: ExecutionContext) -> Optional[str]:
        rel = self._release()
        if rel is None:
            return None
        m = _CHART_VERSION.search(rel.get("chart", ""))
        return m.group(1) if m else rel.get("app_version")

    def release_values(self, ctx: ExecutionContext) -> Dict[str, Any]:
        return self._guard(
            "read release values",
            lambda: self.helm.get_values(self.service.release, self.service.namespace),
        )

    def release_revision(self, ctx: ExecutionContext) -> Optional[int]:
        rel = self._release()
        if rel is None:
            return None
        return int(rel.get("revision", 0)) or None

    # ------------------------- service & readiness -------------------------

    def annotate_service(self, ctx: ExecutionContext) -> None:
        if not self.service.address_pool:
            return
        timeout = self._timeout(ctx)
        self._guard(
            "annotate service",
            lambda: self.kubectl.annotate(
                kind="service",
                name=self.service.service,
                namespace=self.service.namespace,
                annotations={ADDRESS_POOL_ANNOTATION: self.service.address_pool},
                timeout=timeout,
            ),
        )

    def wait_for_pod_ready(self, ctx: ExecutionContext) -> None:
        timeout = min(self._timeout(ctx), float(self.service.ready_timeout_seconds))
        try:
            kube_client.wait_for_pods_ready(
                self._core_api(),
                self.service.namespace,
                self.service.selector,
                timeout_seconds=timeout,
                should_stop=lambda: ctx.cancelled,
            )
        except InterruptedError as e:
            raise cancelled_error(e) from e
        except TimeoutError as e:
            raise illegal_state_error(f"pods of {self.service.release} not ready", e) from e
        except (ApiException, ConfigException) as e:
            raise illegal_state_error(f"failed to watch pods of {self.service.release}", e) from e
