from typing import Any, Dict, List, Optional

import pytest

from noderig.config.models import ChartServiceConfig, StorageVolume
from noderig.errors import illegal_state_error
from noderig.resources.manager import ResourceManager


class FakeManager(ResourceManager):
    """In-memory cluster: records every mutating call in ``journal``."""

    def __init__(self, service: ChartServiceConfig):
        self.service = service
        self.journal: List[str] = []
        self.fail_on: set = set()
        self.namespace = False
        self.pvs: set = set()
        self.version: Optional[str] = None
        self.revision = 0
        self.values: Dict[str, Any] = {}

    def _call(self, name: str, *detail: Any) -> None:
        self.journal.append(":".join([name, *map(str, detail)]))
        if name in self.fail_on:
            raise illegal_state_error(f"{name} failed")

    def _names(self, volumes):
        return {v.name for v in (self.service.storage if volumes is None else volumes)}

    def setup_storage(self, ctx, volumes=None):
        self._call("setup_storage", *sorted(self._names(volumes)))

    def namespace_exists(self, ctx):
        return self.namespace

    def create_namespace(self, ctx):
        self._call("create_namespace")
        self.namespace = True

    def delete_namespace(self, ctx):
        self._call("delete_namespace")
        self.namespace = False

    def persistent_volumes_exist(self, ctx, volumes=None):
        return self._names(volumes) <= self.pvs

    def create_persistent_volumes(self, ctx, volumes=None):
        self._call("create_persistent_volumes", *sorted(self._names(volumes)))
        self.pvs |= self._names(volumes)

    def delete_persistent_volumes(self, ctx, volumes=None):
        self._call("delete_persistent_volumes", *sorted(self._names(volumes)))
        self.pvs -= self._names(volumes)

    def compute_values_file(self, ctx):
        return "/tmp/values.yaml" if self.service.values else None

    def requested_values(self, ctx):
        return dict(self.service.values)

    def is_installed(self, ctx):
        return self.version is not None

    def install_chart(self, ctx, values_file):
        if self.is_installed(ctx):
            return False
        self._call("install_chart")
        self.version, self.revision, self.values = self.service.version, 1, self.requested_values(ctx)
        return True

    def uninstall_chart(self, ctx):
        self._call("uninstall_chart")
        self.version, self.revision = None, 0

    def upgrade_chart(self, ctx, values_file):
        self._call("upgrade_chart")
        self.version, self.revision = self.service.version, self.revision + 1
        self.values = self.requested_values(ctx)

    def rollback_chart(self, ctx, revision):
        self._call("rollback_chart", revision)
        self.revision += 1

    def annotate_service(self, ctx):
        self._call("annotate_service")

    def wait_for_pod_ready(self, ctx):
        self._call("wait_for_pod_ready")

    def installed_version(self, ctx):
        return self.version

    def release_values(self, ctx):
        return dict(self.values)

    def release_revision(self, ctx):
        return self.revision or None


@pytest.fixture
def service() -> ChartServiceConfig:
    return ChartServiceConfig(
        name="block-node",
        release="block-node",
        chart="oci://example.test/block-node-server",
        version="0.15.0",
        namespace="block-node",
        values={"replicas": 1},
        storage=[
            StorageVolume(name="live", path="/mnt/bn/live"),
            StorageVolume(name="archive", path="/mnt/bn/archive", since_version="0.15.0"),
        ],
    )


@pytest.fixture
def fake(service) -> FakeManager:
    return FakeManager(service)
