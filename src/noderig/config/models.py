# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/noderig/config/models.py

from typing import Any, Dict, List, Optional, Literal
from pydantic import BaseModel, Field, field_validator, model_validator


class PathsConfig(BaseModel):
    """Host locations the installers write to."""

    bin_dir: str = "/usr/local/bin"
    config_dir: str = "/etc/noderig"
    download_dir: str = "/var/cache/noderig/downloads"
    temp_dir: str = "/var/tmp/noderig"
    log_dir: Optional[str] = None


class BinarySpec(BaseModel):
    name: str                                # file name under bin_dir
    archive_path: Optional[str] = None       # member path inside the archive; defaults to name
    mode: int = 0o755

    @property
    def source(self) -> str:
        return self.archive_path or self.name


class ConfigFileSpec(BaseModel):
    path: str                                # relative paths land under config_dir/<software>/
    template: str                            # jinja2 source
    mode: int = 0o644


class SoftwareDefinition(BaseModel):
    name: str
    version: str
    url: str                                 # may reference {name} and {version}
    sha256: Optional[str] = None
    archive: Literal["tar.gz", "tgz", "tar", "binary"] = "tar.gz"
    binaries: List[BinarySpec] = Field(default_factory=list)
    config_files: List[ConfigFileSpec] = Field(default_factory=list)
    variables: Dict[str, Any] = Field(default_factory=dict)   # extra template context

    @field_validator("sha256")
    @classmethod
    def _lower_hex(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip().lower()
        if len(v) != 64 or any(c not in "0123456789abcdef" for c in v):
            raise ValueError("sha256 must be 64 hex characters")
        return v

    @model_validator(mode="after")
    def _default_binary(self) -> "SoftwareDefinition":
        if not self.binaries:
            self.binaries = [BinarySpec(name=self.name)]
        return self

    @property
    def resolved_url(self) -> str:
        return self.url.format(name=self.name, version=self.version)

    @property
    def artifact_name(self) -> str:
        return self.resolved_url.rstrip("/").rsplit("/", 1)[-1] or self.name


class StorageVolume(BaseModel):
    """
    A hostPath backed PersistentVolume (and claim) for a chart service.
    ``since_version`` marks volumes introduced by a chart release; upgrading
    across it requires a migration.
    """

    name: str
    path: str
    size: str = "5Gi"
    since_version: Optional[str] = None


class ChartServiceConfig(BaseModel):
    name: str                                # logical name, e.g. "block-node"
    release: str
    chart: str                               # repo/chart, oci:// uri or local path
    version: str
    namespace: str
    values_file: Optional[str] = None
    values: Dict[str, Any] = Field(default_factory=dict)
    reuse_values: bool = False
    storage_class: str = "local-storage"
    storage: List[StorageVolume] = Field(default_factory=list)
    service_name: Optional[str] = None       # defaults to release
    address_pool: Optional[str] = "public-address-pool"
    pod_selector: Optional[str] = None       # defaults to app.kubernetes.io/instance=<release>
    ready_timeout_seconds: int = 300

    @property
    def service(self) -> str:
        return self.service_name or self.release

    @property
    def selector(self) -> str:
        return self.pod_selector or f"app.kubernetes.io/instance={self.release}"


class NodeConfig(BaseModel):
    node_name: str = "local"
    kube_context: Optional[str] = None
    kubeconfig: Optional[str] = None
    paths: PathsConfig = PathsConfig()
    software: List[SoftwareDefinition] = Field(default_factory=list)
    services: List[ChartServiceConfig] = Field(default_factory=list)

    def service(self, name: str) -> ChartServiceConfig:
        for s in self.services:
            if s.name == name:
                return s
        raise KeyError(f"unknown service {name!r}")
