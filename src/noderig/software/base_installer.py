# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/noderig/software/base_installer.py
from __future__ import annotations

import hashlib
import logging
import os
import shutil
import tarfile
import tempfile
from pathlib import Path
from typing import Dict, List, Optional

import requests
from jinja2 import TemplateError

from ..config.models import ConfigFileSpec, PathsConfig, SoftwareDefinition
from ..errors import (
    ProvisionError,
    cleanup_error,
    configuration_error,
    download_error,
    extraction_error,
    installation_error,
    uninstallation_error,
)
from ..templating import TemplateRenderer
from ..workflow.context import ExecutionContext
from .installable import Installable

log = logging.getLogger("noderig")

CHUNK_SIZE = 1 << 20
CONFIGURED_MARKER = ".noderig-configured"


def sha256_of(path: Path) -> str:
    h = hashlib.sha256()
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
            h.update(chunk)
    return h.hexdigest()


def _write_atomic(target: Path, data: bytes, mode: int) -> None:
    """Write next to ``target`` then rename, so readers never see half a file."""
    fd, tmp = tempfile.mkstemp(prefix=f".{target.name}.", dir=str(target.parent))
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.chmod(tmp, mode)
        os.replace(tmp, target)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise


class BaseInstaller(Installable):
    """
    Installable for a component shipped as a tarball (or a bare binary)
    at a URL, with optional jinja2 rendered config files.

    Layout:
        <download_dir>/<name>/<version>/<artifact>     kept between runs
        <temp_dir>/<name>/<version>/                   extraction folder, removed by cleanup
        <bin_dir>/<binary>                             installed binaries
        <config_dir>/<name>/<file>                     rendered config (relative paths)
    """

    def __init__(
        self,
        definition: SoftwareDefinition,
        paths: PathsConfig,
        *,
        session: Optional[requests.Session] = None,
        renderer: Optional[TemplateRenderer] = None,
        timeout: float = 60.0,
    ):
        self.definition = definition
        self.paths = paths
        self.name = definition.name
        self.session = session or requests.Session()
        self.renderer = renderer or TemplateRenderer()
        self.timeout = timeout

    # ------------------------- locations -------------------------

    @property
    def download_folder(self) -> Path:
        return Path(self.paths.download_dir) / self.name / self.definition.version

    @property
    def artifact_path(self) -> Path:
        return self.download_folder / self.definition.artifact_name

    @property
    def extract_folder(self) -> Path:
        return Path(self.paths.temp_dir) / self.name / self.definition.version

    @property
    def bin_dir(self) -> Path:
        return Path(self.paths.bin_dir)

    def binary_paths(self) -> List[Path]:
        return [self.bin_dir / b.name for b in self.definition.binaries]

    def config_path(self, spec: ConfigFileSpec) -> Path:
        p = Path(spec.path)
        if p.is_absolute():
            return p
        return Path(self.paths.config_dir) / self.name / p

    @property
    def marker_path(self) -> Path:
        return Path(self.paths.config_dir) / self.name / CONFIGURED_MARKER

    # ------------------------- install phase -------------------------

    def is_installed(self, ctx: ExecutionContext) -> bool:
        return all(p.is_file() for p in self.binary_paths())

    def _artifact_ok(self) -> bool:
        if not self.artifact_path.is_file():
            return False
        if self.definition.sha256 is None:
            return True
        return sha256_of(self.artifact_path) == self.definition.sha256

    def download(self, ctx: ExecutionContext) -> None:
        url = self.definition.resolved_url
        ctx.raise_if_cancelled()
        try:
            self.download_folder.mkdir(parents=True, exist_ok=True)
            if self._artifact_ok():
                log.info("[%s] reusing downloaded artifact %s", self.name, self.artifact_path)
                return

            log.info("[%s] downloading %s", self.name, url)
            part = self.artifact_path.with_name(self.artifact_path.name + ".part")
            digest = hashlib.sha256()
            with self.session.get(url, stream=True, timeout=ctx.remaining(self.timeout)) as resp:
                resp.raise_for_status()
                with part.open("wb") as f:
                    for chunk in resp.iter_content(chunk_size=CHUNK_SIZE):
                        ctx.raise_if_cancelled()
                        if chunk:
                            f.write(chunk)
                            digest.update(chunk)
        except ProvisionError:
            raise
        except (requests.RequestException, OSError) as e:
            raise download_error(url, e, file_path=str(self.artifact_path)) from e

        actual = digest.hexdigest()
        if self.definition.sha256 and actual != self.definition.sha256:
            part.unlink(missing_ok=True)
            raise download_error(
                url,
                ValueError(f"checksum mismatch: expected {self.definition.sha256}, got {actual}"),
                expected=self.definition.sha256,
                actual=actual,
            )
        try:
            os.replace(part, self.artifact_path)
        except OSError as e:
            raise download_error(url, e, file_path=str(self.artifact_path)) from e

    @staticmethod
    def _safe_members(tar: tarfile.TarFile, dest: Path) -> List[tarfile.TarInfo]:
        root = dest.resolve()
        members = []
        for m in tar.getmembers():
            target = (root / m.name).resolve()
            if target != root and root not in target.parents:
                raise tarfile.TarError(f"refusing to extract {m.name!r} outside {root}")
            if m.issym() or m.islnk():
                base = target.parent if m.issym() else root
                link = (base / m.linkname).resolve()
                if root not in link.parents:
                    raise tarfile.TarError(f"refusing link {m.name!r} -> {m.linkname!r}")
            if m.isdev():
                continue
            members.append(m)
        return members

    def extract(self, ctx: ExecutionContext) -> None:
        ctx.raise_if_cancelled()
        src = self.artifact_path
        dest = self.extract_folder
        try:
            if dest.exists():
                shutil.rmtree(dest)
            dest.mkdir(parents=True)
            if self.definition.archive == "binary":
                shutil.copyfile(src, dest / self.definition.binaries[0].source)
                return
            with tarfile.open(src, "r:*") as tar:
                tar.extractall(dest, members=self._safe_members(tar, dest))
        except (tarfile.TarError, OSError) as e:
            raise extraction_error(str(src), e) from e
        log.debug("[%s] extracted %s into %s", self.name, src, dest)

    def install(self, ctx: ExecutionContext) -> None:
        ctx.raise_if_cancelled()
        try:
            self.bin_dir.mkdir(parents=True, exist_ok=True)
            for b in self.definition.binaries:
                src = self.extract_folder / b.source
                if not src.is_file():
                    raise FileNotFoundError(f"{b.source} not found in {self.extract_folder}")
                _write_atomic(self.bin_dir / b.name, src.read_bytes(), b.mode)
                log.info("[%s] installed %s", self.name, self.bin_dir / b.name)
        except OSError as e:
            raise installation_error(self.name, e, bin_dir=str(self.bin_dir)) from e

    def cleanup(self, ctx: ExecutionContext) -> None:
        try:
            if self.extract_folder.exists():
                shutil.rmtree(self.extract_folder)
        except OSError as e:
            raise cleanup_error(self.name, e, file_path=str(self.extract_folder)) from e

    def uninstall(self, ctx: ExecutionContext) -> None:
        try:
            for p in self.binary_paths():
                p.unlink(missing_ok=True)
                log.info("[%s] removed %s", self.name, p)
        except OSError as e:
            raise uninstallation_error(self.name, e) from e

    # ------------------------- configure phase -------------------------

    def _render_all(self) -> Dict[Path, ConfigFileSpec]:
        return {self.config_path(spec): spec for spec in self.definition.config_files}

    def _render(self, spec: ConfigFileSpec) -> str:
        context = {
            "name": self.name,
            "version": self.definition.version,
            "bin_dir": self.paths.bin_dir,
            "config_dir": str(Path(self.paths.config_dir) / self.name),
            **self.definition.variables,
        }
        return self.renderer.render_string(spec.template, context)

    def is_configured(self, ctx: ExecutionContext) -> bool:
        """True only after a configure of this version whose files are still as rendered."""
        try:
            marker = self.marker_path
            if not marker.is_file() or marker.read_text().strip() != self.definition.version:
                return False
            for path, spec in self._render_all().items():
                if not path.is_file() or path.read_text() != self._render(spec):
                    return False
        except (TemplateError, OSError) as e:
            raise configuration_error(self.name, e) from e
        return True

    def configure(self, ctx: ExecutionContext) -> None:
        ctx.raise_if_cancelled()
        try:
            for path, spec in self._render_all().items():
                path.parent.mkdir(parents=True, exist_ok=True)
                _write_atomic(path, self._render(spec).encode(), spec.mode)
                log.info("[%s] wrote %s", self.name, path)
            self.marker_path.parent.mkdir(parents=True, exist_ok=True)
            _write_atomic(self.marker_path, f"{self.definition.version}\n".encode(), 0o644)
        except (TemplateError, OSError) as e:
            raise configuration_error(self.name, e) from e

    def remove_configuration(self, ctx: ExecutionContext) -> None:
        try:
            for path in self._render_all():
                path.unlink(missing_ok=True)
            self.marker_path.unlink(missing_ok=True)
            own_dir = Path(self.paths.config_dir) / self.name
            if own_dir.is_dir() and not any(own_dir.iterdir()):
                own_dir.rmdir()
        except OSError as e:
            raise configuration_error(self.name, e) from e
