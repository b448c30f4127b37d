# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/noderig/helm/cli_runner.py
from __future__ import annotations

import json
import logging
import subprocess
from typing import Any, Dict, List, Optional, Sequence

from .errors import HelmError, HelmReleaseNotFound

log = logging.getLogger("noderig")


class HelmCliRunner:
    """
    A pragmatic wrapper around the `helm` CLI.
    - Mirrors human CLI usage: 'install', 'upgrade', 'rollback', 'uninstall', 'list', 'get values'.
    - Testable by mocking subprocess.run.
    """

    def __init__(
        self,
        kube_context: str | None = None,
        kubeconfig: str | None = None,
        env: dict[str, str] | None = None,
    ):
        self.kube_context = kube_context
        self.kubeconfig = kubeconfig
        self.env = env or {}

    # ------------------------- internal helpers -------------------------

    def _base(self) -> list[str]:
        cmd = ["helm"]
        if self.kube_context:
            cmd += ["--kube-context", self.kube_context]
        if self.kubeconfig:
            cmd += ["--kubeconfig", self.kubeconfig]
        return cmd

    def _run(
        self,
        argv: List[str],
        allow_rc: set[int] | None = None,
        timeout: Optional[float] = None,
    ) -> subprocess.CompletedProcess:
        allow_rc = allow_rc or {0}
        log.debug("$ %s", " ".join(argv))
        try:
            cp = subprocess.run(
                argv,
                check=False,
                text=True,
                capture_output=True,
                env=self.env or None,
                timeout=timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise HelmError(f"helm timed out after {timeout}s for {argv!r}") from e
        except OSError as e:
            raise HelmError(f"could not run helm: {e}") from e

        if cp.returncode not in allow_rc:
            stderr = getattr(cp, "stderr", "") or ""
            if "not found" in stderr.lower():
                raise HelmReleaseNotFound(f"helm: release not found for {argv!r}\n{stderr}")
            raise HelmError(f"helm failed (rc={cp.returncode}) for {argv!r}\n{stderr}")
        return cp

    @staticmethod
    def _values_args(files: Sequence[str]) -> list[str]:
        args: list[str] = []
        for f in files:
            args += ["-f", f]
        return args

    @staticmethod
    def _wait_args(wait: bool, timeout: Optional[float]) -> list[str]:
        if not wait:
            return []
        args = ["--wait"]
        if timeout:
            args += ["--timeout", f"{int(timeout)}s"]
        return args

    # ------------------------- queries -------------------------

    def release(self, name: str, namespace: str) -> Optional[Dict[str, Any]]:
        """The `helm list` entry for ``name``, or None when not installed."""
        argv = self._base() + ["list", "-n", namespace, "--filter", f"^{name}$", "-o", "json"]
        cp = self._run(argv)
        for entry in json.loads(cp.stdout or "[]"):
            if entry.get("name") == name:
                return entry
        return None

    def get_values(self, name: str, namespace: str) -> Dict[str, Any]:
        argv = self._base() + ["get", "values", name, "-n", namespace, "-o", "json"]
        cp = self._run(argv)
        return json.loads(cp.stdout or "{}") or {}

    # ------------------------- mutations -------------------------

    def install(
        self,
        name: str,
        chart: str,
        namespace: str,
        *,
        version: Optional[str] = None,
        values_files: Sequence[str] = (),
        create_namespace: bool = False,
        wait: bool = False,
        timeout: Optional[float] = None,
    ) -> None:
        argv = (
            self._base()
            + ["install", name, chart, "-n", namespace]
            + self._values_args(values_files)
        )
        if version:
            argv += ["--version", version]
        if create_namespace:
            argv += ["--create-namespace"]
        argv += self._wait_args(wait, timeout)
        self._run(argv, timeout=timeout)

    def upgrade(
        self,
        name: str,
        chart: str,
        namespace: str,
        *,
        version: Optional[str] = None,
        values_files: Sequence[str] = (),
        reuse_values: bool = False,
        wait: bool = False,
        timeout: Optional[float] = None,
    ) -> None:
        argv = (
            self._base()
            + ["upgrade", name, chart, "-n", namespace]
            + self._values_args(values_files)
        )
        if version:
            argv += ["--version", version]
        if reuse_values:
            argv += ["--reuse-values"]
        argv += self._wait_args(wait, timeout)
        self._run(argv, timeout=timeout)

    def rollback(self, name: str, namespace: str, revision: int, *, wait: bool = False, timeout: Optional[float] = None) -> None:
        argv = self._base() + ["rollback", name, str(revision), "-n", namespace] + self._wait_args(wait, timeout)
        self._run(argv, timeout=timeout)

    def uninstall(self, name: str, namespace: str, *, timeout: Optional[float] = None) -> None:
        argv = self._base() + ["uninstall", name, "-n", namespace]
        self._run(argv, timeout=timeout)
