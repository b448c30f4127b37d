# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/noderig/kube/kubectl.py

from __future__ import annotations

import json
import logging
import subprocess
from typing import Any, Dict, List, Optional

log = logging.getLogger("noderig")


class KubectlError(RuntimeError):
    pass


class KubectlRunner:
    """
    kubectl runner executed on the local node.
    """

    def __init__(
        self,
        *,
        kubeconfig: Optional[str] = None,
        kube_context: Optional[str] = None,
    ):
        self.kubeconfig = kubeconfig
        self.kube_context = kube_context

    def _base(self) -> List[str]:
        cmd = ["kubectl"]
        if self.kubeconfig:
            cmd += ["--kubeconfig", self.kubeconfig]
        if self.kube_context:
            cmd += ["--context", self.kube_context]
        return cmd

    def _run(self, args: List[str], *, timeout: Optional[float] = None) -> tuple[int, str, str]:
        """
        Run a kubectl command.

        Returns:
            (rc, stdout, stderr)
        """
        argv = self._base() + args
        log.debug("$ %s", " ".join(argv))
        try:
            proc = subprocess.run(
                argv,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                check=False,
                timeout=timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise KubectlError(f"kubectl timed out after {timeout}s: {' '.join(args)}") from e
        except OSError as e:
            raise KubectlError(f"could not run kubectl: {e}") from e
        return proc.returncode, proc.stdout, proc.stderr

    def apply_file(self, path: str, *, timeout: Optional[float] = None) -> None:
        rc, out, err = self._run(["apply", "-f", path], timeout=timeout)
        if rc != 0:
            raise KubectlError(f"kubectl apply failed: {err or out}")

    def delete_file(self, path: str, *, timeout: Optional[float] = None) -> None:
        rc, out, err = self._run(["delete", "--ignore-not-found=true", "-f", path], timeout=timeout)
        if rc != 0:
            raise KubectlError(f"kubectl delete failed: {err or out}")

    def annotate(
        self,
        *,
        kind: str,
        name: str,
        namespace: str,
        annotations: Dict[str, str],
        timeout: Optional[float] = None,
    ) -> None:
        pairs = [f"{k}={v}" for k, v in annotations.items()]
        rc, out, err = self._run(
            ["annotate", kind.lower(), name, "-n", namespace, "--overwrite"] + pairs,
            timeout=timeout,
        )
        if rc != 0:
            raise KubectlError(f"kubectl annotate {kind}/{name} failed: {err or out}")

    def get(
        self,
        *,
        kind: str,
        name: str,
        namespace: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        """
        kubectl get <kind> <name> -o json; None when the object does not exist.
        """
        args = ["get", kind.lower(), name, "-o", "json", "--ignore-not-found=true"]
        if namespace:
            args += ["-n", namespace]

        rc, stdout, stderr = self._run(args)
        if rc != 0:
            raise KubectlError(f"kubectl get {kind}/{name} failed: {stderr}")
        if not stdout.strip():
            return None
        try:
            return json.loads(stdout)
        except json.JSONDecodeError as e:
            raise KubectlError(
                f"Failed to parse kubectl output as JSON: {e}\nOutput:\n{stdout}"
            ) from e

    def exists(self, *, kind: str, name: str, namespace: Optional[str] = None) -> bool:
        return self.get(kind=kind, name=name, namespace=namespace) is not None
