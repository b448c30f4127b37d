# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/noderig/kube/client.py
from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from kubernetes import client, config

log = logging.getLogger("noderig")


def core_api(kube_context: Optional[str] = None, kubeconfig: Optional[str] = None) -> client.CoreV1Api:
    config.load_kube_config(config_file=kubeconfig, context=kube_context)
    return client.CoreV1Api()


def _pod_ready(pod) -> bool:
    if (pod.status.phase or "") != "Running":
        return False
    for cond in pod.status.conditions or []:
        if cond.type == "Ready":
            return cond.status == "True"
    return False


def _pod_summary(pods) -> str:
    if not pods:
        return "no pods found"
    parts = []
    for p in pods:
        reasons = []
        for cs in p.status.container_statuses or []:
            waiting = cs.state.waiting if cs.state else None
            if waiting and waiting.reason:
                reasons.append(waiting.reason)
        phase = p.status.phase or "Unknown"
        parts.append(f"{p.metadata.name}: {phase}" + (f" ({', '.join(reasons)})" if reasons else ""))
    return "; ".join(parts)


def wait_for_pods_ready(
    api: client.CoreV1Api,
    namespace: str,
    selector: str,
    timeout_seconds: float = 300,
    poll_seconds: float = 2,
    should_stop: Callable[[], bool] = lambda: False,
) -> None:
    """
    Waits until at least one pod matches ``selector`` and all matching pods
    are Ready.

    Raises TimeoutError when ``timeout_seconds`` elapse and InterruptedError
    as soon as ``should_stop()`` turns true.
    """
    end = time.monotonic() + timeout_seconds
    pods = []
    while time.monotonic() < end:
        if should_stop():
            raise InterruptedError(f"stopped waiting for pods ns={namespace} selector={selector}")
        pods = api.list_namespaced_pod(namespace=namespace, label_selector=selector).items
        if pods and all(_pod_ready(p) for p in pods):
            log.debug("[kube] %d pod(s) ready in %s (%s)", len(pods), namespace, selector)
            return
        time.sleep(poll_seconds)

    raise TimeoutError(
        f"Timeout waiting for pods: ns={namespace} selector={selector}; {_pod_summary(pods)}"
    )
