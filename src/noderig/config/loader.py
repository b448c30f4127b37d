# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/noderig/config/loader.py

import logging
import os
import yaml
from pathlib import Path
from .models import NodeConfig

log = logging.getLogger("noderig")


def deep_merge(base: dict, override: dict) -> dict:
    """
    Recursively merge *override* into *base* (mutates base).
    Only overwrites when the override value is non-empty.
    """
    for key, value in override.items():
        if (
            key in base
            and isinstance(base[key], dict)
            and isinstance(value, dict)
        ):
            deep_merge(base[key], value)
        else:
            if value not in (None, ""):
                base[key] = value
    return base


def _find_overrides_file(config_path: Path) -> Path | None:
    """
    1. NODERIG_OVERRIDES_FILE environment variable
    2. overrides.yaml in the same directory as the node config
    """
    env = os.environ.get("NODERIG_OVERRIDES_FILE")
    if env:
        p = Path(env)
        if p.is_file():
            return p
        log.warning("NODERIG_OVERRIDES_FILE=%s does not exist, skipping", env)
        return None

    p = config_path.parent / "overrides.yaml"
    if p.is_file():
        return p
    return None


def _load_yaml(path: Path) -> dict:
    """Load a YAML file, expanding ${ENV_VAR} references."""
    raw = path.read_text()
    expanded = os.path.expandvars(raw)
    return yaml.safe_load(expanded) or {}


def load_config(path: str | Path) -> NodeConfig:
    """
    Load and validate a node YAML config.

    Host specific values (paths, kube context, versions pinned per node)
    may live in an ``overrides.yaml`` that is deep-merged on top before
    validation. ``${ENV_VAR}`` placeholders are expanded in both files.
    """
    path = Path(path)
    data = _load_yaml(path)

    overrides_path = _find_overrides_file(path)
    if overrides_path:
        log.debug("Merging overrides from %s", overrides_path)
        deep_merge(data, _load_yaml(overrides_path))

    return NodeConfig.model_validate(data)
