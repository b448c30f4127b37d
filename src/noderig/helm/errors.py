# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/noderig/helm/errors.py
class HelmError(RuntimeError):
    """Base class for Helm-related failures."""

class HelmReleaseNotFound(HelmError):
    """The release named in the command does not exist."""
