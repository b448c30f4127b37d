# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/noderig/software/installable.py
from __future__ import annotations

from abc import ABC, abstractmethod

from ..workflow.context import ExecutionContext


class Installable(ABC):
    """
    Two-phase lifecycle of one provisioned binary component.

    install phase:   download -> extract -> install -> cleanup,  undo: uninstall
    configure phase: configure,                                  undo: remove_configuration

    Each method raises ProvisionError tagged with its stage on failure.
    ``uninstall`` and ``remove_configuration`` must be complete and idempotent
    no matter which sub-actions actually ran.
    """

    name: str

    @abstractmethod
    def is_installed(self, ctx: ExecutionContext) -> bool: ...

    @abstractmethod
    def download(self, ctx: ExecutionContext) -> None: ...

    @abstractmethod
    def extract(self, ctx: ExecutionContext) -> None: ...

    @abstractmethod
    def install(self, ctx: ExecutionContext) -> None: ...

    @abstractmethod
    def cleanup(self, ctx: ExecutionContext) -> None: ...

    @abstractmethod
    def uninstall(self, ctx: ExecutionContext) -> None: ...

    @abstractmethod
    def is_configured(self, ctx: ExecutionContext) -> bool: ...

    @abstractmethod
    def configure(self, ctx: ExecutionContext) -> None: ...

    @abstractmethod
    def remove_configuration(self, ctx: ExecutionContext) -> None: ...
