# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/noderig/errors.py
from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    """Pipeline stage (or condition) that produced a ProvisionError."""

    DOWNLOAD = "download"
    EXTRACTION = "extraction"
    INSTALLATION = "installation"
    CLEANUP = "cleanup"
    CONFIGURATION = "configuration"
    UNINSTALLATION = "uninstallation"
    ILLEGAL_STATE = "illegal_state"
    INTERNAL = "internal"
    CANCELLED = "cancelled"


class ProvisionError(RuntimeError):
    """
    Stage-tagged provisioning failure.

    Callers branch on ``err.kind``; the message is for humans only.
    ``properties`` holds structured details (url, file_path, resolution...).
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        *,
        cause: Optional[BaseException] = None,
        **properties: Any,
    ):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.cause = cause
        self.properties: Dict[str, Any] = dict(properties)
        if cause is not None:
            self.__cause__ = cause

    @property
    def resolution(self) -> Optional[str]:
        return self.properties.get("resolution")

    def __str__(self) -> str:
        if self.cause is not None:
            return f"{self.message}: {self.cause}"
        return self.message

    def __repr__(self) -> str:
        return f"ProvisionError(kind={self.kind.value!r}, message={self.message!r})"


class WorkflowBuildError(ValueError):
    """Invalid step or workflow composition, raised by builders."""


def is_kind(err: Optional[BaseException], kind: ErrorKind) -> bool:
    return isinstance(err, ProvisionError) and err.kind is kind


def wrap(err: BaseException, kind: ErrorKind, message: str, **properties: Any) -> ProvisionError:
    """
    Tag ``err`` with ``kind`` unless it already carries a kind.
    An already tagged error passes through unchanged so the origin stage wins.
    """
    if isinstance(err, ProvisionError):
        return err
    return ProvisionError(kind, message, cause=err, **properties)


# ---------------------------------------------------------------------
# Factories, one per stage
# ---------------------------------------------------------------------
def download_error(url: str, cause: Optional[BaseException] = None, **props: Any) -> ProvisionError:
    return ProvisionError(ErrorKind.DOWNLOAD, f"failed to download {url}", cause=cause, url=url, **props)


def extraction_error(file_path: str, cause: Optional[BaseException] = None, **props: Any) -> ProvisionError:
    return ProvisionError(
        ErrorKind.EXTRACTION, f"failed to extract {file_path}", cause=cause, file_path=file_path, **props
    )


def installation_error(name: str, cause: Optional[BaseException] = None, **props: Any) -> ProvisionError:
    return ProvisionError(
        ErrorKind.INSTALLATION, f"failed to install {name}", cause=cause, software_name=name, **props
    )


def cleanup_error(name: str, cause: Optional[BaseException] = None, **props: Any) -> ProvisionError:
    return ProvisionError(
        ErrorKind.CLEANUP, f"failed to clean up after {name}", cause=cause, software_name=name, **props
    )


def configuration_error(name: str, cause: Optional[BaseException] = None, **props: Any) -> ProvisionError:
    return ProvisionError(
        ErrorKind.CONFIGURATION, f"failed to configure {name}", cause=cause, software_name=name, **props
    )


def uninstallation_error(name: str, cause: Optional[BaseException] = None, **props: Any) -> ProvisionError:
    return ProvisionError(
        ErrorKind.UNINSTALLATION, f"failed to uninstall {name}", cause=cause, software_name=name, **props
    )


def illegal_state_error(message: str, cause: Optional[BaseException] = None, **props: Any) -> ProvisionError:
    return ProvisionError(ErrorKind.ILLEGAL_STATE, message, cause=cause, **props)


def internal_error(message: str, cause: Optional[BaseException] = None, **props: Any) -> ProvisionError:
    return ProvisionError(ErrorKind.INTERNAL, message, cause=cause, **props)


def cancelled_error(cause: Optional[BaseException] = None) -> ProvisionError:
    return ProvisionError(ErrorKind.CANCELLED, "operation cancelled", cause=cause)
