# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/noderig/workflow/provider.py
from __future__ import annotations

from typing import Callable, Generic, Optional, TypeVar

T = TypeVar("T")


class Provider(Generic[T]):
    """
    Lazily builds a collaborator once and hands the same instance to every
    step that was given this provider.

        managers = Provider(lambda: ChartServiceManager(svc, paths, helm, kubectl))
        setup_chart_service(svc, managers)
    """

    def __init__(self, factory: Callable[[], T]):
        self._factory = factory
        self._instance: Optional[T] = None
        self._built = False

    def get(self) -> T:
        if not self._built:
            self._instance = self._factory()
            self._built = True
        return self._instance  # type: ignore[return-value]

    @property
    def built(self) -> bool:
        return self._built

    @classmethod
    def of(cls, instance: T) -> "Provider[T]":
        p: Provider[T] = cls(lambda: instance)
        return p
