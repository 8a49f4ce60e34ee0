"""Dependency container mapping class paths to factories."""

from __future__ import annotations

import threading
from typing import Any, Callable, Iterable, Optional

Build = Callable[[], Any]
Property = Callable[[Any], None]


class Dependency:
    """Thread-safe registry of factories keyed by ``module/path/ClassName``."""

    def __init__(self) -> None:
        self._builds: dict[str, Build] = {}
        self._guard = threading.Lock()

    def set(self, key: str, build: Build) -> None:
        with self._guard:
            self._builds[key] = build

    def get(self, key: str) -> Optional[Build]:
        with self._guard:
            return self._builds.get(key)

    def key(self, obj: Any) -> str:
        cls = obj if isinstance(obj, type) else type(obj)
        return cls.__module__.replace(".", "/") + "/" + cls.__qualname__

    def setdefault(self, key: str, build: Build) -> None:
        with self._guard:
            self._builds.setdefault(key, build)


container = Dependency()


def add_container(*builds: Build) -> None:
    """Register factories; the first factory for a class wins."""
    for build in builds:
        container.setdefault(container.key(build()), build)


def di(name: str) -> Any:
    """Build a fresh instance of the class registered under ``name``, or None."""
    build = container.get(name.lstrip("/"))
    return build() if build is not None else None


def apply_properties(obj: Any, properties: Iterable[Property]) -> Any:
    """Apply each property setter to ``obj`` in order and return it."""
    for prop in properties:
        prop(obj)
    return obj