from __future__ import annotations

from collections.abc import Callable
from typing import Any

from .base import Source

SourceFactory = Callable[..., Source]

# In-process registry: site name -> constructor
_REGISTRY: dict[str, SourceFactory] = {}


def register(name: str) -> Callable[[SourceFactory], SourceFactory]:
    """
    Class decorator registering a source constructor under `name`.

        @register("remoteok")
        class RemoteOKSource: ...

    Re-registering the same constructor is a no-op; a different one is rejected.
    """
    key = (name or "").strip().lower()
    if not key:
        raise ValueError("Cannot register a source under an empty name.")

    def _decorator(factory: SourceFactory) -> SourceFactory:
        existing = _REGISTRY.get(key)
        if existing is not None and existing is not factory:
            raise ValueError(f"Source {key!r} already registered to {existing!r}.")
        _REGISTRY[key] = factory
        return factory

    return _decorator


def get(name: str) -> SourceFactory:
    """
    Look up a source constructor by name (case-insensitive).
    Raises KeyError if not found.
    """
    key = (name or "").strip().lower()
    if key not in _REGISTRY:
        raise KeyError(f"No source registered for {name!r}.")
    return _REGISTRY[key]


def create(name: str, params: dict[str, Any] | None = None) -> Source:
    """Instantiate the source registered under `name` with its configured params."""
    return get(name)(**dict(params or {}))


def all_sources() -> dict[str, SourceFactory]:
    return dict(_REGISTRY)
