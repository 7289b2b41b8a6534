"""Process-wide registry for lazily constructed shared clients.

Provider clients, the record store and the job queues are created on first
access and reused for the lifetime of the process.
"""

import asyncio
import logging
import threading
from typing import Any, Awaitable, Callable, TypeVar

T = TypeVar("T")

_registry: dict[str, Any] = {}
_lock = threading.Lock()
_async_locks: dict[str, asyncio.Lock] = {}


def singleton(name: str, factory: Callable[[], T]) -> T:
    """Returns the value registered under ``name``, creating it once if missing."""
    with _lock:
        if name not in _registry:
            _registry[name] = factory()
        return _registry[name]


async def async_singleton(name: str, factory: Callable[[], Awaitable[T]]) -> T:
    """Async variant of ``singleton`` for values that need awaiting to build."""
    if name in _registry:
        return _registry[name]

    with _lock:
        lock = _async_locks.setdefault(name, asyncio.Lock())

    async with lock:
        if name not in _registry:
            value = await factory()
            with _lock:
                _registry[name] = value
    return _registry[name]


def get_singleton(name: str) -> Any | None:
    with _lock:
        return _registry.get(name)


def reset_singletons() -> dict[str, Any]:
    """Clears the registry and returns what was in it so callers can close it."""
    with _lock:
        previous = dict(_registry)
        _registry.clear()
        _async_locks.clear()
    if previous:
        logging.debug(f"Cleared singletons: {', '.join(previous)}")
    return previous
