"""Per-path lock registry enforcing a single writer per artifact path.

Every synchronizer targeting the same artifact path, in the same event loop,
serializes its check/replace/resolve sequence through one asyncio.Lock.
Coordination between processes is not covered and remains the caller's
responsibility.
"""

from __future__ import annotations

import asyncio
import threading
import weakref
from pathlib import Path

_registry_lock = threading.Lock()
_locks: weakref.WeakValueDictionary[tuple[int, str], asyncio.Lock] = weakref.WeakValueDictionary()


def _key(path: Path) -> tuple[int, str]:
    loop = asyncio.get_running_loop()
    return id(loop), str(Path(path).expanduser().resolve())


def path_lock(path: Path) -> asyncio.Lock:
    """Return the lock guarding ``path`` in the running event loop.

    Paths are resolved first, so different spellings of the same file share
    a lock. Must be called from within a coroutine.

    Args:
        path: Artifact path to guard.

    Returns:
        The shared asyncio.Lock for the path.

    Example:
        >>> async with path_lock(config.artifact_path):
        ...     ...
    """
    key = _key(path)
    with _registry_lock:
        lock = _locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            _locks[key] = lock
        return lock
