"""Process-wide cache of compiled schema trees.

Compiled trees are immutable, so an entry is written at most once and then
read without locking. Writes take a lock so two threads compiling the same
schema publish a single tree. There is no expiry: the host application
decides when to clear() (typically never, or on redeploy / type model change).
"""

import threading
from collections.abc import Callable, Hashable

from loguru import logger

from data_schema.schema.nodes import SchemaNode


class SchemaCache:
    """Get-or-compile cache keyed by schema identity."""

    def __init__(self) -> None:
        self._entries: dict[Hashable, SchemaNode] = {}
        self._lock = threading.Lock()

    def get(self, key: Hashable) -> SchemaNode | None:
        return self._entries.get(key)

    def get_or_compile(self, key: Hashable, compile_fn: Callable[[], SchemaNode]) -> SchemaNode:
        """Return the cached tree for key, compiling and publishing it on a miss."""
        node = self._entries.get(key)
        if node is not None:
            return node

        with self._lock:
            # Another thread may have published while we waited
            node = self._entries.get(key)
            if node is not None:
                return node

            logger.debug(f"Compiling schema for cache key {key!r}")
            node = compile_fn()
            self._entries[key] = node
            return node

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __contains__(self, key: Hashable) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)
