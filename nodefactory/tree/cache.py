from __future__ import annotations

from collections import OrderedDict
from threading import RLock
from typing import Any, Dict, Iterator, List, Optional
import logging

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITEMS = 1000


class TreeCache:
    """
    Bounded, least-recently-used map of node id -> expanded node.

    The cache is a write-through mirror of recently touched subtrees and
    never the system of record. Entries are shared by reference: a parent's
    ``children`` list holds the same dict objects as the children's own
    entries, so patching an entry in place is visible from every expansion
    that contains it.

    Entries are linked to their ancestors through the ``parent`` field.
    Evicting an entry drops every cached ancestor too, so a cached
    expansion only ever contains descendants that are cached themselves.

    Each call is atomic. Sequences of calls are not, the node factory is
    responsible for keeping related entries in step.
    """

    def __init__(self, max_items: int = DEFAULT_MAX_ITEMS) -> None:
        if not isinstance(max_items, int) or max_items <= 0:
            raise ValueError("max_items must be a positive integer.")

        self._max_items = max_items
        self._entries: "OrderedDict[str, Dict[str, Any]]" = OrderedDict()
        self._lock = RLock()

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get(self, key: str, default: Any = None) -> Optional[Dict[str, Any]]:
        """Return the entry for key and mark it as recently used."""
        with self._lock:
            if key not in self._entries:
                return default

            self._entries.move_to_end(key)
            return self._entries[key]

    def peek(self, key: str, default: Any = None) -> Optional[Dict[str, Any]]:
        """Return the entry for key without touching its recency."""
        with self._lock:
            return self._entries.get(key, default)

    def has(self, key: str) -> bool:
        with self._lock:
            return key in self._entries

    def keys(self) -> List[str]:
        """Keys from least to most recently used."""
        with self._lock:
            return list(self._entries)

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def set(self, key: str, value: Dict[str, Any]) -> None:
        with self._lock:
            if key in self._entries:
                self._entries.move_to_end(key)

            self._entries[key] = value

            while len(self._entries) > self._max_items:
                evicted_key, evicted = self._entries.popitem(last=False)
                dropped = self._drop_ancestors(evicted)
                logger.debug(
                    "[TREE CACHE] Evicted | id=%s | ancestors_dropped=%d",
                    evicted_key,
                    dropped,
                )

    def delete(self, key: str, keep_ancestors: bool = False) -> bool:
        """
        Remove an entry. Its cached ancestors are dropped as well unless
        keep_ancestors is set, in which case the caller must patch them.
        """
        with self._lock:
            removed = self._entries.pop(key, None)
            if removed is None:
                return False

            if not keep_ancestors:
                self._drop_ancestors(removed)
            return True

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def _drop_ancestors(self, entry: Dict[str, Any]) -> int:
        # A cached expansion must never hold a descendant that left the cache
        dropped = 0
        parent_id = entry.get("parent")

        while parent_id is not None:
            parent = self._entries.pop(parent_id, None)
            if parent is None:
                break

            dropped += 1
            parent_id = parent.get("parent")

        return dropped

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def max_items(self) -> int:
        return self._max_items

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(self.keys())
