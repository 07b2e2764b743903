from __future__ import annotations

from typing import Any, Dict, List, Optional
import logging

from .base import NodeStore

logger = logging.getLogger(__name__)


class MemoryNodeStore(NodeStore):
    """
    Volatile in-process store.

    Used by tests and local runs. Each instance owns its own ``data``
    map, and documents are copied on the way in and out so callers
    never share state with the store.
    """

    def __init__(self) -> None:
        self.data: Dict[str, Dict[str, Any]] = {}

    async def get_node_with_id(self, node_id: str) -> Optional[Dict[str, Any]]:
        node = self.data.get(node_id) if isinstance(node_id, str) else None
        return dict(node) if node is not None else None

    async def get_children_of_node_with_id(self, node_id: str) -> List[Dict[str, Any]]:
        return [
            dict(node)
            for node in self.data.values()
            if node.get("parent") == node_id
        ]

    async def get_all_nodes(self) -> List[Dict[str, Any]]:
        return [dict(node) for node in self.data.values()]

    async def upsert_nodes(self, nodes: List[Dict[str, Any]]) -> int:
        for node in nodes:
            self.data[node["id"]] = dict(node)

        logger.debug("[MEMORY STORE] Upserted | count=%d", len(nodes))
        return len(nodes)

    async def delete_nodes(self, nodes: List[Dict[str, Any]]) -> int:
        deleted = 0
        for node in nodes:
            if self.data.pop(node["id"], None) is not None:
                deleted += 1

        logger.debug("[MEMORY STORE] Deleted | count=%d", deleted)
        return deleted

    def __len__(self) -> int:
        return len(self.data)
