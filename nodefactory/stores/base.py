from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional


class NodeStore(ABC):
    """
    Durable owner of every persisted node.

    The node factory only ever talks to storage through this contract,
    so the in-process and document-collection backends are
    interchangeable.

    Stores must:
        • Key nodes by their ``id`` field
        • Treat bulk writes as order-independent
        • Return None / [] for missing nodes instead of raising
        • Let I/O failures propagate unchanged
    """

    @abstractmethod
    async def get_node_with_id(self, node_id: str) -> Optional[Dict[str, Any]]:
        """Return the stored node with the given id, or None."""
        raise NotImplementedError

    @abstractmethod
    async def get_children_of_node_with_id(self, node_id: str) -> List[Dict[str, Any]]:
        """Return every stored node whose ``parent`` equals node_id."""
        raise NotImplementedError

    @abstractmethod
    async def get_all_nodes(self) -> List[Dict[str, Any]]:
        """
        Return every stored node.

        Debugging aid only, this is a full scan.
        """
        raise NotImplementedError

    @abstractmethod
    async def upsert_nodes(self, nodes: List[Dict[str, Any]]) -> Any:
        """Insert or replace the given nodes by id."""
        raise NotImplementedError

    @abstractmethod
    async def delete_nodes(self, nodes: List[Dict[str, Any]]) -> Any:
        """Delete the given nodes by id. Missing nodes are ignored."""
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Optional Lifecycle Hooks
    # ------------------------------------------------------------------

    async def health(self) -> bool:
        """
        Return the backend's health status.

        Default implementation assumes healthy.
        """
        return True

    async def close(self) -> None:
        """Release connections held by the store."""
        pass
