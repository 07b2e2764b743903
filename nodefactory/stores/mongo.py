from __future__ import annotations

from typing import Any, Dict, List, Optional
import logging

from pymongo import ASCENDING, AsyncMongoClient, DeleteOne, UpdateOne

from .base import NodeStore

logger = logging.getLogger(__name__)

DEFAULT_DB_URL = "mongodb://localhost:27017"
DEFAULT_DB_NAME = "node-factory"
DEFAULT_DB_COLLECTION = "nodes"

# Mongo's own key never leaves the store
_PROJECTION = {"_id": False}


class MongoNodeStore(NodeStore):
    """
    Document-collection backed store.

    Nodes are documents keyed by their ``id`` field. Writes are unordered
    bulk operations so a batch is applied in a single round trip.
    """

    def __init__(self, collection, client: AsyncMongoClient | None = None) -> None:
        self._collection = collection
        self._client = client

    @classmethod
    async def connect(
        cls,
        url: str = DEFAULT_DB_URL,
        db: str = DEFAULT_DB_NAME,
        collection: str = DEFAULT_DB_COLLECTION,
    ) -> "MongoNodeStore":
        """Open a client, select the collection and ensure its indexes."""
        client = AsyncMongoClient(url)
        store = cls(client[db][collection], client=client)
        await store.ensure_indexes()

        logger.info(
            "[MONGO STORE] Connected | db=%s | collection=%s",
            db,
            collection,
        )
        return store

    async def ensure_indexes(self) -> None:
        await self._collection.create_index([("id", ASCENDING)], unique=True)
        await self._collection.create_index([("parent", ASCENDING)])

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_node_with_id(self, node_id: str) -> Optional[Dict[str, Any]]:
        if not node_id:
            return None

        logger.debug("[MONGO STORE] Get node | id=%s", node_id)
        return await self._collection.find_one({"id": node_id}, _PROJECTION)

    async def get_children_of_node_with_id(self, node_id: str) -> List[Dict[str, Any]]:
        if not node_id:
            return []

        logger.debug("[MONGO STORE] Get children | id=%s", node_id)
        cursor = self._collection.find({"parent": node_id}, _PROJECTION)
        return await cursor.to_list(length=None)

    async def get_all_nodes(self) -> List[Dict[str, Any]]:
        logger.debug("[MONGO STORE] Get all nodes")
        cursor = self._collection.find({}, _PROJECTION)
        return await cursor.to_list(length=None)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def upsert_nodes(self, nodes: List[Dict[str, Any]]) -> Any:
        # bulk_write refuses an empty request list
        if not nodes:
            return None

        logger.info("[MONGO STORE] Upserting | count=%d", len(nodes))

        operations = [
            UpdateOne({"id": node["id"]}, {"$set": node}, upsert=True)
            for node in nodes
        ]
        return await self._collection.bulk_write(operations, ordered=False)

    async def delete_nodes(self, nodes: List[Dict[str, Any]]) -> Any:
        if not nodes:
            return None

        logger.info("[MONGO STORE] Deleting | count=%d", len(nodes))

        operations = [DeleteOne({"id": node["id"]}) for node in nodes]
        return await self._collection.bulk_write(operations, ordered=False)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def health(self) -> bool:
        if self._client is None:
            return True

        try:
            await self._client.admin.command("ping")
            return True
        except Exception:
            logger.warning("[MONGO STORE] Ping failed", exc_info=True)
            return False

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            logger.info("[MONGO STORE] Connection closed")
