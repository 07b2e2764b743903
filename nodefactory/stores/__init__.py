"""
Persistent node stores.

Every backend implements the NodeStore contract, so the node factory
never knows which one it is talking to.
"""

from nodefactory.config import NodeFactoryConfig

from .base import NodeStore
from .memory import MemoryNodeStore


async def create_store(config: NodeFactoryConfig) -> NodeStore:
    """
    Factory for constructing the configured node store.

    Supported stores:
    - "memory" → volatile in-process map
    - "mongo"  → MongoDB collection
    """

    if config.store == "memory":
        return MemoryNodeStore()

    if config.store == "mongo":
        # Lazy import keeps pymongo off the memory-only path
        from .mongo import MongoNodeStore

        return await MongoNodeStore.connect(
            url=config.db_url,
            db=config.db_name,
            collection=config.db_collection,
        )

    raise ValueError(f"Unsupported store: {config.store}")


__all__ = ["NodeStore", "MemoryNodeStore", "create_store"]
