from typing import Optional

from nodefactory.config import NodeFactoryConfig
from nodefactory.stores import NodeStore, create_store
from nodefactory.tree.cache import TreeCache
from nodefactory.tree.factory import FactoryContext, NodeFactory


class NodeFactoryApp:
    """
    Server-owned application assembler.
    SINGLE source of truth.

    This class wires together:
        Store
        Cache
        Node operations
    """

    @staticmethod
    async def create(
        config: NodeFactoryConfig,
        *,
        store: Optional[NodeStore] = None,
        cache: Optional[TreeCache] = None,
    ) -> NodeFactory:

        if cache is None:
            cache = TreeCache(max_items=config.cache_max_items)

        if store is None:
            store = await create_store(config)

        return NodeFactory(FactoryContext(store=store, cache=cache))
