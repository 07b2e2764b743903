"""Shared fixtures for node factory tests."""

import asyncio
from collections import Counter

import pytest

from nodefactory.stores.memory import MemoryNodeStore
from nodefactory.tree.cache import TreeCache
from nodefactory.tree.factory import FactoryContext, NodeFactory


class CountingStore(MemoryNodeStore):
    """MemoryNodeStore that records how often each store method is called."""

    def __init__(self):
        super().__init__()
        self.calls = Counter()

    async def get_node_with_id(self, node_id):
        self.calls["get_node_with_id"] += 1
        return await super().get_node_with_id(node_id)

    async def get_children_of_node_with_id(self, node_id):
        self.calls["get_children_of_node_with_id"] += 1
        return await super().get_children_of_node_with_id(node_id)

    async def get_all_nodes(self):
        self.calls["get_all_nodes"] += 1
        return await super().get_all_nodes()

    async def upsert_nodes(self, nodes):
        self.calls["upsert_nodes"] += 1
        return await super().upsert_nodes(nodes)

    async def delete_nodes(self, nodes):
        self.calls["delete_nodes"] += 1
        return await super().delete_nodes(nodes)

    @property
    def total_calls(self):
        return sum(self.calls.values())


@pytest.fixture
def run():
    """Drive a coroutine to completion on a fresh event loop."""
    return asyncio.run


@pytest.fixture
def store():
    return CountingStore()


@pytest.fixture
def cache():
    return TreeCache(max_items=100)


@pytest.fixture
def context(store, cache):
    return FactoryContext(store=store, cache=cache)


@pytest.fixture
def nodes(context):
    return NodeFactory(context)
