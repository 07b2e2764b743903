import asyncio
import json
import logging

from nodefactory import NodeFactoryConfig, ROOT_NODE_ID
from nodefactory.server.app_core import NodeFactoryApp

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
)


async def main():

    # --------------------------------
    # Memory-backed factory
    # --------------------------------

    config = NodeFactoryConfig(environment="development", store="memory")
    nodes = await NodeFactoryApp.create(config)

    # --------------------------------
    # Build a small tree
    # --------------------------------

    [factory] = await nodes.upsert_nodes([
        {"type": "factory", "value": "Assembly line", "parent": ROOT_NODE_ID},
    ])

    await nodes.upsert_nodes([
        {"type": "number", "value": 15, "parent": factory["id"]},
        {"type": "number", "value": 42, "parent": factory["id"]},
    ])

    # Partial update: only the value changes
    await nodes.upsert_nodes([{"id": factory["id"], "value": "Renamed line"}])

    # Re-submitting an unchanged node is a no-op
    print("No-op upsert:", await nodes.upsert_nodes([{"id": factory["id"], "value": "Renamed line"}]))

    print("\n=== Tree ===\n")
    print(json.dumps(await nodes.get_expanded_root_node(), indent=2))

    # --------------------------------
    # Cascading delete
    # --------------------------------

    deleted = await nodes.delete_nodes([{"id": factory["id"]}])
    print("\nDeleted top-level nodes:", [node["id"] for node in deleted])
    print("Nodes left in store:", len(await nodes.get_all_nodes()))


if __name__ == "__main__":
    asyncio.run(main())
