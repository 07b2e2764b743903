from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Tuple

from ..stores.base import NodeStore
from .cache import TreeCache
from .schema import NODE_VALID_FIELDS, ROOT_NODE_ID, NodeType, is_leaf_node
from .validator import NodeValidationError, validate_and_format_node

logger = logging.getLogger(__name__)

Node = Dict[str, Any]


class MissingParentError(Exception):
    """Raised when an upserted node references a parent that does not exist."""
    pass


@dataclass(frozen=True)
class FactoryContext:
    """
    Everything a node operation needs: the durable store and the cache
    of expanded subtrees. Passed explicitly into every operation.
    """

    store: NodeStore
    cache: TreeCache


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------

def _recognized_fields(node: Mapping[str, Any]) -> Node:
    return {field: node[field] for field in NODE_VALID_FIELDS if field in node}


def _flatten_expansion(expanded: Node) -> List[Node]:
    """Pre-order flattening of an expanded node: node, then descendants."""
    flat: List[Node] = []
    stack = [expanded]

    while stack:
        current = stack.pop()
        flat.append(current)
        stack.extend(reversed(current.get("children") or []))

    return flat


def _remove_cached_child(cache: TreeCache, parent_id: Any, child_id: str) -> None:
    if not isinstance(parent_id, str):
        return

    parent = cache.get(parent_id)
    if parent is None or not parent.get("children"):
        return

    parent["children"][:] = [
        child for child in parent["children"] if child.get("id") != child_id
    ]


def _attach_cached_child(cache: TreeCache, parent_id: str, entry: Node) -> None:
    parent = cache.get(parent_id)
    if parent is None:
        return

    if cache.peek(entry["id"]) is not entry:
        # The child's subtree did not fit in the cache, so the parent's
        # expansion can no longer be trusted either
        cache.delete(parent_id)
        return

    children = parent.setdefault("children", [])
    for index, child in enumerate(children):
        if child.get("id") == entry["id"]:
            children[index] = entry
            return

    children.append(entry)


async def _gather_in_order(awaitables) -> List[Any]:
    """
    Await every item concurrently and raise the first failure in
    submission order, so batch errors are deterministic.
    """
    results = await asyncio.gather(*awaitables, return_exceptions=True)

    for result in results:
        if isinstance(result, BaseException):
            raise result

    return list(results)


async def get_cached_node_or_fetch(cache, store: NodeStore, node_id: str) -> Optional[Node]:
    cached = cache.get(node_id)
    if cached is not None:
        return cached

    return await store.get_node_with_id(node_id)


# ------------------------------------------------------------------
# Upsertion
# ------------------------------------------------------------------

CYCLE_MESSAGE = 'Node "parent" property must not reference the node itself or one of its descendants.'


async def _is_own_ancestor(
    context: FactoryContext,
    node_id: str,
    parent_id: Any,
    pending_parents: Optional[Mapping[str, str]] = None,
) -> bool:
    """
    Walk up from parent_id towards the root. True when node_id is met on
    the way. ``pending_parents`` overrides stored parents with those of a
    batch that has not been written yet.
    """
    pending_parents = pending_parents or {}
    seen = set()
    current = parent_id

    while isinstance(current, str) and current != ROOT_NODE_ID and current not in seen:
        if current == node_id:
            return True

        seen.add(current)

        if current in pending_parents:
            current = pending_parents[current]
            continue

        ancestor = await get_cached_node_or_fetch(context.cache, context.store, current)
        current = ancestor.get("parent") if ancestor else None

    return False

async def _resolve_upsertion(
    context: FactoryContext,
    candidate: Any,
) -> Tuple[Optional[Node], Optional[Node]]:
    """
    Returns (node to write or None for a no-op, existing node or None).
    """
    if not isinstance(candidate, Mapping):
        raise TypeError("Upsert expected an object for a node.")

    submitted = {k: v for k, v in candidate.items() if k != "children"}
    node_id = submitted.get("id")

    existing = None
    if isinstance(node_id, str):
        existing = await get_cached_node_or_fetch(context.cache, context.store, node_id)

    merged = {**_recognized_fields(existing), **submitted} if existing else submitted

    if merged.get("id") is None:
        merged["id"] = str(uuid.uuid4())

    node = validate_and_format_node(merged)

    if existing is not None and _recognized_fields(existing) == node:
        logger.debug("[NODE FACTORY] Unchanged, skipping upsert | id=%s", node["id"])
        return None, existing

    parent_changed = existing is None or existing.get("parent") != node["parent"]
    if parent_changed and await _is_own_ancestor(context, node["id"], node["parent"]):
        raise NodeValidationError("parent", CYCLE_MESSAGE)

    if node["parent"] != ROOT_NODE_ID:
        parent = await get_cached_node_or_fetch(context.cache, context.store, node["parent"])
        if parent is None:
            raise MissingParentError(
                "Cannot upsert node, since its parent node doesn't exist."
            )

    return node, existing


async def prepare_for_upsertion(context: FactoryContext, candidate: Any) -> Optional[Node]:
    """
    Merge a candidate over the node it refers to and validate the result.

    Partial updates are allowed: ``{"id": ..., "value": ...}`` keeps the
    stored type and parent. A fresh id is generated when the candidate
    has none. Returns None when the merged node is identical to the
    stored one.

    Raises
    ------
    TypeError
        The candidate is not a mapping.
    NodeValidationError
        A field fails its schema check, or the parent is the node itself
        or one of its descendants.
    MissingParentError
        The parent is neither the root nor an existing node.
    """
    node, _ = await _resolve_upsertion(context, candidate)
    return node


async def _cache_upserted_node(
    context: FactoryContext,
    node: Node,
    existing: Optional[Node],
) -> None:
    cache = context.cache
    previous_parent = existing.get("parent") if existing else None

    entry = cache.get(node["id"])
    if entry is not None:
        # In place, so every cached expansion holding this entry sees it
        entry.update(node)
        entry.setdefault("children", [])
    elif existing is None:
        entry = {**node, "children": []}
        cache.set(node["id"], entry)
    else:
        # Known node whose subtree is not cached, rebuild it from the store
        entry = await get_expanded_node_with_id(context, node["id"])
        if entry is None:
            return

    if previous_parent is not None and previous_parent != node["parent"]:
        _remove_cached_child(cache, previous_parent, node["id"])

    _attach_cached_child(cache, node["parent"], entry)


async def upsert_nodes(context: FactoryContext, candidates: List[Any]) -> List[Node]:
    """
    Validate, persist and cache a batch of nodes.

    Every candidate is prepared before anything is written, so a single
    invalid candidate aborts the whole batch. Unchanged nodes are
    dropped. Returns the nodes actually written.
    """
    if not isinstance(candidates, list):
        raise TypeError("`upsertNodes` expected an array of nodes to upsert.")

    prepared = await _gather_in_order(
        _resolve_upsertion(context, candidate) for candidate in candidates
    )

    writes = [(node, existing) for node, existing in prepared if node is not None]
    if not writes:
        return []

    nodes = [node for node, _ in writes]

    # Moves prepared independently can still close a loop between them
    if len(nodes) > 1:
        pending_parents = {node["id"]: node["parent"] for node in nodes}
        for node in nodes:
            if await _is_own_ancestor(context, node["id"], node["parent"], pending_parents):
                raise NodeValidationError("parent", CYCLE_MESSAGE)

    await context.store.upsert_nodes(nodes)

    for node, existing in writes:
        await _cache_upserted_node(context, node, existing)

    logger.info(
        "[NODE FACTORY] Upserted nodes | count=%d | skipped=%d",
        len(nodes),
        len(candidates) - len(nodes),
    )
    return nodes


# ------------------------------------------------------------------
# Deletion
# ------------------------------------------------------------------

async def _collect_subtree(context: FactoryContext, node: Node) -> List[Node]:
    cached = context.cache.get(node["id"])
    if cached is not None:
        return _flatten_expansion(cached)

    if is_leaf_node(node):
        return [node]

    children = await context.store.get_children_of_node_with_id(node["id"])
    nested = await _gather_in_order(_collect_subtree(context, child) for child in children)

    return [node] + [descendant for subtree in nested for descendant in subtree]


async def get_node_and_transitive_children(context: FactoryContext, node: Any) -> List[Node]:
    """
    Return [node, *descendants] as a flat list.

    A cached expansion is trusted as-is. Otherwise the node is re-read
    from the store; a node that no longer exists yields []. Leaf types
    never query for children.
    """
    node_id = node.get("id") if isinstance(node, Mapping) else None
    if not isinstance(node_id, str):
        return []

    cached = context.cache.get(node_id)
    if cached is not None:
        return _flatten_expansion(cached)

    stored = await context.store.get_node_with_id(node_id)
    if stored is None:
        return []

    return await _collect_subtree(context, stored)


async def delete_nodes(context: FactoryContext, candidates: List[Any]) -> List[Node]:
    """
    Delete nodes together with all of their descendants.

    Overlapping subtrees in one batch are deleted once. Returns only the
    requested nodes that existed, not their descendants.
    """
    if not isinstance(candidates, list):
        raise TypeError("`deleteNodes` requires an array of nodes to delete.")

    for candidate in candidates:
        if not isinstance(candidate, Mapping):
            raise TypeError("Delete expected an object for a node.")

    subtrees = await _gather_in_order(
        get_node_and_transitive_children(context, candidate) for candidate in candidates
    )

    requested: Dict[str, Node] = {}
    deleted: Dict[str, Node] = {}

    for subtree in subtrees:
        if not subtree:
            continue

        requested.setdefault(subtree[0]["id"], subtree[0])
        for node in subtree:
            deleted.setdefault(node["id"], node)

    for node_id, node in deleted.items():
        context.cache.delete(node_id, keep_ancestors=True)
        _remove_cached_child(context.cache, node.get("parent"), node_id)

    if not deleted:
        return []

    await context.store.delete_nodes(list(deleted.values()))

    logger.info(
        "[NODE FACTORY] Deleted nodes | requested=%d | total=%d",
        len(requested),
        len(deleted),
    )
    return list(requested.values())


# ------------------------------------------------------------------
# Expansion
# ------------------------------------------------------------------

async def _expand_children(context: FactoryContext, node_id: str) -> List[Node]:
    children = await context.store.get_children_of_node_with_id(node_id)
    expanded = await _gather_in_order(
        get_expanded_node_with_id(context, child["id"]) for child in children
    )

    # A child deleted between the two reads is dropped
    return [child for child in expanded if child is not None]


async def _expand(context: FactoryContext, node: Node) -> Node:
    if is_leaf_node(node):
        expanded = {**node, "children": []}
    else:
        expanded = {**node, "children": await _expand_children(context, node["id"])}

    # A child evicted while its siblings were expanded leaves this
    # expansion incomplete as a cache entry; return it uncached
    if all(context.cache.peek(child["id"]) is child for child in expanded["children"]):
        context.cache.set(node["id"], expanded)

    return expanded


async def get_expanded_node_with_id(context: FactoryContext, node_id: Any) -> Optional[Node]:
    if not isinstance(node_id, str):
        return None

    cached = context.cache.get(node_id)
    if cached is not None:
        logger.debug("[NODE FACTORY] Expansion cache hit | id=%s", node_id)
        return cached

    node = await context.store.get_node_with_id(node_id)
    if node is None:
        return None

    return await _expand(context, node)


async def get_expanded_root_node(context: FactoryContext) -> Node:
    """The root is synthesized on every call and never cached."""
    return {
        "id": ROOT_NODE_ID,
        "type": NodeType.ROOT.value,
        "value": "root",
        "parent": None,
        "children": await _expand_children(context, ROOT_NODE_ID),
    }


async def get_all_nodes(context: FactoryContext) -> List[Node]:
    return await context.store.get_all_nodes()


# ------------------------------------------------------------------
# Composite Actions
# ------------------------------------------------------------------

COMPOSITE_OPERATIONS: Dict[str, Callable[..., Awaitable[List[Node]]]] = {
    "upsertNodes": upsert_nodes,
    "deleteNodes": delete_nodes,
}


async def composite_action(context: FactoryContext, actions: List[Any]) -> List[Node]:
    """
    Run several named operations in one round trip.

    Actions run one after another, so a later action sees the writes of
    an earlier one. Results are flattened into a single list.
    """
    if not isinstance(actions, list):
        raise TypeError("`compositeAction` expected an array of actions.")

    results: List[Node] = []

    for action in actions:
        if not isinstance(action, Mapping):
            raise TypeError("Composite actions must be objects with an event and args.")

        event = action.get("event")
        operation = COMPOSITE_OPERATIONS.get(event)
        if operation is None:
            raise ValueError(f'Unknown composite action "{event}".')

        args = action.get("args", [])
        if not isinstance(args, list):
            raise TypeError("Composite action args must be an array.")

        results.extend(await operation(context, *args))

    return results


# ------------------------------------------------------------------
# Bound Facade
# ------------------------------------------------------------------

class NodeFactory:
    """
    Node operations bound to a single FactoryContext.

    This is what the server layer holds: one instance per store/cache
    pair, exposing only the operations clients may trigger.
    """

    def __init__(self, context: FactoryContext) -> None:
        self.context = context

    @property
    def store(self) -> NodeStore:
        return self.context.store

    @property
    def cache(self) -> TreeCache:
        return self.context.cache

    async def upsert_nodes(self, candidates: List[Any]) -> List[Node]:
        return await upsert_nodes(self.context, candidates)

    async def delete_nodes(self, candidates: List[Any]) -> List[Node]:
        return await delete_nodes(self.context, candidates)

    async def composite_action(self, actions: List[Any]) -> List[Node]:
        return await composite_action(self.context, actions)

    async def get_all_nodes(self) -> List[Node]:
        return await get_all_nodes(self.context)

    async def get_expanded_root_node(self) -> Node:
        return await get_expanded_root_node(self.context)

    async def get_expanded_node_with_id(self, node_id: Any) -> Optional[Node]:
        return await get_expanded_node_with_id(self.context, node_id)
