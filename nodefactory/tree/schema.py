from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from numbers import Real
from typing import Any, Callable, Dict, Mapping


ROOT_NODE_ID = "00000000-0000-0000-0000-000000000000"

# Versions 1-5 as produced by the uuid module, plus the nil UUID
# reserved for the root node.
_UUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


class NodeType(str, Enum):
    """Enumerated tag for every node type the tree accepts."""

    ROOT = "root"
    FACTORY = "factory"
    NUMBER = "number"


@dataclass(frozen=True)
class NodeTypeSpec:
    """
    Declarative contract for a single node type.

    is_leaf
        Leaf types never have children, so traversal stops there
        without asking the store.

    validate
        Predicate applied to the node's ``value``.
    """

    is_leaf: bool
    validate: Callable[[Any], bool]

    def __post_init__(self):
        if not callable(self.validate):
            raise TypeError("validate must be callable.")


def _is_string(value: Any) -> bool:
    return isinstance(value, str)


def _is_number(value: Any) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool)


# ------------------------------------------------------------------
# Type Dispatch Table
# ------------------------------------------------------------------

NODE_TYPES: Dict[NodeType, NodeTypeSpec] = {
    NodeType.ROOT: NodeTypeSpec(is_leaf=False, validate=_is_string),
    NodeType.FACTORY: NodeTypeSpec(is_leaf=False, validate=_is_string),
    NodeType.NUMBER: NodeTypeSpec(is_leaf=True, validate=_is_number),
}


def resolve_node_type(type_: Any) -> NodeType | None:
    """Map a raw ``type`` field onto its enum member, or None."""
    if isinstance(type_, NodeType):
        return type_

    if not isinstance(type_, str):
        return None

    try:
        return NodeType(type_)
    except ValueError:
        return None


def is_uuid(value: Any) -> bool:
    """True for UUID strings, including the nil UUID."""
    if not isinstance(value, str):
        return False
    return value == ROOT_NODE_ID or bool(_UUID_PATTERN.match(value))


def is_node_id(value: Any) -> bool:
    """True for UUIDs usable as a node id (the root id is reserved)."""
    return is_uuid(value) and value != ROOT_NODE_ID


def is_leaf_node(node: Mapping[str, Any]) -> bool:
    node_type = resolve_node_type(node.get("type"))
    if node_type is None:
        return False
    return NODE_TYPES[node_type].is_leaf


def _check_value(value: Any, node: Mapping[str, Any]) -> bool:
    node_type = resolve_node_type(node.get("type"))
    if node_type is None:
        return False
    return NODE_TYPES[node_type].validate(value)


@dataclass(frozen=True)
class FieldCheck:
    check: Callable[[Any, Mapping[str, Any]], bool]
    message: str


# ------------------------------------------------------------------
# Field Schema (checked in declaration order)
# ------------------------------------------------------------------

_TYPE_NAMES = ", ".join(t.value for t in NodeType)

NODE_SCHEMA: Dict[str, FieldCheck] = {
    "id": FieldCheck(
        check=lambda value, node: is_node_id(value),
        message='Node "id" property must be a valid v4 UUID.',
    ),
    "type": FieldCheck(
        check=lambda value, node: resolve_node_type(value) is not None,
        message=f'Node "type" property must be one of [{_TYPE_NAMES}].',
    ),
    "parent": FieldCheck(
        check=lambda value, node: is_uuid(value),
        message='Node "parent" property must be a valid v4 UUID.',
    ),
    "value": FieldCheck(
        check=_check_value,
        message='Node "value" property is invalid.',
    ),
}

NODE_VALID_FIELDS = tuple(NODE_SCHEMA)
