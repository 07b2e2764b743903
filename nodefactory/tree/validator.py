from __future__ import annotations

from typing import Any, Dict, Mapping

from .schema import NODE_SCHEMA, NODE_VALID_FIELDS, resolve_node_type


class NodeValidationError(ValueError):
    """Raised when a node field violates its schema check."""

    def __init__(self, field: str, message: str) -> None:
        super().__init__(message)
        self.field = field


def validate_and_format_node(node: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Validate a node against NODE_SCHEMA and strip unknown fields.

    Fields are checked in the order id, type, parent, value and the
    first failure is raised as NodeValidationError. Anything other than
    the recognized fields (including ``children``) is dropped from the
    returned copy.
    """
    if not isinstance(node, Mapping):
        raise NodeValidationError("id", NODE_SCHEMA["id"].message)

    for field, rule in NODE_SCHEMA.items():
        if not rule.check(node.get(field), node):
            raise NodeValidationError(field, rule.message)

    formatted = {field: node[field] for field in NODE_VALID_FIELDS}

    # Store the plain tag, never the enum member
    formatted["type"] = resolve_node_type(formatted["type"]).value

    return formatted
