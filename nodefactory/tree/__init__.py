"""
Node tree management.

Schema and validation, the expanded-subtree cache, and the node factory
operations that keep the cache and the persistent store in step.
"""

from .cache import TreeCache
from .factory import FactoryContext, MissingParentError, NodeFactory
from .schema import NODE_TYPES, ROOT_NODE_ID, NodeType, is_leaf_node
from .validator import NodeValidationError, validate_and_format_node

__all__ = [
    "TreeCache",
    "FactoryContext",
    "MissingParentError",
    "NodeFactory",
    "NODE_TYPES",
    "ROOT_NODE_ID",
    "NodeType",
    "is_leaf_node",
    "NodeValidationError",
    "validate_and_format_node",
]
