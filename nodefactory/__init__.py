"""
Node Factory: a shared tree of typed nodes for real-time clients.

Clients upsert and delete nodes, the service validates and persists
them, keeps a cache of expanded subtrees coherent with the store and
re-broadcasts every subtree that changed.
"""

from .config import NodeFactoryConfig
from .tree import (
    ROOT_NODE_ID,
    FactoryContext,
    MissingParentError,
    NodeFactory,
    NodeValidationError,
    TreeCache,
)

__version__ = "1.0.0"

__all__ = [
    "NodeFactoryConfig",
    "ROOT_NODE_ID",
    "FactoryContext",
    "MissingParentError",
    "NodeFactory",
    "NodeValidationError",
    "TreeCache",
]
