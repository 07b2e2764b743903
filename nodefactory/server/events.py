"""
Binds node operations to websocket events.

Every mutating event runs its node operation and then re-broadcasts the
expanded subtree of each parent touched by the result. Failures never
escape to the transport: they are reported back to the socket that sent
the event.
"""

from __future__ import annotations

import logging
from pprint import pformat
from typing import Any, Callable, Dict, List, Mapping, Optional

from ..tree.factory import MissingParentError
from ..tree.schema import ROOT_NODE_ID
from ..tree.validator import NodeValidationError

logger = logging.getLogger(__name__)

SOCKET_EVENT_NAME_PREFIX = ""


class SocketEvents:
    ERROR = f"{SOCKET_EVENT_NAME_PREFIX}err"
    INIT = f"{SOCKET_EVENT_NAME_PREFIX}init"
    DUMP = f"{SOCKET_EVENT_NAME_PREFIX}dump"
    NODE_WAS_UPDATED = f"{SOCKET_EVENT_NAME_PREFIX}updated"


# Inbound event name -> NodeFactory method
BROADCAST_EVENTS: Dict[str, str] = {
    "upsertNodes": "upsert_nodes",
    "deleteNodes": "delete_nodes",
    "compositeAction": "composite_action",
}

CLIENT_ERRORS = (NodeValidationError, MissingParentError, TypeError, ValueError)


def node_updated_event(node_id: str) -> str:
    return f"{SocketEvents.NODE_WAS_UPDATED}:{node_id}"


# ------------------------------------------------------------------
# Error Reporting
# ------------------------------------------------------------------

async def handle_node_event_error(socket, event: str, error: BaseException) -> None:
    """Send the err event to the socket whose message failed."""
    logger.warning("[EVENTS] Handler failed | event=%s | error=%s", event, error)
    await socket.emit(SocketEvents.ERROR, {"event": event, "error": str(error)})


# ------------------------------------------------------------------
# Broadcasting
# ------------------------------------------------------------------

async def broadcast_node_update_event(
    broadcaster,
    nodes,
    results: Optional[List[Mapping[str, Any]]],
    summary: Any = None,
) -> List[str]:
    """
    Re-broadcast the subtree of every distinct parent in results.

    Returns the ids of the subtrees that were broadcast. A parent that
    no longer exists is skipped.
    """
    parent_ids = list(dict.fromkeys(
        node.get("parent")
        for node in results or []
        if isinstance(node, Mapping) and node.get("parent") is not None
    ))

    broadcast: List[str] = []

    for parent_id in parent_ids:
        if parent_id == ROOT_NODE_ID:
            expanded = await nodes.get_expanded_root_node()
        else:
            expanded = await nodes.get_expanded_node_with_id(parent_id)

        if expanded is None:
            logger.debug("[EVENTS] Parent vanished, nothing to broadcast | id=%s", parent_id)
            continue

        key = node_updated_event(expanded["id"])
        logger.info("[EVENTS] Broadcasting update | event=%s", key)

        await broadcaster.broadcast(key, expanded, summary)
        broadcast.append(expanded["id"])

    return broadcast


def create_broadcast_handler(nodes, broadcaster, socket, handler: Callable, event: str):
    """
    Wrap a node operation so it broadcasts its results.

    The returned coroutine function takes (data, summary). The wrapped
    coroutine function receives only data.
    """

    async def broadcast_handler(data: Any = None, summary: Any = None) -> None:
        logger.debug("[EVENTS] Incoming event | event=%s", event)

        try:
            results = await handler(data)
            await broadcast_node_update_event(broadcaster, nodes, results, summary)

        except CLIENT_ERRORS as e:
            await handle_node_event_error(socket, event, e)

        except Exception as e:
            logger.exception("[EVENTS] Unexpected failure | event=%s", event)
            await handle_node_event_error(socket, event, e)

    return broadcast_handler


# ------------------------------------------------------------------
# Socket Setup
# ------------------------------------------------------------------

def initialize_socket(socket, nodes) -> None:
    """Reply to the init event with the fully expanded tree."""

    async def on_init(data: Any = None, summary: Any = None) -> None:
        await socket.emit(SocketEvents.INIT, await nodes.get_expanded_root_node())

    socket.on(SocketEvents.INIT, on_init)


def setup_websocket_events(nodes, dump_enabled: bool = False):
    """
    Build the per-connection callback for a NodeFactory.

    The callback takes (broadcaster, socket) and registers the init,
    mutation and (when enabled) dump handlers on the socket.
    """

    def on_socket_connection(broadcaster, socket) -> None:
        initialize_socket(socket, nodes)

        if dump_enabled:
            async def on_dump(data: Any = None, summary: Any = None) -> None:
                all_nodes = await nodes.get_all_nodes()
                logger.info(
                    "[EVENTS] Dump | count=%d\n%s",
                    len(all_nodes),
                    pformat(all_nodes),
                )

            socket.on(SocketEvents.DUMP, on_dump)

        for event, method_name in BROADCAST_EVENTS.items():
            socket.on(
                event,
                create_broadcast_handler(
                    nodes,
                    broadcaster,
                    socket,
                    getattr(nodes, method_name),
                    event,
                ),
            )

    return on_socket_connection
