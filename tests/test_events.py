"""Tests for websocket event wiring and connection fan-out."""

import uuid

from nodefactory.server.connections import ConnectionManager, SocketMessage, SocketSession
from nodefactory.server.events import (
    SocketEvents,
    broadcast_node_update_event,
    create_broadcast_handler,
    handle_node_event_error,
    node_updated_event,
    setup_websocket_events,
)
from nodefactory.tree.schema import ROOT_NODE_ID


def new_id():
    return str(uuid.uuid4())


class FakeSocket:
    """Minimal socket: records handlers and emitted events."""

    def __init__(self):
        self.handlers = {}
        self.emitted = []

    def on(self, event, handler):
        self.handlers[event] = handler

    async def emit(self, event, data=None, summary=None):
        self.emitted.append((event, data))


class FakeBroadcaster:

    def __init__(self):
        self.sent = []

    async def broadcast(self, event, data=None, summary=None):
        self.sent.append((event, data, summary))


class FakeWebSocket:

    def __init__(self, fail=False):
        self.fail = fail
        self.accepted = False
        self.sent = []
        self.client = None

    async def accept(self):
        self.accepted = True

    async def send_json(self, payload):
        if self.fail:
            raise RuntimeError("closed")
        self.sent.append(payload)


def factory_node(parent=ROOT_NODE_ID):
    return {"id": new_id(), "type": "factory", "parent": parent, "value": "x"}


# ------------------------------------------------------------------
# Broadcasting
# ------------------------------------------------------------------

class TestBroadcastNodeUpdateEvent:

    def test_root_parent_broadcasts_root(self, run, nodes):
        [node] = run(nodes.upsert_nodes([factory_node()]))
        broadcaster = FakeBroadcaster()

        sent = run(broadcast_node_update_event(broadcaster, nodes, [node], summary="added"))

        assert sent == [ROOT_NODE_ID]
        [(event, data, summary)] = broadcaster.sent
        assert event == f"updated:{ROOT_NODE_ID}"
        assert [child["id"] for child in data["children"]] == [node["id"]]
        assert summary == "added"

    def test_each_parent_broadcast_once(self, run, nodes):
        [parent] = run(nodes.upsert_nodes([factory_node()]))
        children = run(nodes.upsert_nodes([factory_node(parent["id"]), factory_node(parent["id"])]))
        broadcaster = FakeBroadcaster()

        run(broadcast_node_update_event(broadcaster, nodes, children))

        [(event, data, _)] = broadcaster.sent
        assert event == node_updated_event(parent["id"])
        assert len(data["children"]) == 2

    def test_vanished_parent_skipped(self, run, nodes):
        broadcaster = FakeBroadcaster()

        sent = run(broadcast_node_update_event(broadcaster, nodes, [factory_node(new_id())]))

        assert sent == []
        assert broadcaster.sent == []

    def test_empty_results(self, run, nodes):
        broadcaster = FakeBroadcaster()
        assert run(broadcast_node_update_event(broadcaster, nodes, [])) == []
        assert run(broadcast_node_update_event(broadcaster, nodes, None)) == []


class TestBroadcastHandler:

    def test_success_broadcasts(self, run, nodes):
        socket, broadcaster = FakeSocket(), FakeBroadcaster()
        handler = create_broadcast_handler(nodes, broadcaster, socket, nodes.upsert_nodes, "upsertNodes")

        run(handler([factory_node()], "summary"))

        assert [event for event, _, _ in broadcaster.sent] == [node_updated_event(ROOT_NODE_ID)]
        assert socket.emitted == []

    def test_client_error_reported_to_sender(self, run, nodes):
        socket, broadcaster = FakeSocket(), FakeBroadcaster()
        handler = create_broadcast_handler(nodes, broadcaster, socket, nodes.upsert_nodes, "upsertNodes")

        run(handler([{"type": "bogus"}]))

        assert broadcaster.sent == []
        [(event, data)] = socket.emitted
        assert event == SocketEvents.ERROR
        assert data["event"] == "upsertNodes"
        assert "type" in data["error"]

    def test_unexpected_error_reported_to_sender(self, run, nodes):
        socket, broadcaster = FakeSocket(), FakeBroadcaster()

        async def explode(data):
            raise RuntimeError("store offline")

        handler = create_broadcast_handler(nodes, broadcaster, socket, explode, "deleteNodes")
        run(handler([]))

        assert socket.emitted == [(SocketEvents.ERROR, {"event": "deleteNodes", "error": "store offline"})]

    def test_empty_result_broadcasts_nothing(self, run, nodes):
        socket, broadcaster = FakeSocket(), FakeBroadcaster()

        async def nothing_deleted(data):
            return []

        handler = create_broadcast_handler(nodes, broadcaster, socket, nothing_deleted, "deleteNodes")

        run(handler([]))

        assert broadcaster.sent == []
        assert socket.emitted == []


def test_handle_node_event_error(run):
    socket = FakeSocket()
    run(handle_node_event_error(socket, "upsertNodes", ValueError("nope")))
    assert socket.emitted == [("err", {"event": "upsertNodes", "error": "nope"})]


# ------------------------------------------------------------------
# Socket Setup
# ------------------------------------------------------------------

class TestSetupWebsocketEvents:

    def test_registers_handlers(self, nodes):
        socket = FakeSocket()
        setup_websocket_events(nodes)(FakeBroadcaster(), socket)

        assert set(socket.handlers) == {"init", "upsertNodes", "deleteNodes", "compositeAction"}

    def test_dump_only_when_enabled(self, run, nodes):
        socket = FakeSocket()
        setup_websocket_events(nodes, dump_enabled=True)(FakeBroadcaster(), socket)

        assert "dump" in socket.handlers
        run(socket.handlers["dump"]())
        assert socket.emitted == []

    def test_init_emits_root(self, run, nodes):
        [node] = run(nodes.upsert_nodes([factory_node()]))
        socket = FakeSocket()
        setup_websocket_events(nodes)(FakeBroadcaster(), socket)

        run(socket.handlers["init"]())

        [(event, data)] = socket.emitted
        assert event == "init"
        assert data["id"] == ROOT_NODE_ID
        assert [child["id"] for child in data["children"]] == [node["id"]]

    def test_composite_action_event(self, run, nodes):
        socket, broadcaster = FakeSocket(), FakeBroadcaster()
        setup_websocket_events(nodes)(broadcaster, socket)
        parent = factory_node()

        run(socket.handlers["compositeAction"]([
            {"event": "upsertNodes", "args": [[parent]]},
            {"event": "upsertNodes", "args": [[factory_node(parent["id"])]]},
        ]))

        assert [event for event, _, _ in broadcaster.sent] == [
            node_updated_event(ROOT_NODE_ID),
            node_updated_event(parent["id"]),
        ]


# ------------------------------------------------------------------
# Connections
# ------------------------------------------------------------------

class TestConnections:

    def test_emit_drops_empty_fields(self, run):
        websocket = FakeWebSocket()
        run(SocketSession(websocket).emit("init", {"id": ROOT_NODE_ID}))

        assert websocket.sent == [{"event": "init", "data": {"id": ROOT_NODE_ID}}]

    def test_dispatch(self, run):
        session = SocketSession(FakeWebSocket())
        received = []

        async def handler(data, summary):
            received.append((data, summary))

        session.on("ping", handler)

        assert session.handles("ping")
        assert run(session.dispatch(SocketMessage(event="ping", data=1, summary="s"))) is True
        assert run(session.dispatch(SocketMessage(event="other"))) is False
        assert received == [(1, "s")]

    def test_broadcast_reaches_every_socket(self, run):
        manager = ConnectionManager()
        first, second = FakeWebSocket(), FakeWebSocket()
        run(manager.connect(first))
        run(manager.connect(second))

        run(manager.broadcast("updated:x", {"id": "x"}, "summary"))

        expected = {"event": "updated:x", "data": {"id": "x"}, "summary": "summary"}
        assert first.accepted and second.accepted
        assert first.sent == [expected]
        assert second.sent == [expected]

    def test_failed_socket_dropped(self, run):
        manager = ConnectionManager()
        healthy, broken = FakeWebSocket(), FakeWebSocket(fail=True)
        run(manager.connect(healthy))
        run(manager.connect(broken))

        run(manager.broadcast("updated:x", {}))

        assert len(manager) == 1
        assert len(healthy.sent) == 1

    def test_disconnect(self, run):
        manager = ConnectionManager()
        session = run(manager.connect(FakeWebSocket()))

        manager.disconnect(session)
        manager.disconnect(session)

        assert len(manager) == 0
