from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, FastAPI, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel, ValidationError

from nodefactory import __version__
from nodefactory.config import NodeFactoryConfig
from nodefactory.server.app_core import NodeFactoryApp
from nodefactory.server.connections import ConnectionManager, SocketMessage
from nodefactory.server.events import (
    SocketEvents,
    broadcast_node_update_event,
    setup_websocket_events,
)
from nodefactory.tree.factory import MissingParentError, NodeFactory
from nodefactory.tree.validator import NodeValidationError

import logging

# ============================================================
# LOGGING
# ============================================================

logger = logging.getLogger("nodefactory.server")

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

# ============================================================
# Models
# ============================================================

class UpsertRequest(BaseModel):
    nodes: List[Dict[str, Any]]
    summary: Optional[Any] = None

class DeleteRequest(BaseModel):
    nodes: List[Dict[str, Any]]
    summary: Optional[Any] = None

class CompositeActionModel(BaseModel):
    event: str
    args: List[Any] = []

class CompositeRequest(BaseModel):
    actions: List[CompositeActionModel]
    summary: Optional[Any] = None

class MutationResponse(BaseModel):
    count: int
    nodes: List[Dict[str, Any]]


router = APIRouter()


def get_nodes(request: Request) -> NodeFactory:
    return request.app.state.nodes


# ============================================================
# Mutation Boundary
# ============================================================

async def run_mutation(request: Request, operation, payload, summary) -> MutationResponse:
    """
    Run a node operation, map its failures onto HTTP errors and
    broadcast the result to every connected socket.
    """
    nodes = get_nodes(request)

    try:
        results = await operation(payload)

    except NodeValidationError as e:
        raise HTTPException(status_code=400, detail={"field": e.field, "error": str(e)})

    except MissingParentError as e:
        raise HTTPException(status_code=409, detail=str(e))

    except (TypeError, ValueError) as e:
        raise HTTPException(status_code=400, detail=str(e))

    except Exception:
        logger.exception("[MUTATION] Execution failed")
        raise HTTPException(status_code=500, detail="Internal error")

    # The write is committed by now, a failed broadcast must not hide it
    try:
        await broadcast_node_update_event(request.app.state.connections, nodes, results, summary)
    except Exception:
        logger.exception("[MUTATION] Broadcast failed after write | count=%d", len(results))

    return MutationResponse(count=len(results), nodes=results)


# ============================================================
# Health
# ============================================================

@router.get("/health")
async def health(request: Request):
    config: NodeFactoryConfig = request.app.state.config
    nodes = get_nodes(request)

    return {
        "status": "ok",
        "environment": config.environment,
        "store": config.store,
        "store_healthy": await nodes.store.health(),
        "cached_nodes": len(nodes.cache),
        "connections": len(request.app.state.connections),
    }


# ============================================================
# Reads
# ============================================================

@router.get("/tree")
async def get_tree(request: Request):
    return await get_nodes(request).get_expanded_root_node()


@router.get("/nodes")
async def list_nodes(request: Request):
    # Full scan, debugging only
    if request.app.state.config.is_production:
        raise HTTPException(status_code=404, detail="Not Found")

    return await get_nodes(request).get_all_nodes()


@router.get("/nodes/{node_id}")
async def get_node(node_id: str, request: Request):
    node = await get_nodes(request).get_expanded_node_with_id(node_id)
    if node is None:
        raise HTTPException(status_code=404, detail="Node not found")
    return node


# ============================================================
# Mutations
# ============================================================

@router.post("/nodes", response_model=MutationResponse)
async def upsert_nodes(body: UpsertRequest, request: Request):
    nodes = get_nodes(request)
    return await run_mutation(request, nodes.upsert_nodes, body.nodes, body.summary)


@router.post("/nodes/delete", response_model=MutationResponse)
async def delete_nodes(body: DeleteRequest, request: Request):
    nodes = get_nodes(request)
    return await run_mutation(request, nodes.delete_nodes, body.nodes, body.summary)


@router.post("/composite", response_model=MutationResponse)
async def composite_action(body: CompositeRequest, request: Request):
    nodes = get_nodes(request)
    actions = [action.model_dump() for action in body.actions]
    return await run_mutation(request, nodes.composite_action, actions, body.summary)


# ============================================================
# Websocket
# ============================================================

@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    state = websocket.app.state
    connections: ConnectionManager = state.connections

    session = await connections.connect(websocket)
    state.on_socket_connection(connections, session)

    try:
        while True:
            raw = await websocket.receive_text()

            try:
                message = SocketMessage.model_validate_json(raw)
            except ValidationError as e:
                await session.emit(
                    SocketEvents.ERROR,
                    {"event": None, "error": f"Malformed message: {e.errors()[0]['msg']}"},
                )
                continue

            if not await session.dispatch(message):
                await session.emit(
                    SocketEvents.ERROR,
                    {"event": message.event, "error": f'Unknown event "{message.event}".'},
                )

    except WebSocketDisconnect:
        pass

    finally:
        connections.disconnect(session)


# ============================================================
# FastAPI App
# ============================================================

def create_app(
    config: Optional[NodeFactoryConfig] = None,
    nodes: Optional[NodeFactory] = None,
) -> FastAPI:
    """
    Build the HTTP + websocket application.

    When ``nodes`` is given it is used as-is and left open on shutdown,
    otherwise the store and cache are assembled from the config.
    """
    config = config or NodeFactoryConfig.from_env()

    logging.basicConfig(level=config.log_level, format=LOG_FORMAT)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        factory = nodes or await NodeFactoryApp.create(config)

        app.state.nodes = factory
        app.state.on_socket_connection = setup_websocket_events(
            factory,
            dump_enabled=not config.is_production,
        )

        logger.info(
            "[SERVER] Ready | environment=%s | store=%s",
            config.environment,
            config.store,
        )

        yield

        if nodes is None:
            await factory.store.close()

        logger.info("[SERVER] Shut down")

    app = FastAPI(title="Node Factory", version=__version__, lifespan=lifespan)
    app.state.config = config
    app.state.connections = ConnectionManager()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router)

    if config.static_directory:
        app.mount(
            "/",
            StaticFiles(directory=config.static_directory, html=True),
            name="static",
        )
    else:
        @app.api_route("/{path:path}", methods=["GET", "POST", "PUT", "PATCH", "DELETE"])
        async def unauthorized(path: str):
            return PlainTextResponse("Unauthorized", status_code=401)

    return app


def main() -> None:
    import uvicorn

    config = NodeFactoryConfig.from_env()
    uvicorn.run(
        create_app(config),
        host="0.0.0.0",
        port=config.port,
        log_level=config.log_level.lower(),
    )


if __name__ == "__main__":
    main()
