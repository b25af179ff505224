"""
QuickMock Management API

FastAPI app exposing an InstanceManager over HTTP for dashboards and
scripts: server CRUD and lifecycle, route/resource/profile editing, live
overrides, recordings, generated docs/types and server-sent log streams.
Everything lives under ``/__api``.
"""

import contextlib
import json
import logging
from typing import Any, AsyncIterator, Dict, Optional

from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse, StreamingResponse

from ..common import safe_json_parse
from .docs import generate_docs, generate_types
from .errors import ConfigError, InstanceNotLoadedError, NotFoundError, PortInUseError
from .logstream import LogStream
from .manager import InstanceManager
from .models import MockServerConfig, Profile, ResourceConfig, Route, create_default_config
from .recorder import recording_to_route
from .server import MockServer

API_PREFIX = "/__api"

# Fields a PATCH on a server may not change
IMMUTABLE_SERVER_FIELDS = ('id', 'createdAt', 'updatedAt')

logger = logging.getLogger("quickmock.admin")


async def _json_object(request: Request) -> Dict[str, Any]:
    body = safe_json_parse(await request.body())
    if not isinstance(body, dict):
        raise ConfigError("Request body must be a JSON object")
    return body


async def sse_events(stream: LogStream, server_id: Optional[str] = None) -> AsyncIterator[str]:
    """
    Render log entries as server-sent events.

    Args:
        stream: Log stream to follow
        server_id: Only forward entries from this server (all if None)
    """
    async for entry in stream.listen():
        if server_id is None or entry.server_id == server_id:
            yield f"data: {json.dumps(entry.to_dict())}\n\n"


def _sse_response(events: AsyncIterator[str]) -> StreamingResponse:
    return StreamingResponse(
        events,
        media_type="text/event-stream",
        headers={'Cache-Control': 'no-cache', 'X-Accel-Buffering': 'no'}
    )


def create_management_app(manager: InstanceManager) -> FastAPI:
    """
    Build the management API for ``manager``.

    Args:
        manager: InstanceManager whose servers are exposed

    Returns:
        FastAPI application

    Example:
        manager = InstanceManager(FileConfigStore())
        app = create_management_app(manager)
        uvicorn.run(app, port=4000)
    """
    @contextlib.asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await manager.stop_all()

    app = FastAPI(
        title="QuickMock Management API",
        docs_url=None,
        redoc_url=None,
        lifespan=lifespan
    )
    router = APIRouter(prefix=API_PREFIX)

    @app.exception_handler(NotFoundError)
    async def not_found(request: Request, exc: NotFoundError):
        return JSONResponse(status_code=404, content={'error': 'Not Found', 'message': str(exc)})

    @app.exception_handler(ConfigError)
    async def bad_config(request: Request, exc: ConfigError):
        return JSONResponse(status_code=400, content={'error': 'Bad Request', 'message': str(exc)})

    @app.exception_handler(PortInUseError)
    async def port_in_use(request: Request, exc: PortInUseError):
        return JSONResponse(status_code=400, content={'error': 'Port In Use', 'message': str(exc)})

    @app.exception_handler(InstanceNotLoadedError)
    async def not_loaded(request: Request, exc: InstanceNotLoadedError):
        return JSONResponse(status_code=400, content={'error': 'Bad Request', 'message': str(exc)})

    def require_instance(server_id: str) -> MockServer:
        manager.get_config(server_id)
        server = manager.get_instance(server_id)
        if server is None:
            raise InstanceNotLoadedError(f"Server '{server_id}' has not been started")
        return server

    def status_payload(server_id: str) -> Dict[str, Any]:
        return manager.status(server_id).to_dict()

    # -- servers ---------------------------------------------------------

    @router.get("/servers")
    async def list_servers():
        return JSONResponse(content=[status.to_dict() for status in manager.list()])

    @router.post("/servers")
    async def create_server(request: Request):
        data = await _json_object(request)
        data.pop('id', None)
        config = manager.create(create_default_config(**data))
        return JSONResponse(status_code=201, content=config.to_dict())

    @router.get("/servers/{server_id}")
    async def get_server(server_id: str):
        return JSONResponse(content=status_payload(server_id))

    @router.patch("/servers/{server_id}")
    async def update_server(server_id: str, request: Request):
        patch = await _json_object(request)
        for key in IMMUTABLE_SERVER_FIELDS:
            patch.pop(key, None)

        current = manager.get_config(server_id).to_dict()
        config = manager.reload(server_id, MockServerConfig.from_dict({**current, **patch}))
        return JSONResponse(content=config.to_dict())

    @router.delete("/servers/{server_id}")
    async def delete_server(server_id: str):
        manager.get_config(server_id)
        await manager.delete(server_id)
        return JSONResponse(content={'deleted': server_id})

    @router.post("/servers/{server_id}/start")
    async def start_server(server_id: str):
        await manager.start(server_id)
        return JSONResponse(content=status_payload(server_id))

    @router.post("/servers/{server_id}/stop")
    async def stop_server(server_id: str):
        manager.get_config(server_id)
        await manager.stop(server_id)
        return JSONResponse(content=status_payload(server_id))

    # -- routes ----------------------------------------------------------

    @router.get("/servers/{server_id}/routes")
    async def list_routes(server_id: str):
        config = manager.get_config(server_id)
        return JSONResponse(content=[route.to_dict() for route in config.routes])

    @router.post("/servers/{server_id}/routes")
    async def add_route(server_id: str, request: Request):
        config = manager.get_config(server_id)
        route = Route.from_dict(await _json_object(request), len(config.routes))
        config.routes.append(route)
        manager.reload(server_id, config)
        return JSONResponse(status_code=201, content={'index': len(config.routes) - 1, **route.to_dict()})

    def route_at(config: MockServerConfig, index: int) -> Route:
        if not 0 <= index < len(config.routes):
            raise NotFoundError(f"Route #{index} not found")
        return config.routes[index]

    @router.patch("/servers/{server_id}/routes/{index}")
    async def update_route(server_id: str, index: int, request: Request):
        config = manager.get_config(server_id)
        current = route_at(config, index)
        route = Route.from_dict({**current.to_dict(), **await _json_object(request)}, index)
        config.routes[index] = route
        manager.reload(server_id, config)
        return JSONResponse(content=route.to_dict())

    @router.delete("/servers/{server_id}/routes/{index}")
    async def delete_route(server_id: str, index: int):
        config = manager.get_config(server_id)
        route_at(config, index)
        removed = config.routes.pop(index)
        manager.reload(server_id, config)
        return JSONResponse(content=removed.to_dict())

    # -- resources -------------------------------------------------------

    @router.get("/servers/{server_id}/resources")
    async def list_resources(server_id: str):
        config = manager.get_config(server_id)
        return JSONResponse(content={name: res.to_dict() for name, res in config.resources.items()})

    @router.post("/servers/{server_id}/resources")
    async def add_resource(server_id: str, request: Request):
        data = await _json_object(request)
        name = data.pop('name', None)
        if not isinstance(name, str) or not name:
            raise ConfigError("'name' is required")

        config = manager.get_config(server_id)
        config.resources[name] = ResourceConfig.from_dict(data, name)
        manager.reload(server_id, config)
        return JSONResponse(status_code=201, content={'name': name, **config.resources[name].to_dict()})

    def resource_named(config: MockServerConfig, name: str) -> ResourceConfig:
        if name not in config.resources:
            raise NotFoundError(f"Resource '{name}' not found")
        return config.resources[name]

    @router.patch("/servers/{server_id}/resources/{name}")
    async def update_resource(server_id: str, name: str, request: Request):
        config = manager.get_config(server_id)
        current = resource_named(config, name)
        config.resources[name] = ResourceConfig.from_dict(
            {**current.to_dict(), **await _json_object(request)}, name
        )
        manager.reload(server_id, config)
        return JSONResponse(content=config.resources[name].to_dict())

    @router.delete("/servers/{server_id}/resources/{name}")
    async def delete_resource(server_id: str, name: str):
        config = manager.get_config(server_id)
        removed = resource_named(config, name)
        del config.resources[name]
        manager.reload(server_id, config)
        return JSONResponse(content=removed.to_dict())

    # -- profiles --------------------------------------------------------

    @router.get("/servers/{server_id}/profiles")
    async def list_profiles(server_id: str):
        config = manager.get_config(server_id)
        return JSONResponse(content={
            'activeProfile': config.active_profile,
            'profiles': {name: profile.to_dict() for name, profile in config.profiles.items()},
        })

    @router.post("/servers/{server_id}/profiles")
    async def create_profile(server_id: str, request: Request):
        data = await _json_object(request)
        name = data.get('name')
        if not isinstance(name, str) or not name:
            raise ConfigError("'name' is required")

        if data.get('fromOverrides'):
            # Snapshot whatever overrides are live right now
            server = require_instance(server_id)
            profile = server.overrides.to_profile(name, str(data.get('description') or ''))
        else:
            profile = Profile.from_dict(data, name)

        manager.save_profile(server_id, profile)
        return JSONResponse(status_code=201, content=profile.to_dict())

    @router.post("/servers/{server_id}/profiles/deactivate")
    async def deactivate_profile(server_id: str):
        manager.deactivate_profile(server_id)
        return JSONResponse(content={'activeProfile': None})

    @router.patch("/servers/{server_id}/profiles/{name}")
    async def update_profile(server_id: str, name: str, request: Request):
        config = manager.get_config(server_id)
        if name not in config.profiles:
            raise NotFoundError(f"Profile '{name}' not found")

        merged = {**config.profiles[name].to_dict(), **await _json_object(request)}
        profile = Profile.from_dict(merged, name)
        manager.save_profile(server_id, profile)
        return JSONResponse(content=profile.to_dict())

    @router.delete("/servers/{server_id}/profiles/{name}")
    async def delete_profile(server_id: str, name: str):
        manager.delete_profile(server_id, name)
        return JSONResponse(content={'deleted': name})

    @router.post("/servers/{server_id}/profiles/{name}/activate")
    async def activate_profile(server_id: str, name: str):
        manager.activate_profile(server_id, name)
        return JSONResponse(content={'activeProfile': name})

    # -- overrides -------------------------------------------------------

    @router.get("/servers/{server_id}/overrides")
    async def get_overrides(server_id: str):
        return JSONResponse(content=require_instance(server_id).overrides.snapshot())

    @router.patch("/servers/{server_id}/overrides/routes/{index}")
    async def set_route_override(server_id: str, index: int, request: Request):
        server = require_instance(server_id)
        override = server.overrides.set_route(index, await _json_object(request))
        return JSONResponse(content=override.to_dict())

    @router.delete("/servers/{server_id}/overrides/routes/{index}")
    async def clear_route_override(server_id: str, index: int):
        cleared = require_instance(server_id).overrides.clear_route(index)
        return JSONResponse(content={'cleared': cleared})

    @router.patch("/servers/{server_id}/overrides/resources/{name}")
    async def set_resource_override(server_id: str, name: str, request: Request):
        server = require_instance(server_id)
        override = server.overrides.set_resource(name, await _json_object(request))
        return JSONResponse(content=override.to_dict())

    @router.delete("/servers/{server_id}/overrides/resources/{name}")
    async def clear_resource_override(server_id: str, name: str):
        cleared = require_instance(server_id).overrides.clear_resource(name)
        return JSONResponse(content={'cleared': cleared})

    # -- recordings ------------------------------------------------------

    @router.get("/servers/{server_id}/recordings")
    async def list_recordings(server_id: str):
        manager.get_config(server_id)
        server = manager.get_instance(server_id)
        recordings = server.recordings if server is not None else []
        return JSONResponse(content={
            'total': len(recordings),
            'recordings': [recording.to_dict() for recording in recordings],
        })

    @router.delete("/servers/{server_id}/recordings")
    async def clear_recordings(server_id: str):
        manager.get_config(server_id)
        server = manager.get_instance(server_id)
        cleared = server.clear_recordings() if server is not None else 0
        return JSONResponse(content={'cleared': cleared})

    @router.post("/servers/{server_id}/recordings/{index}/promote")
    async def promote_recording(server_id: str, index: int):
        server = require_instance(server_id)
        if not 0 <= index < len(server.recordings):
            raise NotFoundError(f"Recording #{index} not found")

        route = recording_to_route(server.recordings[index])
        config = manager.get_config(server_id)
        config.routes.append(route)
        manager.reload(server_id, config)
        logger.info(f"Promoted recording #{index} to route {route.method} {route.path}")
        return JSONResponse(status_code=201, content={'index': len(config.routes) - 1, **route.to_dict()})

    # -- docs ------------------------------------------------------------

    @router.get("/servers/{server_id}/docs")
    async def server_docs(server_id: str):
        return PlainTextResponse(generate_docs(manager.get_config(server_id)), media_type="text/markdown")

    @router.get("/servers/{server_id}/types")
    async def server_types(server_id: str):
        return PlainTextResponse(generate_types(manager.get_config(server_id)), media_type="text/typescript")

    # -- logs ------------------------------------------------------------

    @router.get("/servers/{server_id}/log")
    async def server_log(server_id: str):
        manager.get_config(server_id)
        return _sse_response(sse_events(manager.log_stream, server_id))

    @router.get("/log")
    async def global_log():
        return _sse_response(sse_events(manager.log_stream))

    app.include_router(router)
    return app
