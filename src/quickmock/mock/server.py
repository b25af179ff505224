"""
QuickMock Mock Server

FastAPI-based HTTP mock server serving one MockServerConfig.

Features:
- Static routes with rules, sequences, random variants and templating
- Stateful CRUD resources backed by an in-memory record store
- Runtime overrides and profiles (delay, error injection, disable, passthrough)
- Upstream proxy passthrough for unmatched requests, with recordings
- One structured log entry per request on the instance log stream

Each instance runs its own uvicorn server on the caller's asyncio loop, so
any number of instances can listen side by side in one process.
"""

import asyncio
import contextlib
import json
import logging
import random
import socket
import time
from enum import Enum
from http import HTTPStatus
from typing import List, Dict, Any, Optional, Tuple, Union

import httpx
import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.responses import StreamingResponse

from ..common import URLMatcher, filter_hop_by_hop_headers, safe_json_parse
from .errors import NotFoundError, PortInUseError
from .logstream import LogListener, LogStream
from .matcher import RequestMatcher, ResourceMatch, RouteMatch
from .models import LogEntry, MockServerConfig, Recording, ResourceEntry, Route, RuntimeOverride
from .overrides import OverrideLayer, effective_delay, effective_error
from .responses import ResponseResolver
from .store import JsonRecord, RecordStore
from .template import TemplateResolver, build_context

RESET_PATH = '/__reset'

CORS_HEADERS = {
    'Access-Control-Allow-Origin': '*',
    'Access-Control-Allow-Methods': 'GET,POST,PUT,PATCH,DELETE,OPTIONS',
    'Access-Control-Allow-Headers': 'Content-Type,Authorization,X-Requested-With',
    'Access-Control-Max-Age': '86400',
}

# Status logged when the client goes away before the upstream answers
CLIENT_CLOSED_REQUEST = 499

MOCK_METHODS = ["GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS"]


class ServerState(str, Enum):
    """Listener lifecycle: stopped -> starting -> running -> stopping -> stopped."""

    STOPPED = 'stopped'
    STARTING = 'starting'
    RUNNING = 'running'
    STOPPING = 'stopping'


class EmbeddedUvicornServer(uvicorn.Server):
    """uvicorn server that leaves process signal handling to its host."""

    def install_signal_handlers(self):
        pass

    @contextlib.contextmanager
    def capture_signals(self):
        yield


def _reason(status: int) -> str:
    try:
        return HTTPStatus(status).phrase
    except ValueError:
        return 'Error'


def _int_param(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


class MockServer:
    """
    One mock API instance: matcher, store, response resolver and overrides
    behind its own HTTP listener.

    Example:
        config = MockServerConfig.from_dict({
            'port': 3001,
            'routes': [{'method': 'GET', 'path': '/health', 'response': {'ok': True}}],
            'resources': {'users': {'basePath': '/users', 'seed': {'name': '{{faker.name}}'}}},
        })
        server = MockServer(config)
        await server.start()
        ...
        await server.stop()

        # Or in-process, without a socket
        client = TestClient(server.app)
    """

    def __init__(
        self,
        config: MockServerConfig,
        template: Optional[TemplateResolver] = None,
        proxy_transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        Initialize mock server.

        Args:
            config: Server configuration (routes, resources, profiles, binding)
            template: Optional TemplateResolver (a default en_US resolver if None)
            proxy_transport: Optional httpx transport used for upstream calls
        """
        self.config = config
        self.template = template or TemplateResolver()
        self.responses = ResponseResolver(self.template)
        self.overrides = OverrideLayer()
        self.log_stream = LogStream()
        self.recordings: List[Recording] = []
        self.state = ServerState.STOPPED

        self.logger = logging.getLogger("quickmock.mock").getChild(config.id)
        self.logger.setLevel(getattr(logging, config.log_level.upper(), logging.INFO))

        self._proxy_transport = proxy_transport
        self._uvicorn: Optional[EmbeddedUvicornServer] = None
        self._serve_task: Optional[asyncio.Task] = None
        self._bound_port: Optional[int] = None

        self.routes: List[Route] = []
        self.resources: Dict[str, ResourceEntry] = {}
        self.store = RecordStore()
        self.matcher = RequestMatcher([], [])
        self._install(*self._build_state(config))
        self._apply_active_profile()

        self.app = self._create_app()

    # -- state -----------------------------------------------------------

    def _build_state(self, config: MockServerConfig) -> Tuple[List[Route], Dict[str, ResourceEntry], RecordStore]:
        """Build routes, resources and a freshly seeded store without touching live state."""
        store = RecordStore()
        resources: Dict[str, ResourceEntry] = {}

        for name, resource_config in config.resources.items():
            context = build_context()
            seed_items: List[JsonRecord] = []
            for _ in range(resource_config.count):
                item = self.template.resolve(resource_config.seed, context)
                if isinstance(item, dict):
                    seed_items.append(item)
            store.seed(name, resource_config.id_field, seed_items)
            resources[name] = ResourceEntry.from_config(name, resource_config)

        return list(config.routes), resources, store

    def _install(self, routes: List[Route], resources: Dict[str, ResourceEntry], store: RecordStore):
        self.routes = routes
        self.resources = resources
        self.store = store
        self.matcher = RequestMatcher(routes, list(resources.values()))

    def _apply_active_profile(self):
        name = self.config.active_profile
        if name is None:
            return
        profile = self.config.profiles.get(name)
        if profile is None:
            self.logger.warning(f"Active profile '{name}' does not exist; starting without overrides")
            return
        self.overrides.activate(profile)

    def reload(self, config: Union[MockServerConfig, Dict[str, Any]]):
        """
        Replace routes, resources and store seeding with a new config.

        Overrides and sequence cursors are cleared, then the config's active
        profile (if any) is re-applied. Host and port changes take effect on
        the next start.

        Raises:
            ConfigError: If ``config`` is a malformed dict; live state is untouched
        """
        if not isinstance(config, MockServerConfig):
            config = MockServerConfig.from_dict(config)

        state = self._build_state(config)

        self.config = config
        self.logger.setLevel(getattr(logging, config.log_level.upper(), logging.INFO))
        self._install(*state)
        self.overrides.deactivate()
        self.responses.reset_cursors()
        self._apply_active_profile()

        self.logger.info(
            f"Reloaded: {len(self.routes)} routes, {len(self.resources)} resources"
        )

    def activate_profile(self, name: str):
        """
        Activate a profile from the current config.

        Raises:
            NotFoundError: If the config has no profile by that name
        """
        profile = self.config.profiles.get(name)
        if profile is None:
            raise NotFoundError(f"Profile '{name}' not found")
        self.overrides.activate(profile)
        self.config.active_profile = name
        self.logger.info(f"Profile '{name}' activated")

    def deactivate_profile(self):
        self.overrides.deactivate()
        self.config.active_profile = None
        self.logger.info("Profile deactivated")

    def get_routes(self) -> List[Route]:
        return list(self.routes)

    def get_resources(self) -> List[ResourceEntry]:
        return list(self.resources.values())

    def get_store(self) -> RecordStore:
        return self.store

    @property
    def route_overrides(self) -> Dict[int, RuntimeOverride]:
        return self.overrides.routes

    @property
    def resource_overrides(self) -> Dict[str, RuntimeOverride]:
        return self.overrides.resources

    def subscribe_log(self, listener: LogListener):
        """Register a log listener; returns a callable that unsubscribes it."""
        return self.log_stream.subscribe(listener)

    def clear_recordings(self) -> int:
        count = len(self.recordings)
        self.recordings.clear()
        return count

    # -- lifecycle -------------------------------------------------------

    @property
    def running(self) -> bool:
        return self.state == ServerState.RUNNING

    @property
    def port(self) -> int:
        """Bound port while listening (resolves port 0), else the configured port."""
        return self._bound_port if self._bound_port is not None else self.config.port

    def _bind_socket(self) -> socket.socket:
        host = self.config.host
        family = socket.AF_INET6 if ':' in host else socket.AF_INET
        sock = socket.socket(family, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((host, self.config.port))
        except OSError:
            sock.close()
            raise
        return sock

    async def start(self):
        """
        Bind the configured host/port and start serving.

        No-op if already running or starting.

        Raises:
            PortInUseError: If the address cannot be bound
        """
        if self.state in (ServerState.RUNNING, ServerState.STARTING):
            return

        self.state = ServerState.STARTING
        try:
            sock = self._bind_socket()
        except OSError as e:
            self.state = ServerState.STOPPED
            raise PortInUseError(
                f"Cannot listen on {self.config.host}:{self.config.port}: {e.strerror or e}"
            ) from e

        config = uvicorn.Config(
            self.app,
            host=self.config.host,
            port=self.config.port,
            lifespan="off",
            log_config=None,
            access_log=False,
            timeout_graceful_shutdown=2
        )
        server = EmbeddedUvicornServer(config)
        task = asyncio.create_task(server.serve(sockets=[sock]))

        while not server.started and not task.done():
            await asyncio.sleep(0.01)

        if not server.started:
            self.state = ServerState.STOPPED
            sock.close()
            task.result()
            raise RuntimeError(f"Server '{self.config.id}' exited during startup")

        self._uvicorn = server
        self._serve_task = task
        self._bound_port = sock.getsockname()[1]
        self.state = ServerState.RUNNING
        self.logger.info(
            f"Listening on http://{self.config.host}:{self._bound_port} "
            f"({len(self.routes)} routes, {len(self.resources)} resources)"
        )

    async def stop(self):
        """Stop listening; routes, store, overrides and cursors are kept."""
        if self.state != ServerState.RUNNING or self._uvicorn is None:
            return

        self.state = ServerState.STOPPING
        self._uvicorn.should_exit = True
        try:
            await self._serve_task
        finally:
            self._uvicorn = None
            self._serve_task = None
            self._bound_port = None
            self.state = ServerState.STOPPED
            self.logger.info(f"Stopped server '{self.config.id}'")

    # -- HTTP pipeline ---------------------------------------------------

    def _create_app(self) -> FastAPI:
        """Create FastAPI application with a single catch-all route."""
        app = FastAPI(
            title=f"QuickMock - {self.config.name}",
            docs_url=None,
            redoc_url=None,
            openapi_url=None
        )

        @app.api_route("/{path:path}", methods=MOCK_METHODS)
        async def mock_request(request: Request, path: str):
            """Serve a mocked, proxied or 404 response."""
            return await self._handle_request(request)

        return app

    @staticmethod
    def _request_path(request: Request) -> str:
        raw_path = request.scope.get('raw_path')
        if raw_path:
            # Some ASGI clients leave the query string on raw_path
            return raw_path.decode('latin-1').split('?', 1)[0]
        return request.url.path

    async def _handle_request(self, request: Request) -> Response:
        """
        Run one request through the pipeline and emit its log entry.

        Args:
            request: FastAPI Request object

        Returns:
            Response for the client; unexpected errors become a generic 500
        """
        start_time = time.perf_counter()
        method = request.method.upper()
        path = self._request_path(request)

        try:
            response = await self._dispatch(request, method, path)
        except Exception:
            self.logger.exception(f"Unhandled error serving {method} {path}")
            response = self._json_response(500, {'error': 'Internal Server Error'})

        if self.config.cors:
            response.headers.update(CORS_HEADERS)

        self._emit_log(method, path, response.status_code, start_time)
        return response

    async def _dispatch(self, request: Request, method: str, path: str) -> Response:
        if self.config.cors and method == 'OPTIONS':
            return Response(status_code=204)

        if method == 'POST' and path == RESET_PATH:
            self.store.reset()
            self.logger.info("Store reset, all collections re-seeded")
            return self._json_response(200, {'message': 'All collections re-seeded'})

        match = self.matcher.match(method, path)

        if match is None:
            if self.config.proxy_target:
                return await self._proxy(request, method, path)
            return self._json_response(404, {
                'error': 'Not Found',
                'message': f"No mock for {method} {path}"
            })

        if isinstance(match, RouteMatch):
            override = self.overrides.route(match.index)
            label = f"Route {match.route.method} {match.route.path}"
        else:
            override = self.overrides.resource(match.resource.name)
            label = f"Resource '{match.resource.name}'"

        if override.disabled:
            return self._json_response(503, {
                'error': 'Service Unavailable',
                'message': f"{label} is disabled"
            })

        if override.passthrough:
            if not self.config.proxy_target:
                return self._json_response(502, {
                    'error': 'Bad Gateway',
                    'message': f"{label} is set to passthrough but no proxy target is configured"
                })
            return await self._proxy(request, method, path)

        body = safe_json_parse(await request.body())
        query = dict(request.query_params)

        if isinstance(match, RouteMatch):
            return await self._serve_route(match, override, request, query, body)
        return await self._serve_resource(match, override, method, query, body)

    async def _serve_route(
        self,
        match: RouteMatch,
        override: RuntimeOverride,
        request: Request,
        query: Dict[str, str],
        body: Any
    ) -> Response:
        route = match.route
        context = build_context(match.params, query, body, dict(request.headers))
        selection = self.responses.select(match.index, route, context)

        static_delay = selection.delay if selection.delay is not None else route.delay
        await self._apply_delay(effective_delay(override, static_delay, self.config.delay))

        failure = self._inject_failure(effective_error(override, route.error), route.error_status)
        if failure is not None:
            return failure

        resolved = self.responses.render(selection, context)
        return self._build_response(resolved.status, resolved.body, resolved.headers)

    async def _serve_resource(
        self,
        match: ResourceMatch,
        override: RuntimeOverride,
        method: str,
        query: Dict[str, str],
        body: Any
    ) -> Response:
        resource = match.resource
        await self._apply_delay(effective_delay(override, resource.delay, self.config.delay))

        failure = self._inject_failure(effective_error(override, resource.error), resource.error_status)
        if failure is not None:
            return failure

        return self._handle_crud(match, method, query, body)

    def _handle_crud(self, match: ResourceMatch, method: str, query: Dict[str, str], body: Any) -> Response:
        name = match.resource.name
        data = body if isinstance(body, dict) else {}

        if not match.is_item:
            if method == 'GET':
                filters = dict(query)
                limit = _int_param(filters.pop('limit', None))
                offset = _int_param(filters.pop('offset', None))
                result = self.store.list(name, filters, limit, offset)
                return self._json_response(200, result.items, headers={
                    'X-Total-Count': str(result.total),
                    'Access-Control-Expose-Headers': 'X-Total-Count',
                })
            return self._json_response(201, self.store.create(name, data))

        item_id = match.item_id
        if method == 'GET':
            record = self.store.get(name, item_id)
        elif method == 'PUT':
            record = self.store.update(name, item_id, data)
        elif method == 'PATCH':
            record = self.store.patch(name, item_id, data)
        else:
            record = {} if self.store.remove(name, item_id) else None

        if record is None:
            return self._json_response(404, {
                'error': 'Not Found',
                'message': f'{name} "{item_id}" not found'
            })
        if method == 'DELETE':
            return Response(status_code=204)
        return self._json_response(200, record)

    async def _apply_delay(self, delay_ms: float):
        """Suspend only this request for ``delay_ms`` milliseconds."""
        if delay_ms > 0:
            await asyncio.sleep(delay_ms / 1000)

    def _inject_failure(self, probability: float, error_status: Optional[int]) -> Optional[Response]:
        """Draw once against ``probability``; return the simulated failure response if it fires."""
        if probability <= 0 or random.random() >= probability:
            return None

        status = error_status or 500
        self.logger.debug(f"Injected failure with status {status}")
        return self._json_response(status, {
            'error': _reason(status),
            'message': 'Simulated failure (error injection)'
        })

    @staticmethod
    def _json_response(status: int, data: Any, headers: Optional[Dict[str, str]] = None) -> Response:
        return Response(
            content=json.dumps(data, indent=2),
            status_code=status,
            media_type="application/json",
            headers=headers
        )

    @staticmethod
    def _build_response(status: int, body: Any, headers: Dict[str, str]) -> Response:
        """Serialize a resolved body; strings are written raw, JSON values pretty-printed."""
        headers = dict(headers)
        if not any(key.lower() == 'content-type' for key in headers):
            headers['Content-Type'] = 'application/json'

        if body is None:
            content = b''
        elif isinstance(body, str):
            content = body
        else:
            content = json.dumps(body, indent=2)

        return Response(content=content, status_code=status, headers=headers)

    # -- proxy passthrough -----------------------------------------------

    @staticmethod
    async def _wait_for_disconnect(request: Request):
        while True:
            message = await request.receive()
            if message['type'] == 'http.disconnect':
                return

    async def _proxy(self, request: Request, method: str, path: str) -> Response:
        """
        Forward a request to the proxy target and stream the answer back.

        The upstream call is cancelled if the client disconnects before the
        upstream responds. A Recording is captured once the body has been
        relayed (or the relay was cut short).
        """
        url = URLMatcher.build_upstream_url(self.config.proxy_target, path, request.url.query)
        headers = filter_hop_by_hop_headers(
            dict(request.headers),
            additional_headers=['host', 'content-length']
        )
        headers['accept-encoding'] = 'identity'
        request_body = await request.body()

        client = httpx.AsyncClient(timeout=self.config.proxy_timeout, transport=self._proxy_transport)
        try:
            upstream_request = client.build_request(method, url, headers=headers, content=request_body)
        except httpx.InvalidURL as e:
            await client.aclose()
            self.logger.warning(f"Invalid upstream URL {url}: {e}")
            return self._json_response(502, {
                'error': 'Bad Gateway',
                'message': f"Invalid proxy target URL: {e}"
            })

        send_task = asyncio.create_task(client.send(upstream_request, stream=True))
        disconnect_task = asyncio.create_task(self._wait_for_disconnect(request))
        await asyncio.wait({send_task, disconnect_task}, return_when=asyncio.FIRST_COMPLETED)

        if not send_task.done():
            send_task.cancel()
            with contextlib.suppress(asyncio.CancelledError, httpx.HTTPError):
                await send_task
            await client.aclose()
            self.logger.info(f"Client disconnected; abandoned upstream {method} {url}")
            return Response(status_code=CLIENT_CLOSED_REQUEST)

        disconnect_task.cancel()

        try:
            upstream = send_task.result()
        except httpx.HTTPError as e:
            await client.aclose()
            self.logger.warning(f"Upstream {method} {url} failed: {e}")
            return self._json_response(502, {
                'error': 'Bad Gateway',
                'message': f"Upstream request failed: {e}"
            })

        response_headers = filter_hop_by_hop_headers(
            dict(upstream.headers),
            additional_headers=['content-length', 'content-encoding']
        )
        chunks: List[bytes] = []

        async def relay():
            try:
                async for chunk in upstream.aiter_bytes():
                    chunks.append(chunk)
                    yield chunk
            finally:
                self._record(Recording(
                    method=method,
                    path=path,
                    status=upstream.status_code,
                    request_headers=headers,
                    request_body=request_body.decode('utf-8', errors='replace') or None,
                    response_headers=response_headers,
                    body=b''.join(chunks).decode('utf-8', errors='replace') or None
                ))
                await upstream.aclose()
                await client.aclose()

        return StreamingResponse(relay(), status_code=upstream.status_code, headers=response_headers)

    def _record(self, recording: Recording):
        """Append a recording, dropping the oldest once the limit is reached."""
        limit = self.config.recording_limit
        if limit > 0 and len(self.recordings) >= limit:
            self.recordings.pop(0)
        self.recordings.append(recording)
        self.logger.debug(f"Recorded {recording.method} {recording.path} -> {recording.status}")

    def _emit_log(self, method: str, path: str, status: int, start_time: float):
        elapsed_ms = round((time.perf_counter() - start_time) * 1000, 2)
        self.log_stream.emit(LogEntry(
            method=method,
            path=path,
            status=status,
            elapsed_ms=elapsed_ms,
            server_id=self.config.id
        ))
        self.logger.info(f"{method} {path} -> {status} ({elapsed_ms:.1f}ms)")
