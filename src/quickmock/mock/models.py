"""
QuickMock Data Model

Dataclasses for routes, resources, runtime overrides, profiles and the
persisted server config. Each type reads and writes the camelCase JSON
shape used in route files and the config store.
"""

import secrets
import time
from dataclasses import dataclass, field
from typing import List, Dict, Any, Optional

from .errors import ConfigError


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def _number(data: Dict[str, Any], key: str, where: str) -> Optional[float]:
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"{where}: '{key}' must be a number, got {value!r}")
    return value


def _status(data: Dict[str, Any], key: str, where: str) -> Optional[int]:
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"{where}: '{key}' must be an integer status code, got {value!r}")
    return value


def _integer(data: Dict[str, Any], key: str, default: int, where: str) -> int:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"{where}: '{key}' must be an integer, got {value!r}")
    return value


def _float(data: Dict[str, Any], key: str, default: float, where: str) -> float:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"{where}: '{key}' must be a number, got {value!r}")
    return float(value)


def _headers(data: Dict[str, Any], where: str) -> Dict[str, str]:
    headers = data.get('headers') or {}
    if not isinstance(headers, dict):
        raise ConfigError(f"{where}: 'headers' must be an object")
    return {str(k): str(v) for k, v in headers.items()}


def _require_dict(data: Any, where: str) -> Dict[str, Any]:
    if not isinstance(data, dict):
        raise ConfigError(f"{where} must be an object, got {type(data).__name__}")
    return data


@dataclass
class SequenceStep:
    """One position of a multi-step response sequence."""

    status: Optional[int] = None
    response: Any = None
    delay: Optional[float] = None
    headers: Dict[str, str] = field(default_factory=dict)
    sticky: bool = False

    @classmethod
    def from_dict(cls, data: Any, where: str = 'sequence step') -> 'SequenceStep':
        data = _require_dict(data, where)
        return cls(
            status=_status(data, 'status', where),
            response=data.get('response'),
            delay=_number(data, 'delay', where),
            headers=_headers(data, where),
            sticky=bool(data.get('sticky', False))
        )

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        if self.status is not None:
            out['status'] = self.status
        if self.response is not None:
            out['response'] = self.response
        if self.delay is not None:
            out['delay'] = self.delay
        if self.headers:
            out['headers'] = dict(self.headers)
        if self.sticky:
            out['sticky'] = True
        return out


@dataclass
class RouteRule:
    """Conditional response; ``when`` maps dotted context paths to literals."""

    when: Dict[str, Any] = field(default_factory=dict)
    status: Optional[int] = None
    response: Any = None
    delay: Optional[float] = None
    headers: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Any, where: str = 'rule') -> 'RouteRule':
        data = _require_dict(data, where)
        when = data.get('when') or {}
        if not isinstance(when, dict):
            raise ConfigError(f"{where}: 'when' must be an object")
        return cls(
            when=dict(when),
            status=_status(data, 'status', where),
            response=data.get('response'),
            delay=_number(data, 'delay', where),
            headers=_headers(data, where)
        )

    @property
    def is_default(self) -> bool:
        """A rule without conditions always matches."""
        return not self.when

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        if self.when:
            out['when'] = dict(self.when)
        if self.status is not None:
            out['status'] = self.status
        if self.response is not None:
            out['response'] = self.response
        if self.delay is not None:
            out['delay'] = self.delay
        if self.headers:
            out['headers'] = dict(self.headers)
        return out


@dataclass
class Route:
    """A static route; its index in the server's route list is its identity."""

    path: str
    method: str = 'GET'
    status: int = 200
    response: Any = None
    responses: List[Any] = field(default_factory=list)
    sequence: List[SequenceStep] = field(default_factory=list)
    rules: List[RouteRule] = field(default_factory=list)
    headers: Dict[str, str] = field(default_factory=dict)
    delay: Optional[float] = None
    error: Optional[float] = None
    error_status: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Any, index: int = 0) -> 'Route':
        where = f"route #{index}"
        data = _require_dict(data, where)

        path = data.get('path')
        if not isinstance(path, str) or not path:
            raise ConfigError(f"{where}: 'path' is required")

        responses = data.get('responses') or []
        sequence = data.get('sequence') or []
        rules = data.get('rules') or []
        for key, value in (('responses', responses), ('sequence', sequence), ('rules', rules)):
            if not isinstance(value, list):
                raise ConfigError(f"{where}: '{key}' must be a list")

        return cls(
            path=path,
            method=str(data.get('method') or 'GET').upper(),
            status=_status(data, 'status', where) or 200,
            response=data.get('response'),
            responses=list(responses),
            sequence=[SequenceStep.from_dict(s, f"{where} step #{i}") for i, s in enumerate(sequence)],
            rules=[RouteRule.from_dict(r, f"{where} rule #{i}") for i, r in enumerate(rules)],
            headers=_headers(data, where),
            delay=_number(data, 'delay', where),
            error=_number(data, 'error', where),
            error_status=_status(data, 'errorStatus', where)
        )

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            'method': self.method,
            'path': self.path,
            'status': self.status,
        }
        if self.response is not None:
            out['response'] = self.response
        if self.responses:
            out['responses'] = list(self.responses)
        if self.sequence:
            out['sequence'] = [step.to_dict() for step in self.sequence]
        if self.rules:
            out['rules'] = [rule.to_dict() for rule in self.rules]
        if self.headers:
            out['headers'] = dict(self.headers)
        if self.delay is not None:
            out['delay'] = self.delay
        if self.error is not None:
            out['error'] = self.error
        if self.error_status is not None:
            out['errorStatus'] = self.error_status
        return out


@dataclass
class ResourceConfig:
    """Declaration of a stateful CRUD collection and its seed template."""

    base_path: str
    seed: Any = field(default_factory=dict)
    count: int = 5
    id_field: str = 'id'
    delay: Optional[float] = None
    error: Optional[float] = None
    error_status: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Any, name: str = '') -> 'ResourceConfig':
        where = f"resource '{name}'"
        data = _require_dict(data, where)

        base_path = data.get('basePath')
        if not isinstance(base_path, str) or not base_path:
            raise ConfigError(f"{where}: 'basePath' is required")

        count = data.get('count', 5)
        if isinstance(count, bool) or not isinstance(count, int) or count < 0:
            raise ConfigError(f"{where}: 'count' must be a non-negative integer")

        return cls(
            base_path=base_path,
            seed=data.get('seed', {}),
            count=count,
            id_field=str(data.get('idField') or 'id'),
            delay=_number(data, 'delay', where),
            error=_number(data, 'error', where),
            error_status=_status(data, 'errorStatus', where)
        )

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            'basePath': self.base_path,
            'seed': self.seed,
            'count': self.count,
            'idField': self.id_field,
        }
        if self.delay is not None:
            out['delay'] = self.delay
        if self.error is not None:
            out['error'] = self.error
        if self.error_status is not None:
            out['errorStatus'] = self.error_status
        return out


@dataclass
class ResourceEntry:
    """A loaded resource, bound to the store collection of the same name."""

    name: str
    base_path: str
    id_field: str = 'id'
    delay: Optional[float] = None
    error: Optional[float] = None
    error_status: Optional[int] = None

    @classmethod
    def from_config(cls, name: str, config: ResourceConfig) -> 'ResourceEntry':
        return cls(
            name=name,
            base_path=config.base_path,
            id_field=config.id_field,
            delay=config.delay,
            error=config.error,
            error_status=config.error_status
        )


@dataclass
class RuntimeOverride:
    """Sparse, transient patch over a route's or resource's static behaviour."""

    delay: Optional[float] = None
    error: Optional[float] = None
    disabled: Optional[bool] = None
    passthrough: Optional[bool] = None

    FIELDS = ('delay', 'error', 'disabled', 'passthrough')

    @classmethod
    def from_dict(cls, data: Any) -> 'RuntimeOverride':
        data = _require_dict(data or {}, 'override')
        delay = _number(data, 'delay', 'override')
        error = _number(data, 'error', 'override')
        disabled = data.get('disabled')
        passthrough = data.get('passthrough')
        return cls(
            delay=delay,
            error=error,
            disabled=None if disabled is None else bool(disabled),
            passthrough=None if passthrough is None else bool(passthrough)
        )

    def merged(self, patch: 'RuntimeOverride') -> 'RuntimeOverride':
        """Return a copy with every field set on ``patch`` laid over this one."""
        values = {}
        for name in self.FIELDS:
            value = getattr(patch, name)
            values[name] = value if value is not None else getattr(self, name)
        return RuntimeOverride(**values)

    def to_dict(self) -> Dict[str, Any]:
        return {name: getattr(self, name) for name in self.FIELDS if getattr(self, name) is not None}


@dataclass
class Profile:
    """A named, persisted override set."""

    name: str
    description: str = ''
    disabled_routes: List[int] = field(default_factory=list)
    disabled_resources: List[str] = field(default_factory=list)
    route_overrides: Dict[int, RuntimeOverride] = field(default_factory=dict)
    resource_overrides: Dict[str, RuntimeOverride] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Any, name: Optional[str] = None) -> 'Profile':
        where = f"profile '{name or ''}'"
        data = _require_dict(data, where)
        overrides = _require_dict(data.get('overrides') or {}, f"{where} overrides")

        route_overrides = {}
        for key, value in (overrides.get('routes') or {}).items():
            try:
                index = int(key)
            except (TypeError, ValueError):
                raise ConfigError(f"{where}: route override key {key!r} is not an index")
            route_overrides[index] = RuntimeOverride.from_dict(value)

        try:
            disabled_routes = [int(i) for i in data.get('disabledRoutes') or []]
        except (TypeError, ValueError):
            raise ConfigError(f"{where}: 'disabledRoutes' must hold route indices")

        return cls(
            name=name or str(data.get('name') or ''),
            description=str(data.get('description') or ''),
            disabled_routes=disabled_routes,
            disabled_resources=[str(n) for n in data.get('disabledResources') or []],
            route_overrides=route_overrides,
            resource_overrides={
                str(k): RuntimeOverride.from_dict(v)
                for k, v in (overrides.get('resources') or {}).items()
            }
        )

    @classmethod
    def from_overrides(
        cls,
        name: str,
        route_overrides: Dict[int, RuntimeOverride],
        resource_overrides: Dict[str, RuntimeOverride],
        description: str = ''
    ) -> 'Profile':
        """Snapshot live override maps into a profile."""
        return cls(
            name=name,
            description=description,
            route_overrides={k: RuntimeOverride(**v.to_dict()) for k, v in route_overrides.items()},
            resource_overrides={k: RuntimeOverride(**v.to_dict()) for k, v in resource_overrides.items()}
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'description': self.description,
            'disabledRoutes': list(self.disabled_routes),
            'disabledResources': list(self.disabled_resources),
            'overrides': {
                'routes': {str(k): v.to_dict() for k, v in self.route_overrides.items()},
                'resources': {k: v.to_dict() for k, v in self.resource_overrides.items()},
            },
        }


def _new_server_id() -> str:
    return secrets.token_hex(4)


@dataclass
class MockServerConfig:
    """The persisted unit: one mock server's binding, routes, resources and profiles."""

    id: str = field(default_factory=_new_server_id)
    name: str = 'New Server'
    description: str = ''
    host: str = '127.0.0.1'
    port: int = 3001
    cors: bool = True
    delay: float = 0
    routes: List[Route] = field(default_factory=list)
    resources: Dict[str, ResourceConfig] = field(default_factory=dict)
    profiles: Dict[str, Profile] = field(default_factory=dict)
    active_profile: Optional[str] = None
    proxy_target: Optional[str] = None
    recording_limit: int = 1000
    proxy_timeout: float = 30.0
    log_level: str = 'info'
    created_at: int = field(default_factory=now_ms)
    updated_at: int = field(default_factory=now_ms)

    @classmethod
    def from_dict(cls, data: Any) -> 'MockServerConfig':
        data = _require_dict(data, 'server config')

        routes = data.get('routes') or []
        resources = data.get('resources') or {}
        profiles = data.get('profiles') or {}
        if not isinstance(routes, list):
            raise ConfigError("'routes' must be a list")
        if not isinstance(resources, dict):
            raise ConfigError("'resources' must be an object")
        if not isinstance(profiles, dict):
            raise ConfigError("'profiles' must be an object")

        port = data.get('port', 3001)
        if isinstance(port, bool) or not isinstance(port, int) or not 0 <= port <= 65535:
            raise ConfigError(f"'port' must be an integer between 0 and 65535, got {port!r}")

        defaults = cls()
        return cls(
            id=str(data.get('id') or defaults.id),
            name=str(data.get('name') or defaults.name),
            description=str(data.get('description') or ''),
            host=str(data.get('host') or defaults.host),
            port=port,
            cors=bool(data.get('cors', True)),
            delay=_number(data, 'delay', 'server config') or 0,
            routes=[Route.from_dict(r, i) for i, r in enumerate(routes)],
            resources={str(k): ResourceConfig.from_dict(v, str(k)) for k, v in resources.items()},
            profiles={str(k): Profile.from_dict(v, str(k)) for k, v in profiles.items()},
            active_profile=data.get('activeProfile'),
            proxy_target=data.get('proxyTarget') or None,
            recording_limit=_integer(data, 'recordingLimit', defaults.recording_limit, 'server config'),
            proxy_timeout=_float(data, 'proxyTimeout', defaults.proxy_timeout, 'server config'),
            log_level=str(data.get('logLevel') or defaults.log_level),
            created_at=_integer(data, 'createdAt', defaults.created_at, 'server config'),
            updated_at=_integer(data, 'updatedAt', defaults.updated_at, 'server config')
        )

    @classmethod
    def from_routes_file(cls, data: Dict[str, Any], **settings) -> 'MockServerConfig':
        """Build a config from a normalized route file plus server settings."""
        return cls.from_dict({
            'routes': data.get('routes', []),
            'resources': data.get('resources', {}),
            **settings,
        })

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'host': self.host,
            'port': self.port,
            'cors': self.cors,
            'delay': self.delay,
            'routes': [route.to_dict() for route in self.routes],
            'resources': {name: res.to_dict() for name, res in self.resources.items()},
            'profiles': {name: prof.to_dict() for name, prof in self.profiles.items()},
            'recordingLimit': self.recording_limit,
            'proxyTimeout': self.proxy_timeout,
            'logLevel': self.log_level,
            'createdAt': self.created_at,
            'updatedAt': self.updated_at,
        }
        if self.active_profile is not None:
            out['activeProfile'] = self.active_profile
        if self.proxy_target:
            out['proxyTarget'] = self.proxy_target
        return out


def create_default_config(**overrides) -> MockServerConfig:
    """
    Create a fresh server config with a random 8-character id.

    Args:
        **overrides: Field values in their camelCase wire form (``port=4000``, ``proxyTarget=...``)

    Returns:
        New MockServerConfig
    """
    data = MockServerConfig().to_dict()
    data.update(overrides)
    return MockServerConfig.from_dict(data)


@dataclass
class Recording:
    """An upstream exchange captured while proxying an unmatched request."""

    method: str
    path: str
    status: int
    request_headers: Dict[str, str] = field(default_factory=dict)
    request_body: Optional[str] = None
    response_headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[str] = None
    timestamp: int = field(default_factory=now_ms)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'method': self.method,
            'path': self.path,
            'status': self.status,
            'requestHeaders': dict(self.request_headers),
            'requestBody': self.request_body,
            'responseHeaders': dict(self.response_headers),
            'body': self.body,
            'timestamp': self.timestamp,
        }


@dataclass
class LogEntry:
    """One structured log record; exactly one is emitted per request."""

    method: str
    path: str
    status: int
    elapsed_ms: float
    server_id: str
    timestamp: int = field(default_factory=now_ms)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'method': self.method,
            'path': self.path,
            'status': self.status,
            'elapsedMs': self.elapsed_ms,
            'timestamp': self.timestamp,
            'serverId': self.server_id,
        }
