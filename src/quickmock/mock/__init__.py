"""
QuickMock Mock Server Module

Multi-instance mock HTTP API engine.

This module provides:
- FastAPI-based mock server instances with embedded uvicorn listeners
- Route/resource matching and an in-memory CRUD record store
- Response resolution (rules, sequences, random variants) with templating
- Runtime overrides, profiles and upstream proxy passthrough
- Instance manager, config stores and a management API
"""

from .errors import ConfigError, NotFoundError, PortInUseError, InstanceNotLoadedError
from .models import (
    Route,
    RouteRule,
    SequenceStep,
    ResourceConfig,
    ResourceEntry,
    RuntimeOverride,
    Profile,
    MockServerConfig,
    Recording,
    LogEntry,
    create_default_config,
)
from .template import TemplateResolver, FAKER_GENERATORS, build_context
from .store import RecordStore, Collection, ListResult
from .matcher import RequestMatcher, RouteMatch, ResourceMatch
from .responses import ResponseResolver, ResolvedResponse
from .overrides import OverrideLayer
from .logstream import LogStream
from .recorder import recording_to_route
from .server import MockServer, ServerState
from .config_store import ConfigStore, InMemoryConfigStore, FileConfigStore
from .manager import InstanceManager, ServerStatus
from .admin import create_management_app

__all__ = [
    # Errors
    'ConfigError',
    'NotFoundError',
    'PortInUseError',
    'InstanceNotLoadedError',

    # Models
    'Route',
    'RouteRule',
    'SequenceStep',
    'ResourceConfig',
    'ResourceEntry',
    'RuntimeOverride',
    'Profile',
    'MockServerConfig',
    'Recording',
    'LogEntry',
    'create_default_config',

    # Engine
    'TemplateResolver',
    'FAKER_GENERATORS',
    'build_context',
    'RecordStore',
    'Collection',
    'ListResult',
    'RequestMatcher',
    'RouteMatch',
    'ResourceMatch',
    'ResponseResolver',
    'ResolvedResponse',
    'OverrideLayer',
    'LogStream',
    'recording_to_route',

    # Server and management
    'MockServer',
    'ServerState',
    'ConfigStore',
    'InMemoryConfigStore',
    'FileConfigStore',
    'InstanceManager',
    'ServerStatus',
    'create_management_app',
]
