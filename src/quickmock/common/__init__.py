"""
QuickMock Common Utilities

Shared utilities and helpers used across QuickMock modules.
"""

from .utils import (
    get_data_dir_from_env,
    safe_json_parse,
    RoutesFileLoader,
    filter_hop_by_hop_headers,
    HOP_BY_HOP_HEADERS,
)
from .url_utils import URLMatcher
from .watcher import watch_file

__all__ = [
    'get_data_dir_from_env',
    'safe_json_parse',
    'RoutesFileLoader',
    'filter_hop_by_hop_headers',
    'HOP_BY_HOP_HEADERS',
    'URLMatcher',
    'watch_file',
]
