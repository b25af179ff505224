"""
QuickMock Common Utilities

Shared helpers for loading route files and handling JSON payloads.
"""

import json
import os
from pathlib import Path
from typing import List, Dict, Any, Optional

import yaml


DEFAULT_DATA_DIR = '.quickmock'


def get_data_dir_from_env() -> Path:
    """
    Resolve the directory holding persisted server configs.

    Reads QUICKMOCK_DATA_DIR and falls back to ``.quickmock`` in the
    current working directory.

    Returns:
        Absolute path of the data directory (not created here)
    """
    return Path(os.environ.get('QUICKMOCK_DATA_DIR', DEFAULT_DATA_DIR)).resolve()


def safe_json_parse(json_string: Any, default: Any = None) -> Any:
    """
    Safely parse JSON string with error handling.

    Args:
        json_string: JSON string (or bytes) to parse
        default: Default value to return if parsing fails

    Returns:
        Parsed JSON object, or default if parsing fails

    Example:
        body = safe_json_parse(await request.body(), default=None)
    """
    if not json_string:
        return default

    try:
        return json.loads(json_string)
    except (json.JSONDecodeError, TypeError, ValueError):
        return default


class RoutesFileLoader:
    """
    Standardized loader for QuickMock route files.

    Handles the shapes a route file may take:
    - Format 1: {"routes": [...], "resources": {...}}
    - Format 2: [...]  (bare route list)

    JSON and YAML are both accepted; the extension picks the parser.

    Example:
        loader = RoutesFileLoader("routes.json")
        data = loader.load()

        for route in data['routes']:
            print(route['path'])
    """

    YAML_SUFFIXES = ('.yaml', '.yml')

    def __init__(self, file_path: str):
        """
        Initialize route file loader.

        Args:
            file_path: Path to route file
        """
        self.file_path = Path(file_path)

    def load(self) -> Dict[str, Any]:
        """
        Load a route file.

        Returns:
            Dict with 'routes' (list) and 'resources' (dict) keys

        Raises:
            FileNotFoundError: If the route file doesn't exist
            ValueError: If the content can't be parsed or has the wrong shape
        """
        if not self.file_path.exists():
            raise FileNotFoundError(f"Routes file not found: {self.file_path}")

        with open(self.file_path, 'r', encoding='utf-8') as f:
            text = f.read()

        try:
            if self.file_path.suffix.lower() in self.YAML_SUFFIXES:
                data = yaml.safe_load(text)
            else:
                data = json.loads(text)
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            raise ValueError(f"Could not parse {self.file_path}: {e}") from e

        return self.normalize(data, source=str(self.file_path))

    @staticmethod
    def normalize(data: Any, source: str = '<memory>') -> Dict[str, Any]:
        """
        Bring a parsed route document into the wrapped format.

        Args:
            data: Parsed JSON/YAML document
            source: Name used in error messages

        Returns:
            Dict with 'routes' and 'resources' keys
        """
        if isinstance(data, list):
            return {'routes': data, 'resources': {}}

        if isinstance(data, dict):
            routes = data.get('routes') or []
            resources = data.get('resources') or {}
            if not isinstance(routes, list):
                raise ValueError(f"'routes' in {source} must be a list")
            if not isinstance(resources, dict):
                raise ValueError(f"'resources' in {source} must be an object")
            return {'routes': routes, 'resources': resources}

        raise ValueError(
            f"Unexpected format in {source}. "
            f"Expected an object with 'routes'/'resources' or a list of routes, "
            f"got {type(data).__name__}"
        )

    @staticmethod
    def load_from_file(file_path: str) -> Dict[str, Any]:
        """
        Convenience method to load a route file in one call.

        Example:
            data = RoutesFileLoader.load_from_file("routes.yaml")
        """
        return RoutesFileLoader(file_path).load()


# Headers that only make sense for a single transport hop
HOP_BY_HOP_HEADERS = [
    'connection',
    'keep-alive',
    'proxy-authenticate',
    'proxy-authorization',
    'te',
    'trailers',
    'transfer-encoding',
    'upgrade',
]


def filter_hop_by_hop_headers(
    headers: Dict[str, str],
    additional_headers: Optional[List[str]] = None
) -> Dict[str, str]:
    """
    Drop hop-by-hop headers before forwarding a message to the next hop.

    Args:
        headers: Dictionary of headers to filter
        additional_headers: Optional list of extra header names to drop

    Returns:
        Filtered dictionary without hop-by-hop headers

    Example:
        forwarded = filter_hop_by_hop_headers(
            dict(request.headers),
            additional_headers=['host', 'content-length']
        )
    """
    skip = set(HOP_BY_HOP_HEADERS)

    if additional_headers:
        skip.update(h.lower() for h in additional_headers)

    return {k: v for k, v in headers.items() if k.lower() not in skip}
