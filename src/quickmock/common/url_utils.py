"""
QuickMock URL Utilities

Path splitting, ``:param`` template matching and upstream URL building.
"""

from typing import Dict, List, Optional
from urllib.parse import unquote


class URLMatcher:
    """Handles path matching logic for route templates."""

    @staticmethod
    def split_segments(path: str) -> List[str]:
        """
        Split a URL path into its non-empty segments.

        Leading, trailing and doubled slashes are ignored, so
        ``/users/`` and ``users`` both give ``['users']``.
        """
        return [segment for segment in path.split('/') if segment]

    @staticmethod
    def match_template(template: str, path: str) -> Optional[Dict[str, str]]:
        """
        Match a request path against a ``:param`` path template.

        Args:
            template: Route path such as ``/users/:id/posts/:postId``
            path: Raw (still percent-encoded) request path

        Returns:
            Dict of decoded params if the path matches, otherwise None
        """
        template_segments = URLMatcher.split_segments(template)
        path_segments = URLMatcher.split_segments(path)

        if len(template_segments) != len(path_segments):
            return None

        params = {}
        for expected, actual in zip(template_segments, path_segments):
            if expected.startswith(':'):
                params[expected[1:]] = unquote(actual)
            elif expected != unquote(actual):
                return None

        return params

    @staticmethod
    def build_upstream_url(target: str, path: str, query: str = '') -> str:
        """
        Join a proxy target with the incoming path and query string.

        Args:
            target: Upstream base URL (``http://api.example.com/v1``)
            path: Raw request path
            query: Raw query string without the leading ``?``

        Returns:
            Absolute upstream URL
        """
        url = target.rstrip('/') + '/' + path.lstrip('/')
        if query:
            url = f"{url}?{query}"
        return url
