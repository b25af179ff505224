"""
QuickMock Request Matcher

Maps an incoming (method, path) to a declared route or resource.

Matching rules:
- Routes are tried first, in declaration order; the first structural
  match wins (first-match-wins, not best-match). A route matches when its
  method equals the request method (or is ``*``) and its path has the
  same segment count, with literal segments equal and ``:param``
  segments binding positionally.
- Resources are tried next: ``GET``/``POST`` on the base path is a
  collection match, ``GET``/``PUT``/``PATCH``/``DELETE`` on the base path
  plus one segment is an item match.
"""

from dataclasses import dataclass, field
from typing import List, Dict, Optional, Union
from urllib.parse import unquote

from ..common import URLMatcher
from .models import Route, ResourceEntry


COLLECTION_METHODS = ('GET', 'POST')
ITEM_METHODS = ('GET', 'PUT', 'PATCH', 'DELETE')


@dataclass
class RouteMatch:
    """A request resolved to a static route."""

    route: Route
    index: int
    params: Dict[str, str] = field(default_factory=dict)


@dataclass
class ResourceMatch:
    """A request resolved to a resource collection or item."""

    resource: ResourceEntry
    item_id: Optional[str] = None

    @property
    def is_item(self) -> bool:
        return self.item_id is not None


MatchResult = Union[RouteMatch, ResourceMatch]


class RequestMatcher:
    """
    Declaration-order matcher over one server's routes and resources.

    Example:
        matcher = RequestMatcher(routes, resources)
        result = matcher.match('GET', '/users/42')

        if isinstance(result, RouteMatch):
            print(result.index, result.params)
    """

    def __init__(self, routes: List[Route], resources: List[ResourceEntry]):
        """
        Initialize request matcher.

        Args:
            routes: Routes in declaration order (list index is the route id)
            resources: Resources in declaration order
        """
        self.routes = routes
        self.resources = resources

        # Pre-split base paths; they never change for the matcher's lifetime
        self._resource_segments = [
            (resource, URLMatcher.split_segments(resource.base_path))
            for resource in resources
        ]

    def match(self, method: str, path: str) -> Optional[MatchResult]:
        """
        Find the route or resource serving a request.

        Args:
            method: HTTP method
            path: Raw request path (percent-encoding intact)

        Returns:
            RouteMatch, ResourceMatch, or None if nothing matches
        """
        method = method.upper()
        return self.match_route(method, path) or self.match_resource(method, path)

    def match_route(self, method: str, path: str) -> Optional[RouteMatch]:
        for index, route in enumerate(self.routes):
            if route.method != method and route.method != '*':
                continue

            params = URLMatcher.match_template(route.path, path)
            if params is not None:
                return RouteMatch(route=route, index=index, params=params)

        return None

    def match_resource(self, method: str, path: str) -> Optional[ResourceMatch]:
        path_segments = [unquote(s) for s in URLMatcher.split_segments(path)]

        for resource, base_segments in self._resource_segments:
            depth = len(base_segments)
            if path_segments[:depth] != base_segments:
                continue

            if len(path_segments) == depth and method in COLLECTION_METHODS:
                return ResourceMatch(resource=resource)

            if len(path_segments) == depth + 1 and method in ITEM_METHODS:
                return ResourceMatch(resource=resource, item_id=path_segments[-1])

        return None
