"""
QuickMock Response Resolver

Decides what a matched route returns.

Response modes, in priority order:
- rules: first rule whose ``when`` conditions all hold (or the first
  unconditional rule); no match falls back to the route's base response
- sequence: per-route cursor over steps; a sticky step freezes the
  cursor, and the last step repeats forever once reached
- responses: uniform random pick among variants
- response: static body
- empty: no body

Selection and rendering are separate steps so the server can apply a
step's or rule's own delay before the body is rendered.
"""

import random
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .models import Route, RouteRule, SequenceStep
from .template import TemplateResolver, lookup_path, stringify, MISSING


MODE_RULES = 'rules'
MODE_SEQUENCE = 'sequence'
MODE_RESPONSES = 'responses'
MODE_STATIC = 'static'
MODE_EMPTY = 'empty'


@dataclass
class ResponseSelection:
    """The branch chosen for one request, before templating."""

    mode: str
    status: int
    response: Any = None
    headers: Dict[str, str] = field(default_factory=dict)
    delay: Optional[float] = None
    position: Optional[int] = None  # rule index, step index or variant index


@dataclass
class ResolvedResponse:
    """Final status, headers and JSON body for a route response."""

    status: int
    headers: Dict[str, str]
    body: Any = None
    delay: Optional[float] = None


def response_mode(route: Route) -> str:
    """Which response mode is authoritative for a route."""
    if route.rules:
        return MODE_RULES
    if route.sequence:
        return MODE_SEQUENCE
    if route.responses:
        return MODE_RESPONSES
    if route.response is not None:
        return MODE_STATIC
    return MODE_EMPTY


def rule_matches(rule: RouteRule, context: Dict[str, Any]) -> bool:
    """True if every ``when`` path stringifies equal to its literal."""
    for dotted_path, expected in rule.when.items():
        actual = lookup_path(context, dotted_path)
        if actual is MISSING or stringify(actual) != stringify(expected):
            return False
    return True


class ResponseResolver:
    """
    Per-server response resolver; owns the sequence cursors.

    Example:
        resolver = ResponseResolver(TemplateResolver())
        resolved = resolver.resolve(0, route, build_context())
        print(resolved.status, resolved.body)
    """

    def __init__(self, template: Optional[TemplateResolver] = None):
        """
        Initialize response resolver.

        Args:
            template: Placeholder resolver used to render bodies and headers
        """
        self.template = template or TemplateResolver()
        self.cursors: Dict[int, int] = {}

    def cursor(self, route_index: int) -> int:
        """Current sequence position for a route (0 before its first request)."""
        return self.cursors.get(route_index, 0)

    def reset_cursors(self):
        self.cursors.clear()

    def resolve(self, route_index: int, route: Route, context: Dict[str, Any]) -> ResolvedResponse:
        """Select and render in one step."""
        return self.render(self.select(route_index, route, context), context)

    def select(self, route_index: int, route: Route, context: Dict[str, Any]) -> ResponseSelection:
        """
        Choose the response branch for one request.

        Advances the route's sequence cursor when the route is in
        sequence mode, regardless of HTTP method.

        Args:
            route_index: Position of the route in the server's route list
            route: The matched route
            context: Request context (params, query, body, headers)

        Returns:
            ResponseSelection describing the chosen branch
        """
        mode = response_mode(route)

        if mode == MODE_RULES:
            return self._select_rule(route, context)
        if mode == MODE_SEQUENCE:
            return self._select_step(route_index, route)
        if mode == MODE_RESPONSES:
            position = random.randrange(len(route.responses))
            return ResponseSelection(
                mode=mode,
                status=route.status,
                response=route.responses[position],
                headers=dict(route.headers),
                position=position
            )
        return ResponseSelection(
            mode=mode,
            status=route.status,
            response=route.response,
            headers=dict(route.headers)
        )

    def render(self, selection: ResponseSelection, context: Dict[str, Any]) -> ResolvedResponse:
        """Run the selected body and header values through the template resolver."""
        body = selection.response
        if body is not None:
            body = self.template.resolve(body, context)

        headers = {
            key: self.template.render_string(value, context)
            for key, value in selection.headers.items()
        }

        return ResolvedResponse(
            status=selection.status,
            headers=headers,
            body=body,
            delay=selection.delay
        )

    def _select_rule(self, route: Route, context: Dict[str, Any]) -> ResponseSelection:
        for position, rule in enumerate(route.rules):
            if rule.is_default or rule_matches(rule, context):
                return ResponseSelection(
                    mode=MODE_RULES,
                    status=rule.status if rule.status is not None else route.status,
                    response=rule.response,
                    headers={**route.headers, **rule.headers},
                    delay=rule.delay,
                    position=position
                )

        return ResponseSelection(
            mode=MODE_RULES,
            status=route.status,
            response=route.response,
            headers=dict(route.headers)
        )

    def _select_step(self, route_index: int, route: Route) -> ResponseSelection:
        steps: List[SequenceStep] = route.sequence
        # Clamp in case the route was edited to fewer steps
        position = min(self.cursor(route_index), len(steps) - 1)
        step = steps[position]

        if not step.sticky and position < len(steps) - 1:
            self.cursors[route_index] = position + 1
        else:
            self.cursors[route_index] = position

        return ResponseSelection(
            mode=MODE_SEQUENCE,
            status=step.status if step.status is not None else route.status,
            response=step.response,
            headers={**route.headers, **step.headers},
            delay=step.delay,
            position=position
        )
