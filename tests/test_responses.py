"""
Tests for QuickMock Response Resolver

Tests response selection including:
- Mode priority
- Conditional rules
- Sequence cursors and sticky steps
- Random variants
- Templated bodies and headers
"""

from unittest.mock import patch

import pytest

from quickmock.mock.models import Route, RouteRule
from quickmock.mock.responses import (
    MODE_EMPTY,
    MODE_RESPONSES,
    MODE_RULES,
    MODE_SEQUENCE,
    MODE_STATIC,
    ResponseResolver,
    response_mode,
    rule_matches,
)
from quickmock.mock.template import TemplateResolver, build_context


@pytest.fixture
def resolver():
    return ResponseResolver(TemplateResolver(seed=7))


def sequence_route(*responses, sticky_at=None):
    steps = []
    for i, body in enumerate(responses):
        step = {'response': body}
        if i == sticky_at:
            step['sticky'] = True
        steps.append(step)
    return Route.from_dict({'path': '/jobs', 'sequence': steps})


class TestResponseMode:
    """Test response mode priority."""

    def test_rules_beat_everything(self):
        route = Route.from_dict({
            'path': '/a', 'rules': [{'status': 200}], 'sequence': [{}], 'response': 1,
        })
        assert response_mode(route) == MODE_RULES

    def test_sequence_beats_responses(self):
        route = Route.from_dict({'path': '/a', 'sequence': [{}], 'responses': [1, 2]})
        assert response_mode(route) == MODE_SEQUENCE

    def test_remaining_modes(self):
        assert response_mode(Route.from_dict({'path': '/a', 'responses': [1]})) == MODE_RESPONSES
        assert response_mode(Route.from_dict({'path': '/a', 'response': {}})) == MODE_STATIC
        assert response_mode(Route.from_dict({'path': '/a'})) == MODE_EMPTY


class TestRules:
    """Test conditional rule selection."""

    @pytest.fixture
    def route(self):
        return Route.from_dict({
            'path': '/config',
            'status': 200,
            'response': {'fallback': True},
            'rules': [
                {'when': {'query.env': 'prod'}, 'status': 500, 'response': {'error': 'boom'}},
                {'when': {'body.count': 3}, 'status': 201, 'response': {'count': '{{body.count}}'}},
                {'response': {'env': '{{query.env}}'}},
            ],
        })

    def test_matching_rule(self, resolver, route):
        result = resolver.resolve(0, route, build_context(query={'env': 'prod'}))

        assert result.status == 500
        assert result.body == {'error': 'boom'}

    def test_default_rule(self, resolver, route):
        result = resolver.resolve(0, route, build_context(query={'env': 'dev'}))

        assert result.status == 200
        assert result.body == {'env': 'dev'}

    def test_literal_compared_as_string(self, resolver, route):
        """A JSON 3 in the body satisfies a numeric 3 in the rule."""
        result = resolver.resolve(0, route, build_context(body={'count': 3}))

        assert result.status == 201
        assert result.body == {'count': 3}

    def test_no_rule_matches_falls_back(self, resolver):
        route = Route.from_dict({
            'path': '/x',
            'status': 202,
            'response': {'base': True},
            'rules': [{'when': {'headers.x-mode': 'a'}, 'status': 400}],
        })

        result = resolver.resolve(0, route, build_context())

        assert result.status == 202
        assert result.body == {'base': True}

    def test_rule_matches_requires_all_conditions(self):
        rule = RouteRule(when={'query.a': '1', 'query.b': '2'})

        assert rule_matches(rule, build_context(query={'a': '1', 'b': '2'}))
        assert not rule_matches(rule, build_context(query={'a': '1'}))

    def test_rule_headers_layer_over_route(self, resolver):
        route = Route.from_dict({
            'path': '/x',
            'headers': {'X-A': 'route', 'X-B': 'route'},
            'rules': [{'headers': {'X-B': 'rule'}}],
        })

        result = resolver.resolve(0, route, build_context())

        assert result.headers == {'X-A': 'route', 'X-B': 'rule'}


class TestSequence:
    """Test sequence cursors."""

    def test_steps_in_order_then_last_repeats(self, resolver):
        route = sequence_route('queued', 'running', 'done')

        bodies = [resolver.resolve(0, route, build_context()).body for _ in range(5)]

        assert bodies == ['queued', 'running', 'done', 'done', 'done']

    def test_sticky_step_freezes(self, resolver):
        route = sequence_route('A', 'B', 'C', sticky_at=1)

        bodies = [resolver.resolve(0, route, build_context()).body for _ in range(4)]

        assert bodies == ['A', 'B', 'B', 'B']

    def test_cursor_per_route_index(self, resolver):
        route = sequence_route(1, 2)

        resolver.resolve(0, route, build_context())

        assert resolver.resolve(1, route, build_context()).body == 1
        assert resolver.cursor(0) == 1

    def test_reset_cursors(self, resolver):
        route = sequence_route('first', 'second')
        resolver.resolve(0, route, build_context())

        resolver.reset_cursors()

        assert resolver.resolve(0, route, build_context()).body == 'first'

    def test_step_status_and_delay(self, resolver):
        route = Route.from_dict({
            'path': '/a',
            'status': 200,
            'sequence': [{'status': 202, 'delay': 150}, {'response': 'ok'}],
        })

        first = resolver.resolve(0, route, build_context())
        second = resolver.resolve(0, route, build_context())

        assert (first.status, first.delay) == (202, 150)
        assert (second.status, second.delay) == (200, None)

    def test_cursor_clamped_after_edit(self, resolver):
        long_route = sequence_route(1, 2, 3)
        for _ in range(3):
            resolver.resolve(0, long_route, build_context())

        result = resolver.resolve(0, sequence_route('only'), build_context())

        assert result.body == 'only'


class TestVariantsAndStatic:
    """Test random variants and static bodies."""

    def test_random_variant(self, resolver):
        route = Route.from_dict({'path': '/a', 'responses': [{'v': 1}, {'v': 2}]})

        with patch('quickmock.mock.responses.random.randrange', return_value=1):
            result = resolver.resolve(0, route, build_context())

        assert result.body == {'v': 2}

    def test_static_templated(self, resolver):
        route = Route.from_dict({
            'path': '/users/:id',
            'status': 200,
            'headers': {'X-User': '{{params.id}}'},
            'response': {'id': '{{params.id}}', 'name': '{{faker.name}}'},
        })

        result = resolver.resolve(0, route, build_context(params={'id': '12'}))

        assert result.body['id'] == 12
        assert isinstance(result.body['name'], str)
        assert result.headers == {'X-User': '12'}

    def test_empty(self, resolver):
        result = resolver.resolve(0, Route.from_dict({'path': '/a', 'status': 204}), build_context())

        assert result.status == 204
        assert result.body is None

    def test_select_does_not_render(self, resolver):
        route = Route.from_dict({'path': '/a', 'response': {'x': '{{query.q}}'}})

        selection = resolver.select(0, route, build_context(query={'q': 'v'}))

        assert selection.response == {'x': '{{query.q}}'}
