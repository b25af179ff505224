"""
Tests for QuickMock Recordings

Tests promotion of recorded upstream exchanges into routes.
"""

import json

from quickmock.mock.models import Recording
from quickmock.mock.recorder import (
    build_echo_template,
    filter_response_headers,
    infer_placeholder,
    recording_to_route,
)


class TestInferPlaceholder:
    """Test field-name based placeholder inference."""

    def test_ids(self):
        assert infer_placeholder('id', 1) == '{{faker.id}}'
        assert infer_placeholder('user_id', 1) == '{{faker.id}}'
        assert infer_placeholder('orderId', 'x') == '{{faker.id}}'

    def test_named_fields(self):
        assert infer_placeholder('email', 'a@b.c') == '{{faker.email}}'
        assert infer_placeholder('name', 'Ada') == '{{faker.name}}'
        assert infer_placeholder('createdAt', '2024') == '{{faker.date}}'

    def test_by_type(self):
        assert infer_placeholder('active', True) == '{{faker.boolean}}'
        assert infer_placeholder('total', 10) == '{{faker.number}}'
        assert infer_placeholder('note', 'hi') == '{{faker.lorem}}'


class TestEchoTemplate:
    """Test write-endpoint echo templates."""

    def test_echoes_client_fields(self):
        template = build_echo_template(
            {'title': 'Hello', 'tags': ['a']},
            {'id': 42, 'title': 'Hello', 'tags': ['a'], 'createdAt': '2024-01-01'}
        )

        assert template == {
            'id': '{{faker.id}}',
            'title': '{{body.title}}',
            'tags': '{{body.tags}}',
            'createdAt': '{{faker.date}}',
        }

    def test_client_supplied_id_not_echoed(self):
        template = build_echo_template({'id': 1}, {'id': 1})
        assert template == {'id': '{{faker.id}}'}


class TestRecordingToRoute:
    """Test promotion of recordings."""

    def test_get_recording(self):
        recording = Recording(
            method='GET',
            path='/api/users/1?expand=true',
            status=200,
            response_headers={'Content-Type': 'application/json', 'Date': 'today', 'Set-Cookie': 'x'},
            body=json.dumps({'id': 1, 'name': 'Ada'})
        )

        route = recording_to_route(recording)

        assert route.method == 'GET'
        assert route.path == '/api/users/1'
        assert route.status == 200
        assert route.response == {'id': 1, 'name': 'Ada'}
        assert route.headers == {'Content-Type': 'application/json'}

    def test_post_recording_becomes_echo_template(self):
        recording = Recording(
            method='POST',
            path='/api/posts',
            status=201,
            request_body=json.dumps({'title': 'Hi'}),
            body=json.dumps({'id': 9, 'title': 'Hi'})
        )

        route = recording_to_route(recording)

        assert route.status == 201
        assert route.response == {'id': '{{faker.id}}', 'title': '{{body.title}}'}

    def test_non_json_body_kept_as_text(self):
        recording = Recording(method='GET', path='/robots.txt', status=200, body='User-agent: *')

        assert recording_to_route(recording).response == 'User-agent: *'

    def test_empty_body(self):
        recording = Recording(method='DELETE', path='/api/posts/1', status=204)

        assert recording_to_route(recording).response is None

    def test_filter_response_headers(self):
        headers = {'X-Custom': '1', 'content-length': '10', 'Authorization': 'secret'}

        assert filter_response_headers(headers) == {'X-Custom': '1'}
