"""
Tests for QuickMock Management API

Tests the /__api endpoints including:
- Server CRUD and lifecycle
- Route, resource and profile editing
- Live overrides
- Recordings and promotion
- Error mapping
- Server-sent log events
- Generated docs and types
"""

import asyncio
import json

import httpx
import pytest
from fastapi.testclient import TestClient

from quickmock.mock.admin import create_management_app, sse_events
from quickmock.mock.config_store import InMemoryConfigStore
from quickmock.mock.logstream import LogStream
from quickmock.mock.manager import InstanceManager
from quickmock.mock.models import LogEntry


SERVER_BODY = {
    'name': 'Orders API',
    'port': 0,
    'routes': [{'method': 'GET', 'path': '/ping', 'response': {'pong': True}}],
    'resources': {'orders': {'basePath': '/orders', 'seed': {'total': '{{faker.number}}'}, 'count': 2}},
}


@pytest.fixture
def upstream_handler():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(201, json={'id': 99, 'sku': 'abc'})
    return handler


@pytest.fixture
def manager(upstream_handler):
    return InstanceManager(
        InMemoryConfigStore(),
        faker_seed=3,
        proxy_transport=httpx.MockTransport(upstream_handler)
    )


@pytest.fixture
def client(manager):
    with TestClient(create_management_app(manager)) as test_client:
        yield test_client


@pytest.fixture
def server_id(client):
    response = client.post('/__api/servers', json=SERVER_BODY)
    assert response.status_code == 201
    return response.json()['id']


class TestServers:
    """Test server CRUD."""

    def test_create_assigns_id(self, client):
        response = client.post('/__api/servers', json={'name': 'X', 'id': 'chosen'})

        data = response.json()
        assert response.status_code == 201
        assert data['id'] != 'chosen'
        assert len(data['id']) == 8
        assert data['name'] == 'X'

    def test_list(self, client, server_id):
        data = client.get('/__api/servers').json()

        assert len(data) == 1
        assert data[0]['config']['id'] == server_id
        assert data[0]['running'] is False
        assert data[0]['routeCount'] == 1
        assert data[0]['resourceCount'] == 1

    def test_get(self, client, server_id):
        assert client.get(f'/__api/servers/{server_id}').json()['config']['name'] == 'Orders API'

    def test_get_unknown(self, client):
        response = client.get('/__api/servers/nothere')

        assert response.status_code == 404
        assert response.json()['error'] == 'Not Found'

    def test_patch(self, client, server_id):
        response = client.patch(f'/__api/servers/{server_id}', json={'name': 'Renamed', 'id': 'hijack', 'delay': 20})

        assert response.json()['name'] == 'Renamed'
        assert response.json()['id'] == server_id
        assert client.get(f'/__api/servers/{server_id}').json()['config']['delay'] == 20

    def test_patch_invalid(self, client, server_id):
        response = client.patch(f'/__api/servers/{server_id}', json={'port': 99999})

        assert response.status_code == 400

    def test_patch_null_timeout(self, client, server_id):
        response = client.patch(f'/__api/servers/{server_id}', json={'proxyTimeout': None})

        assert response.status_code == 400
        assert 'proxyTimeout' in response.json()['message']

    def test_non_object_body(self, client):
        response = client.post('/__api/servers', content='[1, 2]', headers={'Content-Type': 'application/json'})

        assert response.status_code == 400

    def test_delete(self, client, server_id):
        assert client.delete(f'/__api/servers/{server_id}').json() == {'deleted': server_id}
        assert client.get(f'/__api/servers/{server_id}').status_code == 404
        assert client.delete(f'/__api/servers/{server_id}').status_code == 404


class TestLifecycle:
    """Test start and stop through the API."""

    def test_start_serves_mock(self, client, server_id):
        status = client.post(f'/__api/servers/{server_id}/start').json()

        assert status['running'] is True
        assert status['resourceItems'] == {'orders': 2}
        response = httpx.get(f"http://127.0.0.1:{status['port']}/ping")
        assert response.json() == {'pong': True}

        stopped = client.post(f'/__api/servers/{server_id}/stop').json()
        assert stopped['running'] is False

    def test_port_conflict_is_400(self, client, server_id):
        port = client.post(f'/__api/servers/{server_id}/start').json()['port']
        other_id = client.post('/__api/servers', json={**SERVER_BODY, 'port': port}).json()['id']

        response = client.post(f'/__api/servers/{other_id}/start')

        assert response.status_code == 400
        assert response.json()['error'] == 'Port In Use'
        assert client.get(f'/__api/servers/{server_id}').json()['running'] is True


class TestRoutesAndResources:
    """Test config editing."""

    def test_route_crud(self, client, server_id):
        created = client.post(f'/__api/servers/{server_id}/routes', json={'path': '/new', 'method': 'post'})
        assert created.status_code == 201
        assert created.json()['index'] == 1
        assert created.json()['method'] == 'POST'

        patched = client.patch(f'/__api/servers/{server_id}/routes/1', json={'status': 202})
        assert patched.json()['status'] == 202
        assert patched.json()['path'] == '/new'

        routes = client.get(f'/__api/servers/{server_id}/routes').json()
        assert [r['path'] for r in routes] == ['/ping', '/new']

        removed = client.delete(f'/__api/servers/{server_id}/routes/0')
        assert removed.json()['path'] == '/ping'
        assert len(client.get(f'/__api/servers/{server_id}/routes').json()) == 1

    def test_route_out_of_range(self, client, server_id):
        assert client.patch(f'/__api/servers/{server_id}/routes/7', json={}).status_code == 404
        assert client.delete(f'/__api/servers/{server_id}/routes/7').status_code == 404

    def test_invalid_route(self, client, server_id):
        response = client.post(f'/__api/servers/{server_id}/routes', json={'method': 'GET'})

        assert response.status_code == 400
        assert 'path' in response.json()['message']

    def test_route_change_reaches_running_instance(self, client, server_id):
        port = client.post(f'/__api/servers/{server_id}/start').json()['port']

        client.post(f'/__api/servers/{server_id}/routes', json={'path': '/fresh', 'response': {'v': 1}})

        assert httpx.get(f'http://127.0.0.1:{port}/fresh').json() == {'v': 1}

    def test_resource_crud(self, client, server_id):
        created = client.post(f'/__api/servers/{server_id}/resources', json={'name': 'users', 'basePath': '/users'})
        assert created.status_code == 201
        assert created.json()['count'] == 5

        patched = client.patch(f'/__api/servers/{server_id}/resources/users', json={'count': 1})
        assert patched.json()['count'] == 1

        assert set(client.get(f'/__api/servers/{server_id}/resources').json()) == {'orders', 'users'}

        assert client.delete(f'/__api/servers/{server_id}/resources/users').status_code == 200
        assert client.delete(f'/__api/servers/{server_id}/resources/users').status_code == 404

    def test_resource_requires_name(self, client, server_id):
        response = client.post(f'/__api/servers/{server_id}/resources', json={'basePath': '/x'})

        assert response.status_code == 400


class TestProfilesAndOverrides:
    """Test profiles and live overrides."""

    def test_profile_lifecycle(self, client, server_id):
        created = client.post(f'/__api/servers/{server_id}/profiles', json={
            'name': 'slow', 'overrides': {'routes': {'0': {'delay': 500}}},
        })
        assert created.status_code == 201

        client.post(f'/__api/servers/{server_id}/profiles/slow/activate')
        profiles = client.get(f'/__api/servers/{server_id}/profiles').json()
        assert profiles['activeProfile'] == 'slow'
        assert profiles['profiles']['slow']['overrides']['routes'] == {'0': {'delay': 500}}

        updated = client.patch(f'/__api/servers/{server_id}/profiles/slow', json={'description': 'Slow ping'})
        assert updated.json()['description'] == 'Slow ping'

        client.post(f'/__api/servers/{server_id}/profiles/deactivate')
        assert client.get(f'/__api/servers/{server_id}/profiles').json()['activeProfile'] is None

        assert client.delete(f'/__api/servers/{server_id}/profiles/slow').json() == {'deleted': 'slow'}
        assert client.post(f'/__api/servers/{server_id}/profiles/slow/activate').status_code == 404

    def test_overrides_need_instance(self, client, server_id):
        response = client.get(f'/__api/servers/{server_id}/overrides')

        assert response.status_code == 400

    def test_overrides_on_running_server(self, client, server_id):
        port = client.post(f'/__api/servers/{server_id}/start').json()['port']

        override = client.patch(f'/__api/servers/{server_id}/overrides/routes/0', json={'disabled': True})
        assert override.json() == {'disabled': True}
        assert httpx.get(f'http://127.0.0.1:{port}/ping').status_code == 503

        client.patch(f'/__api/servers/{server_id}/overrides/resources/orders', json={'delay': 0})
        snapshot = client.get(f'/__api/servers/{server_id}/overrides').json()
        assert snapshot == {
            'activeProfile': None,
            'routes': {'0': {'disabled': True}},
            'resources': {'orders': {'delay': 0}},
        }

        assert client.delete(f'/__api/servers/{server_id}/overrides/routes/0').json() == {'cleared': True}
        assert client.delete(f'/__api/servers/{server_id}/overrides/resources/orders').json() == {'cleared': True}
        assert httpx.get(f'http://127.0.0.1:{port}/ping').status_code == 200

    def test_profile_from_live_overrides(self, client, server_id):
        client.post(f'/__api/servers/{server_id}/start')
        client.patch(f'/__api/servers/{server_id}/overrides/routes/0', json={'error': 1})

        created = client.post(f'/__api/servers/{server_id}/profiles', json={'name': 'snap', 'fromOverrides': True})

        assert created.json()['overrides']['routes'] == {'0': {'error': 1}}

    def test_profile_from_overrides_needs_instance(self, client, server_id):
        response = client.post(f'/__api/servers/{server_id}/profiles', json={'name': 'snap', 'fromOverrides': True})

        assert response.status_code == 400


class TestRecordings:
    """Test recordings and promotion."""

    def test_empty_without_instance(self, client, server_id):
        assert client.get(f'/__api/servers/{server_id}/recordings').json() == {'total': 0, 'recordings': []}
        assert client.delete(f'/__api/servers/{server_id}/recordings').json() == {'cleared': 0}

    def test_record_and_promote(self, client, server_id):
        client.patch(f'/__api/servers/{server_id}', json={'proxyTarget': 'http://backend.local'})
        port = client.post(f'/__api/servers/{server_id}/start').json()['port']

        proxied = httpx.post(f'http://127.0.0.1:{port}/products', json={'sku': 'abc'})
        assert proxied.status_code == 201

        recordings = client.get(f'/__api/servers/{server_id}/recordings').json()
        assert recordings['total'] == 1
        assert recordings['recordings'][0]['path'] == '/products'

        promoted = client.post(f'/__api/servers/{server_id}/recordings/0/promote')
        assert promoted.status_code == 201
        assert promoted.json()['response'] == {'id': '{{faker.id}}', 'sku': '{{body.sku}}'}

        mocked = httpx.post(f'http://127.0.0.1:{port}/products', json={'sku': 'xyz'})
        assert mocked.status_code == 201
        assert mocked.json()['sku'] == 'xyz'

        assert client.delete(f'/__api/servers/{server_id}/recordings').json() == {'cleared': 1}

    def test_promote_unknown_index(self, client, server_id):
        client.post(f'/__api/servers/{server_id}/start')

        assert client.post(f'/__api/servers/{server_id}/recordings/3/promote').status_code == 404


class TestLogEvents:
    """Test server-sent event rendering."""

    def test_sse_events_filters_by_server(self):
        stream = LogStream()

        async def scenario():
            events = sse_events(stream, server_id='keep')
            pending = asyncio.ensure_future(events.__anext__())
            await asyncio.sleep(0)
            stream.emit(LogEntry(method='GET', path='/skip', status=200, elapsed_ms=1, server_id='other'))
            stream.emit(LogEntry(method='GET', path='/keep', status=201, elapsed_ms=1, server_id='keep'))
            event = await asyncio.wait_for(pending, timeout=1)
            await events.aclose()
            return event

        event = asyncio.run(scenario())

        assert event.startswith('data: ')
        assert event.endswith('\n\n')
        payload = json.loads(event[len('data: '):])
        assert payload['path'] == '/keep'
        assert payload['serverId'] == 'keep'

    def test_server_log_unknown(self, client):
        assert client.get('/__api/servers/nothere/log').status_code == 404


class TestDocs:
    """Test generated docs and types."""

    def test_markdown_docs(self, client, server_id):
        response = client.get(f'/__api/servers/{server_id}/docs')

        assert response.status_code == 200
        assert response.headers['content-type'].startswith('text/markdown')
        assert response.text.startswith('# Orders API API')
        assert '| `GET` | `/ping` | 200 | Static route |' in response.text

    def test_typescript_types(self, client, server_id):
        response = client.get(f'/__api/servers/{server_id}/types')

        assert response.status_code == 200
        assert response.headers['content-type'].startswith('text/typescript')
        assert 'export interface Order {' in response.text
        assert '  total: number;' in response.text
        assert 'export type GetPingResponse = {\n  pong: boolean;\n};' in response.text

    def test_unknown_server(self, client):
        assert client.get('/__api/servers/nothere/docs').status_code == 404
        assert client.get('/__api/servers/nothere/types').status_code == 404
