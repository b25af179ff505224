"""
QuickMock Recordings

Turns upstream exchanges captured by proxy passthrough into static routes.
"""

from typing import Any, Dict

from ..common import safe_json_parse
from .models import Recording, Route

# Noisy or sensitive headers that should not end up in a generated route
SKIP_RESPONSE_HEADERS = {
    'transfer-encoding', 'connection', 'keep-alive', 'date', 'server',
    'content-length', 'content-encoding', 'vary', 'x-powered-by',
    'access-control-allow-origin', 'access-control-allow-methods',
    'access-control-allow-headers', 'access-control-max-age',
    'access-control-expose-headers',
    'authorization', 'cookie', 'set-cookie', 'x-api-key',
}

# Response keys that upstreams usually generate themselves
SERVER_GENERATED_KEYS = {
    'id', 'created_at', 'createdat', 'updated_at', 'updatedat',
    'created', 'updated', 'modified', 'timestamp',
}

WRITE_METHODS = ('POST', 'PUT', 'PATCH')


def infer_placeholder(key: str, value: Any) -> str:
    """Pick a faker placeholder that fits a response field's name and type."""
    lowered = key.lower()
    if lowered == 'id' or lowered.endswith('_id') or (lowered.endswith('id') and len(lowered) > 2):
        return '{{faker.id}}'
    if 'email' in lowered:
        return '{{faker.email}}'
    if lowered in ('name', 'full_name'):
        return '{{faker.name}}'
    if 'created' in lowered or 'updated' in lowered or lowered.endswith('_at') or lowered == 'date':
        return '{{faker.date}}'
    if isinstance(value, bool):
        return '{{faker.boolean}}'
    if isinstance(value, (int, float)):
        return '{{faker.number}}'
    return '{{faker.lorem}}'


def build_echo_template(request_body: Dict[str, Any], response_body: Dict[str, Any]) -> Dict[str, Any]:
    """
    Build a response template for a write endpoint.

    Keys the client sent are echoed back with ``{{body.key}}``; keys the
    upstream generated are replaced with faker placeholders.

    Example:
        build_echo_template({'name': 'Ada'}, {'id': 7, 'name': 'Ada'})
        # {'id': '{{faker.id}}', 'name': '{{body.name}}'}
    """
    template = {}
    for key, value in response_body.items():
        if key.lower() not in SERVER_GENERATED_KEYS and key in request_body:
            template[key] = f"{{{{body.{key}}}}}"
        else:
            template[key] = infer_placeholder(key, value)
    return template


def filter_response_headers(headers: Dict[str, str]) -> Dict[str, str]:
    return {k: v for k, v in headers.items() if k.lower() not in SKIP_RESPONSE_HEADERS}


def recording_to_route(recording: Recording) -> Route:
    """
    Promote a recorded upstream exchange into a static route.

    Args:
        recording: Recording captured by proxy passthrough

    Returns:
        Route serving the recorded status, headers and body
    """
    response: Any = None
    if recording.body:
        response = safe_json_parse(recording.body, default=recording.body)

    if recording.method in WRITE_METHODS and recording.request_body and isinstance(response, dict):
        request_body = safe_json_parse(recording.request_body)
        if isinstance(request_body, dict):
            response = build_echo_template(request_body, response)

    return Route(
        method=recording.method,
        path=recording.path.split('?', 1)[0],
        status=recording.status,
        response=response,
        headers=filter_response_headers(recording.response_headers)
    )
