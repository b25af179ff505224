"""
API documentation and type generation

Renders a server config as:
- Markdown API docs (endpoint summary, per-route modes, resource CRUD tables, curl examples)
- TypeScript declarations for resource records and route response bodies
"""

import json
import re
from dataclasses import dataclass
from typing import Any, Dict, List

from .models import MockServerConfig, Route


FAKER_DESCRIPTIONS: Dict[str, str] = {
    'faker.id': 'UUID string',
    'faker.name': 'Full name',
    'faker.firstName': 'First name',
    'faker.lastName': 'Last name',
    'faker.email': 'Email address',
    'faker.phone': 'Phone number',
    'faker.number': 'Random integer',
    'faker.boolean': 'Boolean',
    'faker.date': 'ISO 8601 date string',
    'faker.timestamp': 'Unix timestamp (number)',
    'faker.company': 'Company name',
    'faker.title': 'Article/post title',
    'faker.url': 'URL string',
    'faker.avatar': 'Avatar image URL',
    'faker.color': 'Hex color string',
    'faker.ip': 'IPv4 address string',
    'faker.slug': 'URL slug string',
    'faker.lorem': 'Random sentence',
    'faker.paragraph': 'Random paragraph',
}

NUMBER_PLACEHOLDERS = ('faker.number', 'faker.timestamp')
BOOLEAN_PLACEHOLDERS = ('faker.boolean',)

SINGLE_TOKEN = re.compile(r'^\{\{(.+?)\}\}$')
IDENTIFIER = re.compile(r'^[A-Za-z_$][\w$]*$')


@dataclass
class EndpointSummary:
    method: str
    path: str
    status: int
    description: str


@dataclass
class FieldDescription:
    path: str
    type: str
    description: str


def _placeholder(value: Any):
    if isinstance(value, str):
        match = SINGLE_TOKEN.match(value)
        if match:
            return match.group(1).strip()
    return None


def infer_type(value: Any) -> str:
    """JSON type name a template value renders as."""
    token = _placeholder(value)
    if token is not None:
        if token in NUMBER_PLACEHOLDERS:
            return 'number'
        if token in BOOLEAN_PLACEHOLDERS:
            return 'boolean'
        return 'string'
    if value is None:
        return 'null'
    if isinstance(value, bool):
        return 'boolean'
    if isinstance(value, (int, float)):
        return 'number'
    if isinstance(value, str):
        return 'string'
    if isinstance(value, list):
        return 'array'
    return 'object'


def describe_fields(value: Any, prefix: str = '') -> List[FieldDescription]:
    """Flatten an object template into dotted field descriptions."""
    fields: List[FieldDescription] = []
    if not isinstance(value, dict):
        return fields

    for key, item in value.items():
        path = f"{prefix}.{key}" if prefix else str(key)
        token = _placeholder(item)
        if token is not None:
            fields.append(FieldDescription(path, infer_type(item), FAKER_DESCRIPTIONS.get(token, token)))
        elif isinstance(item, dict):
            fields.append(FieldDescription(path, 'object', 'Nested object'))
            fields.extend(describe_fields(item, path))
        elif isinstance(item, list):
            element = infer_type(item[0]) if item else 'unknown'
            fields.append(FieldDescription(path, 'array', f"Array of {element}"))
        elif item is None:
            fields.append(FieldDescription(path, 'null', 'Null'))
        elif isinstance(item, str):
            fields.append(FieldDescription(path, 'string', f'Literal: "{item}"'))
        else:
            fields.append(FieldDescription(path, infer_type(item), f"Literal: {json.dumps(item)}"))

    return fields


def example_body(seed: Any) -> str:
    """Request body for a create example: literal seed fields only."""
    if not isinstance(seed, dict):
        return '{}'
    example = {
        key: value for key, value in seed.items()
        if isinstance(value, (str, int, float, bool)) and not (isinstance(value, str) and '{{faker.' in value)
    }
    return json.dumps(example, separators=(',', ':'))


def _route_description(route: Route) -> str:
    if route.rules:
        return f"{len(route.rules)} conditional rules"
    if route.sequence:
        return f"{len(route.sequence)}-step sequence"
    if route.responses:
        return f"{len(route.responses)} response variants"
    return 'Static route'


def collect_endpoints(config: MockServerConfig) -> List[EndpointSummary]:
    endpoints = [
        EndpointSummary(route.method, route.path, route.status, _route_description(route))
        for route in config.routes
    ]

    for name, resource in config.resources.items():
        base = resource.base_path
        endpoints.extend([
            EndpointSummary('GET', base, 200, f"List {name}"),
            EndpointSummary('GET', f"{base}/:id", 200, f"Get {name} by ID"),
            EndpointSummary('POST', base, 201, f"Create {name}"),
            EndpointSummary('PUT', f"{base}/:id", 200, f"Replace {name}"),
            EndpointSummary('PATCH', f"{base}/:id", 200, f"Update {name}"),
            EndpointSummary('DELETE', f"{base}/:id", 204, f"Delete {name}"),
        ])

    return endpoints


def _json_block(value: Any) -> List[str]:
    return ['```json', json.dumps(value, indent=2), '```']


def _field_table(value: Any) -> List[str]:
    fields = describe_fields(value)
    if not fields:
        return []
    lines = ['| Field | Type | Description |', '|-------|------|-------------|']
    lines.extend(f"| `{f.path}` | {f.type} | {f.description} |" for f in fields)
    lines.append('')
    return lines


def _route_section(route: Route, base_url: str) -> List[str]:
    lines = [f"### {route.method} {route.path}", '', f"**Status:** {route.status}"]
    if route.delay:
        lines.append(f"  **Delay:** {route.delay:g}ms")
    if route.error:
        lines.append(f"  **Error rate:** {round(route.error * 100)}%")
    lines.append('')

    if route.sequence:
        lines.append(f"**Mode:** Sequence ({len(route.sequence)} steps, each request advances to the next)")
        lines.append('')
        last = len(route.sequence) - 1
        for position, step in enumerate(route.sequence):
            tag = ' (sticky)' if step.sticky else ' (repeats)' if position == last else ''
            status = step.status if step.status is not None else route.status
            delay = f", delay {step.delay:g}ms" if step.delay else ''
            lines.append(f"**Step {position + 1}{tag}:** status {status}{delay}")
            if step.response is not None:
                lines.append('')
                lines.extend(_json_block(step.response))
            lines.append('')
    elif route.rules:
        lines.append(f"**Mode:** Conditional ({len(route.rules)} rules, first matching rule wins)")
        lines.append('')
        for position, rule in enumerate(route.rules):
            status = rule.status if rule.status is not None else route.status
            if rule.when:
                conditions = ' AND '.join(f"`{key}` = `{value}`" for key, value in rule.when.items())
                lines.append(f"**Rule {position + 1}:** When {conditions} -> status {status}")
            else:
                lines.append(f"**Default:** status {status}")
            if rule.response is not None:
                lines.append('')
                lines.extend(_json_block(rule.response))
            lines.append('')
    elif route.response is not None:
        lines.extend(['**Response:**', ''])
        lines.extend(_json_block(route.response))
        lines.append('')
        lines.extend(_field_table(route.response))

    lines.extend(['**Example:**', '', '```bash'])
    if route.method in ('GET', 'DELETE'):
        lines.append(f"curl {base_url}{route.path}")
    else:
        lines.append(f"curl -X {route.method} {base_url}{route.path} \\")
        lines.append('  -H "Content-Type: application/json" \\')
        lines.append("  -d '{}'")
    lines.extend(['```', ''])
    return lines


def generate_docs(config: MockServerConfig) -> str:
    """
    Render Markdown API documentation for a server config.

    Args:
        config: Server whose routes and resources are documented

    Returns:
        Markdown text
    """
    base_url = f"http://{config.host}:{config.port}"
    lines = [f"# {config.name} API", '']
    if config.description:
        lines.extend([config.description, ''])
    lines.extend([f"**Base URL:** `{base_url}`", ''])

    endpoints = collect_endpoints(config)
    if endpoints:
        lines.extend([
            '## Endpoint Summary', '',
            '| Method | Path | Status | Description |',
            '|--------|------|--------|-------------|',
        ])
        lines.extend(f"| `{e.method}` | `{e.path}` | {e.status} | {e.description} |" for e in endpoints)
        lines.append('')

    if config.routes:
        lines.extend(['## Routes', ''])
        for route in config.routes:
            lines.extend(_route_section(route, base_url))

    if config.resources:
        lines.extend([
            '## Resources', '',
            'Each resource provides full CRUD endpoints with an in-memory data store.', '',
        ])
        for name, resource in config.resources.items():
            base = resource.base_path
            lines.extend([
                f"### {name}", '',
                f"**Base path:** `{base}`  ",
                f"**ID field:** `{resource.id_field}`  ",
                f"**Seed count:** {resource.count}",
            ])
            if resource.delay:
                lines.append(f"  **Delay:** {resource.delay:g}ms")
            lines.extend([
                '',
                '| Method | Path | Description |',
                '|--------|------|-------------|',
                f"| `GET` | `{base}` | List all (supports `?limit=N&offset=N` and field filters) |",
                f"| `GET` | `{base}/:id` | Get by ID |",
                f"| `POST` | `{base}` | Create new |",
                f"| `PUT` | `{base}/:id` | Full replace |",
                f"| `PATCH` | `{base}/:id` | Partial update |",
                f"| `DELETE` | `{base}/:id` | Delete |",
                '',
                '**Data shape (seed template):**',
                '',
            ])
            lines.extend(_json_block(resource.seed))
            lines.append('')
            lines.extend(_field_table(resource.seed))
            lines.extend([
                '**Examples:**', '', '```bash',
                '# List all', f"curl {base_url}{base}", '',
                '# Get by ID', f"curl {base_url}{base}/ITEM_ID", '',
                '# Create',
                f"curl -X POST {base_url}{base} \\",
                '  -H "Content-Type: application/json" \\',
                f"  -d '{example_body(resource.seed)}'", '',
                '# Paginate', f'curl "{base_url}{base}?limit=10&offset=0"',
                '```', '',
            ])

    lines.extend([
        '## Special Endpoints', '',
        '| Method | Path | Description |',
        '|--------|------|-------------|',
        '| `POST` | `/__reset` | Re-seed all resource collections to initial state |',
        '',
    ])
    return '\n'.join(lines)


# -- TypeScript ------------------------------------------------------------

def _pascal_case(text: str) -> str:
    words = re.split(r'[^A-Za-z0-9]+', text)
    return ''.join(word[:1].upper() + word[1:] for word in words if word)


def _singular(name: str) -> str:
    if name.endswith('ies') and len(name) > 3:
        return name[:-3] + 'y'
    if name.endswith('s') and not name.endswith('ss') and len(name) > 1:
        return name[:-1]
    return name


def _property_name(key: str) -> str:
    return key if IDENTIFIER.match(key) else json.dumps(key)


def ts_type(value: Any, indent: int = 0) -> str:
    """TypeScript type expression for a template value."""
    kind = infer_type(value)
    if kind == 'array':
        if not value:
            return 'unknown[]'
        element = ts_type(value[0], indent)
        return f"({element})[]" if ' | ' in element else f"{element}[]"
    if kind == 'object':
        return _ts_object(value, indent)
    return kind


def _ts_object(value: Dict[str, Any], indent: int) -> str:
    if not value:
        return 'Record<string, unknown>'
    pad = '  ' * (indent + 1)
    members = [f"{pad}{_property_name(str(k))}: {ts_type(v, indent + 1)};" for k, v in value.items()]
    return '{\n' + '\n'.join(members) + '\n' + '  ' * indent + '}'


def _route_body(route: Route) -> Any:
    if route.response is not None:
        return route.response
    for candidate in [step.response for step in route.sequence] + [rule.response for rule in route.rules] + route.responses:
        if isinstance(candidate, (dict, list)):
            return candidate
    return None


def generate_types(config: MockServerConfig) -> str:
    """
    Render TypeScript declarations for a server config.

    Each resource becomes an interface named after its singular PascalCase
    name; each route with a JSON object or array body becomes a
    ``<Method><Path>Response`` type alias.
    """
    lines = [f"// TypeScript types for {config.name}", '// Generated by quickmock', '']
    used = set()

    def unique(name: str) -> str:
        candidate, suffix = name, 2
        while candidate in used:
            candidate = f"{name}{suffix}"
            suffix += 1
        used.add(candidate)
        return candidate

    for name, resource in config.resources.items():
        seed = dict(resource.seed) if isinstance(resource.seed, dict) else {}
        record = {resource.id_field: seed.pop(resource.id_field, '{{faker.id}}')}
        record.update(seed)
        interface = unique(_pascal_case(_singular(name)) or 'Resource')
        lines.append(f"export interface {interface} {_ts_object(record, 0)}")
        lines.append('')

    for route in config.routes:
        body = _route_body(route)
        if not isinstance(body, (dict, list)):
            continue
        path_name = _pascal_case(route.path.replace(':', ' by '))
        alias = unique(f"{_pascal_case(route.method.lower())}{path_name}Response")
        lines.append(f"export type {alias} = {ts_type(body)};")
        lines.append('')

    return '\n'.join(lines)
