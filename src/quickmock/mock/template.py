"""
QuickMock Template Resolver

Resolves ``{{expr}}`` placeholders inside JSON-shaped values.

Supported expressions:
- ``faker.<name>``: fresh fake value per call (see FAKER_GENERATORS)
- ``params.*``, ``query.*``, ``body.*``, ``headers.*``: dotted lookups
  into the request context

Unknown expressions are left in place verbatim. A string that is exactly
one placeholder and resolves to a boolean or numeric literal is coerced to
that JSON type, so ``"{{faker.number}}"`` yields a number.
"""

import json
import re
from datetime import timezone
from typing import Any, Callable, Dict, Optional

from faker import Faker


TOKEN_PATTERN = re.compile(r'\{\{(.*?)\}\}')
INTEGER_PATTERN = re.compile(r'^-?\d+$')
DECIMAL_PATTERN = re.compile(r'^-?\d+\.\d+$')

MISSING = object()


def _date(fake: Faker) -> str:
    moment = fake.date_time_between(start_date='-1y', end_date='now', tzinfo=timezone.utc)
    return moment.isoformat(timespec='milliseconds').replace('+00:00', 'Z')


def _timestamp(fake: Faker) -> int:
    moment = fake.date_time_between(start_date='-1y', end_date='now', tzinfo=timezone.utc)
    return int(moment.timestamp() * 1000)


def _lorem(fake: Faker) -> str:
    words = fake.words(nb=fake.random_int(5, 15))
    words[0] = words[0].capitalize()
    return ' '.join(words) + '.'


def _paragraph(fake: Faker) -> str:
    return ' '.join(_lorem(fake) for _ in range(fake.random_int(3, 6)))


def _phone(fake: Faker) -> str:
    # Fixed shape so a phone number never collapses into a bare integer
    return f"+1-{fake.random_int(200, 999)}-{fake.random_int(100, 999)}-{fake.random_int(1000, 9999)}"


# Placeholder vocabulary; seed templates depend on these exact names
FAKER_GENERATORS: Dict[str, Callable[[Faker], Any]] = {
    'id': lambda fake: fake.uuid4(),
    'name': lambda fake: fake.name(),
    'firstName': lambda fake: fake.first_name(),
    'lastName': lambda fake: fake.last_name(),
    'email': lambda fake: fake.email(),
    'phone': _phone,
    'number': lambda fake: fake.random_int(1, 10000),
    'boolean': lambda fake: fake.pybool(),
    'date': _date,
    'timestamp': _timestamp,
    'company': lambda fake: fake.company(),
    'title': lambda fake: fake.catch_phrase(),
    'url': lambda fake: f"https://{fake.domain_name()}",
    'avatar': lambda fake: f"https://i.pravatar.cc/150?u={fake.random_int(1, 1000)}",
    'color': lambda fake: fake.hex_color(),
    'ip': lambda fake: fake.ipv4(),
    'slug': lambda fake: '-'.join(fake.words(nb=3)),
    'lorem': _lorem,
    'paragraph': _paragraph,
}


def build_context(
    params: Optional[Dict[str, str]] = None,
    query: Optional[Dict[str, str]] = None,
    body: Any = None,
    headers: Optional[Dict[str, str]] = None
) -> Dict[str, Any]:
    """Assemble the request context placeholders resolve against."""
    return {
        'params': params or {},
        'query': query or {},
        'body': body,
        'headers': {k.lower(): v for k, v in (headers or {}).items()},
    }


def stringify(value: Any) -> str:
    """Render a JSON value the way it reads when spliced into text."""
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if value is None:
        return 'null'
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (dict, list)):
        return json.dumps(value, separators=(',', ':'))
    return str(value)


def lookup_path(data: Any, dotted_path: str) -> Any:
    """
    Resolve a dotted path such as ``body.user.name`` against nested data.

    Returns:
        The value, or MISSING if any segment is absent
    """
    current = data
    for part in dotted_path.split('.'):
        if isinstance(current, dict):
            if part not in current:
                return MISSING
            current = current[part]
        elif isinstance(current, list) and part.isdigit():
            index = int(part)
            if index >= len(current):
                return MISSING
            current = current[index]
        else:
            return MISSING
    return current


def coerce_literal(text: str) -> Any:
    """Turn a bare boolean or numeric literal into its JSON type."""
    if text == 'true':
        return True
    if text == 'false':
        return False
    if INTEGER_PATTERN.match(text):
        return int(text)
    if DECIMAL_PATTERN.match(text):
        return float(text)
    return text


class TemplateResolver:
    """
    Placeholder resolver backed by a Faker instance.

    Example:
        resolver = TemplateResolver(seed=42)
        ctx = build_context(params={'id': '7'})
        resolver.resolve({'id': '{{params.id}}', 'name': '{{faker.name}}'}, ctx)
        # {'id': 7, 'name': <random full name>}
    """

    def __init__(self, locale: str = 'en_US', seed: Optional[int] = None):
        """
        Initialize template resolver.

        Args:
            locale: Faker locale used for names, companies and addresses
            seed: Optional seed for reproducible fake data
        """
        self.fake = Faker(locale)
        if seed is not None:
            self.fake.seed_instance(seed)

    def generate(self, name: str) -> Any:
        """
        Produce one value from the named generator.

        Raises:
            KeyError: If no generator has that name
        """
        return FAKER_GENERATORS[name](self.fake)

    def render_string(self, text: str, context: Dict[str, Any]) -> str:
        """Substitute every placeholder in ``text``; unknown ones stay as written."""

        def replacer(match):
            expr = match.group(1).strip()

            if expr.startswith('faker.'):
                generator = FAKER_GENERATORS.get(expr[len('faker.'):])
                if generator is not None:
                    return stringify(generator(self.fake))

            value = lookup_path(context, expr)
            if value is MISSING:
                return match.group(0)
            return stringify(value)

        return TOKEN_PATTERN.sub(replacer, text)

    def resolve(self, value: Any, context: Dict[str, Any]) -> Any:
        """
        Recursively resolve placeholders in a JSON value.

        Object keys and string leaves are rendered; numbers, booleans and
        null pass through untouched.

        Args:
            value: JSON-shaped template
            context: Request context from build_context()

        Returns:
            New JSON value with placeholders substituted
        """
        if isinstance(value, str):
            rendered = self.render_string(value, context)
            if self._is_single_token(value):
                return coerce_literal(rendered)
            return rendered

        if isinstance(value, list):
            return [self.resolve(item, context) for item in value]

        if isinstance(value, dict):
            return {
                self.render_string(str(key), context): self.resolve(item, context)
                for key, item in value.items()
            }

        return value

    @staticmethod
    def _is_single_token(text: str) -> bool:
        match = TOKEN_PATTERN.match(text)
        return match is not None and match.end() == len(text)

