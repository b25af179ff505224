"""
Tests for QuickMock Template Resolver

Tests placeholder resolution including:
- Context lookups (params, query, body, headers)
- Faker vocabulary
- Literal coercion rules
- Unknown placeholders
"""

import re

import pytest

from quickmock.mock.template import (
    FAKER_GENERATORS,
    MISSING,
    TemplateResolver,
    build_context,
    coerce_literal,
    lookup_path,
    stringify,
)


@pytest.fixture
def resolver():
    """Seeded resolver for reproducible fake data."""
    return TemplateResolver(seed=1234)


@pytest.fixture
def context():
    return build_context(
        params={'id': '42', 'slug': 'hello-world'},
        query={'page': '2', 'env': 'prod'},
        body={'user': {'name': 'Ada', 'tags': ['x', 'y']}, 'active': True},
        headers={'X-Request-Id': 'abc-123'}
    )


class TestContextLookups:
    """Test dotted-path placeholders against the request context."""

    def test_param_lookup(self, resolver, context):
        assert resolver.resolve('{{params.slug}}', context) == 'hello-world'

    def test_nested_body_lookup(self, resolver, context):
        assert resolver.resolve('{{body.user.name}}', context) == 'Ada'

    def test_list_index_lookup(self, resolver, context):
        assert resolver.resolve('{{body.user.tags.1}}', context) == 'y'

    def test_headers_are_lowercased(self, resolver, context):
        assert resolver.resolve('{{headers.x-request-id}}', context) == 'abc-123'

    def test_whitespace_inside_braces(self, resolver, context):
        assert resolver.resolve('{{ query.env }}', context) == 'prod'

    def test_interpolation_inside_text(self, resolver, context):
        assert resolver.resolve('User {{params.id}} on page {{query.page}}', context) == 'User 42 on page 2'

    def test_object_value_spliced_as_json(self, resolver, context):
        assert resolver.resolve('tags={{body.user.tags}}', context) == 'tags=["x","y"]'

    def test_null_body(self, resolver):
        """A missing body leaves body placeholders untouched."""
        ctx = build_context()
        assert resolver.resolve('{{body.name}}', ctx) == '{{body.name}}'


class TestUnknownPlaceholders:
    """Unknown placeholders stay verbatim and never raise."""

    def test_unknown_path(self, resolver, context):
        assert resolver.resolve('{{params.missing}}', context) == '{{params.missing}}'

    def test_unknown_faker_name(self, resolver, context):
        assert resolver.resolve('{{faker.unicorn}}', context) == '{{faker.unicorn}}'

    def test_unknown_mixed_with_known(self, resolver, context):
        assert resolver.resolve('{{nope}}-{{params.id}}', context) == '{{nope}}-42'


class TestCoercion:
    """Test literal coercion after substitution."""

    def test_single_numeric_token_becomes_number(self, resolver, context):
        assert resolver.resolve('{{params.id}}', context) == 42

    def test_single_boolean_token_becomes_bool(self, resolver, context):
        assert resolver.resolve('{{body.active}}', context) is True

    def test_decimal_coercion(self, resolver):
        ctx = build_context(query={'price': '9.99'})
        assert resolver.resolve('{{query.price}}', ctx) == 9.99

    def test_text_around_token_stays_string(self, resolver, context):
        assert resolver.resolve('id-{{params.id}}', context) == 'id-42'

    def test_multiple_tokens_stay_string(self, resolver, context):
        assert resolver.resolve('{{params.id}}{{query.page}}', context) == '422'

    def test_plain_literal_not_coerced(self, resolver, context):
        """Strings without placeholders are left exactly as written."""
        assert resolver.resolve('123', context) == '123'
        assert resolver.resolve('true', context) == 'true'

    def test_faker_number_is_number(self, resolver):
        for _ in range(20):
            value = resolver.resolve('{{faker.number}}', build_context())
            assert isinstance(value, int) and not isinstance(value, bool)

    def test_coerce_literal(self):
        assert coerce_literal('false') is False
        assert coerce_literal('-7') == -7
        assert coerce_literal('1.5') == 1.5
        assert coerce_literal('1e5') == '1e5'
        assert coerce_literal('007a') == '007a'


class TestRecursiveResolution:
    """Test resolution over nested JSON values."""

    def test_nested_structure(self, resolver, context):
        template = {
            'id': '{{params.id}}',
            'meta': {'page': '{{query.page}}', 'flags': ['{{body.active}}', 'static']},
            'count': 3,
            'nothing': None,
        }

        result = resolver.resolve(template, context)

        assert result == {
            'id': 42,
            'meta': {'page': 2, 'flags': [True, 'static']},
            'count': 3,
            'nothing': None,
        }

    def test_keys_are_rendered_but_not_coerced(self, resolver, context):
        result = resolver.resolve({'{{params.slug}}': 1, '{{params.id}}': 2}, context)
        assert result == {'hello-world': 1, '42': 2}

    def test_template_not_mutated(self, resolver, context):
        template = {'id': '{{params.id}}'}
        resolver.resolve(template, context)
        assert template == {'id': '{{params.id}}'}


class TestFakerVocabulary:
    """Test the faker.* generator names."""

    EXPECTED_NAMES = {
        'id', 'name', 'firstName', 'lastName', 'email', 'phone', 'number',
        'boolean', 'date', 'timestamp', 'company', 'title', 'url', 'avatar',
        'color', 'ip', 'slug', 'lorem', 'paragraph',
    }

    def test_vocabulary_is_exact(self):
        assert set(FAKER_GENERATORS) == self.EXPECTED_NAMES

    @pytest.mark.parametrize('name', sorted(EXPECTED_NAMES))
    def test_every_generator_produces_a_value(self, resolver, name):
        value = resolver.generate(name)
        assert value is not None
        assert value != ''

    def test_id_is_uuid(self, resolver):
        assert re.match(r'^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$', resolver.generate('id'))

    def test_email_shape(self, resolver):
        assert '@' in resolver.generate('email')

    def test_date_is_iso_utc(self, resolver):
        assert re.match(r'^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z$', resolver.generate('date'))

    def test_timestamp_is_epoch_millis(self, resolver):
        value = resolver.resolve('{{faker.timestamp}}', build_context())
        assert isinstance(value, int)
        assert value > 1_000_000_000_000

    def test_phone_stays_string(self, resolver):
        assert isinstance(resolver.resolve('{{faker.phone}}', build_context()), str)

    def test_fresh_value_per_call(self, resolver):
        ids = {resolver.generate('id') for _ in range(10)}
        assert len(ids) == 10

    def test_seeded_resolvers_agree(self):
        first = TemplateResolver(seed=99).generate('name')
        second = TemplateResolver(seed=99).generate('name')
        assert first == second

    def test_unknown_generator_raises_on_direct_call(self, resolver):
        with pytest.raises(KeyError):
            resolver.generate('unicorn')


class TestHelpers:
    """Test stringify and lookup_path."""

    def test_stringify(self):
        assert stringify(True) == 'true'
        assert stringify(None) == 'null'
        assert stringify(5.0) == '5'
        assert stringify(2.5) == '2.5'
        assert stringify({'a': 1}) == '{"a":1}'

    def test_lookup_missing(self):
        assert lookup_path({'a': {'b': 1}}, 'a.c') is MISSING
        assert lookup_path({'a': [1]}, 'a.5') is MISSING
        assert lookup_path(None, 'a') is MISSING

    def test_lookup_falsy_values(self):
        assert lookup_path({'a': 0}, 'a') == 0
        assert lookup_path({'a': None}, 'a') is None
