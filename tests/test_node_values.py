"""Tests for literal value extraction"""

import pytest

from laravel_rule_extractor.ast_reader import named_children
from laravel_rule_extractor.node_values import NodeValueExtractor, decode_php_string


@pytest.fixture
def value_of(reader):
    """PHP expression text -> (ast, expression node)"""
    def parse(expression: str):
        ast = reader.parse_source(f"<?php $x = {expression};")
        statement = ast.statements[0]
        assignment = named_children(statement)[0]
        return ast, assignment.child_by_field_name('right')
    return parse


class TestScalars:

    @pytest.mark.parametrize('expression, expected', [
        ("'hello'", 'hello'),
        ('"hello"', 'hello'),
        ("'it\\'s'", "it's"),
        ('"tab\\there"', 'tab\there'),
        ('42', 42),
        ('0x1F', 31),
        ('1_000', 1000),
        ('2.5', 2.5),
        ('-3', -3),
        ('true', True),
        ('FALSE', False),
        ('null', None),
    ])
    def test_literals(self, value_of, expression, expected):
        ast, node = value_of(expression)
        assert NodeValueExtractor().extract_value(ast, node) == expected

    def test_interpolated_string_is_not_literal(self, value_of):
        ast, node = value_of('"hello $name"')
        assert NodeValueExtractor().extract_value(ast, node) is None

    def test_non_literal_is_none(self, value_of):
        ast, node = value_of('$this->foo()')
        assert NodeValueExtractor().extract_value(ast, node) is None

    def test_typed_helpers(self, value_of):
        values = NodeValueExtractor()
        ast, node = value_of('7')
        assert values.extract_int(ast, node) == 7
        assert values.extract_float(ast, node) == 7.0
        assert values.extract_string(ast, node) is None

        ast, node = value_of('true')
        assert values.extract_int(ast, node) is None


class TestArrays:

    def test_list_literal(self, value_of):
        ast, node = value_of("['a', 'b', 3]")
        assert NodeValueExtractor().extract_value(ast, node) == ['a', 'b', 3]

    def test_keyed_array_keeps_string_keys_only(self, value_of):
        ast, node = value_of("['name' => 'Full name', 'age' => 3, 0 => 'skip', 'x' => $y]")
        assert NodeValueExtractor().extract_keyed_array(ast, node) == {
            'name': 'Full name',
            'age': 3,
            'x': None,
        }

    def test_keyed_array_of_non_array(self, value_of):
        ast, node = value_of("'text'")
        assert NodeValueExtractor().extract_keyed_array(ast, node) == {}


class TestDecode:

    def test_single_quotes_keep_backslashes(self):
        assert decode_php_string("'a\\nb'") == 'a\\nb'

    def test_double_quote_escapes(self):
        assert decode_php_string('"a\\nb\\x41"') == 'a\nbA'
