"""Shared fixtures for the rule extractor tests"""

import pytest

from laravel_rule_extractor.ast_reader import ASTReader
from laravel_rule_extractor.conditional_rules import ConditionalPathAnalyzer
from laravel_rule_extractor.diagnostics import DiagnosticsCollector
from laravel_rule_extractor.enums import EnumAnalyzer, EnumRegistry
from laravel_rule_extractor.parameter_builder import ParameterBuilder
from laravel_rule_extractor.rules_extractor import RulesExtractor


def request_source(rules_body: str, extra_methods: str = '', class_name: str = 'TestRequest') -> str:
    """Wrap a rules() body into a FormRequest class"""
    return f"""<?php

namespace App\\Http\\Requests;

use Illuminate\\Foundation\\Http\\FormRequest;
use Illuminate\\Validation\\Rule;

class {class_name} extends FormRequest
{{
    public function rules(): array
    {{
{rules_body}
    }}
{extra_methods}
}}
"""


@pytest.fixture
def collector():
    return DiagnosticsCollector()


@pytest.fixture
def reader(collector):
    return ASTReader(collector)


@pytest.fixture
def extractor(reader, collector):
    return RulesExtractor(reader, collector=collector)


@pytest.fixture
def path_analyzer(extractor, collector):
    return ConditionalPathAnalyzer(extractor, collector=collector)


@pytest.fixture
def enum_registry(reader, collector):
    return EnumRegistry(reader, collector=collector)


@pytest.fixture
def builder(enum_registry):
    return ParameterBuilder(enum_analyzer=EnumAnalyzer(enum_registry))


@pytest.fixture
def parse_rules_method(reader):
    """source -> (ast, class node, rules() node)"""
    def parse(source: str, class_name: str = 'TestRequest', method: str = 'rules'):
        ast = reader.parse_source(source, 'TestRequest.php')
        assert ast is not None
        class_node = reader.find_class(ast, class_name)
        assert class_node is not None
        method_node = reader.find_method(ast, class_node, method)
        assert method_node is not None
        return ast, class_node, method_node
    return parse


@pytest.fixture
def extract_rules(extractor, parse_rules_method):
    def extract(rules_body: str, extra_methods: str = ''):
        ast, class_node, method = parse_rules_method(request_source(rules_body, extra_methods))
        return extractor.extract(ast, method, class_node)
    return extract


@pytest.fixture
def analyze_paths(path_analyzer, parse_rules_method):
    def analyze(rules_body: str, extra_methods: str = ''):
        ast, class_node, method = parse_rules_method(request_source(rules_body, extra_methods))
        return path_analyzer.analyze(ast, method, class_node)
    return analyze
