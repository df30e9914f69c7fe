"""Tests for anonymous FormRequest resolution"""

from unittest.mock import MagicMock

import pytest

from laravel_rule_extractor.anonymous_request import (
    AnonymousRequestResolver, ClassReflection, build_fragment,
)


ANONYMOUS_FILE = """<?php

namespace App\\Http\\Requests;

use App\\Enums\\Status;

$request = new class extends FormRequest {
    public function rules(): array
    {
        if ($this->isMethod('POST')) {
            return ['title' => 'required|string|max:100'];
        }
        return ['title' => 'sometimes|string'];
    }

    public function attributes(): array
    {
        return ['title' => 'Post title'];
    }
};
"""


class ArticleRequest:
    """Python stand-in for a class that can only be reached reflectively"""
    request: object

    def rules(self):
        return {'title': 'required|string', 'verb': self.request['method']}

    def attributes(self):
        return {'title': 'Title'}

    def messages(self):
        return {}


class BrokenRulesRequest:

    def rules(self):
        raise RuntimeError('database unavailable')

    def attributes(self):
        return {'title': 'Title'}


class BrokenAttributesRequest:

    def rules(self):
        return {'title': 'required'}

    def attributes(self):
        raise ValueError('translator missing')

    def messages(self):
        return {'title.required': 'Needed'}


@pytest.fixture
def resolver(reader, extractor, path_analyzer, collector):
    return AnonymousRequestResolver(reader, extractor, path_analyzer, collector,
                                    request_factory=lambda: {'method': 'POST'})


def write_source(tmp_path, text: str, name: str = 'routes.php'):
    path = tmp_path / name
    path.write_text(text)
    return path


def anonymous_handle(tmp_path, cls=ArticleRequest):
    path = write_source(tmp_path, ANONYMOUS_FILE)
    lines = ANONYMOUS_FILE.splitlines()
    start = next(i for i, line in enumerate(lines, 1) if 'new class' in line)
    return ClassReflection(cls, str(path), start, len(lines), 'App\\Http\\Requests')


class TestSourceStrategy:

    def test_rules_from_source(self, resolver, collector, tmp_path):
        handle = anonymous_handle(tmp_path)
        assert resolver.resolve(handle) == {'title': 'sometimes|string'}
        assert not collector.has_errors()
        assert not collector.has_warnings()

    def test_details_from_source(self, resolver, tmp_path):
        details = resolver.resolve_details(anonymous_handle(tmp_path))
        assert details['attributes'] == {'title': 'Post title'}
        assert details['messages'] == {}

    def test_conditional_from_source(self, resolver, tmp_path):
        result = resolver.resolve_conditional(anonymous_handle(tmp_path))
        assert len(result.rule_set_branches) == 2
        assert result.rule_set_branches[0].conditions[0].method == 'POST'
        assert result.merged_rules['title'] == ['required', 'string', 'max:100', 'sometimes', 'string']

    def test_source_is_preferred_over_reflection(self, resolver, tmp_path):
        handle = anonymous_handle(tmp_path, BrokenRulesRequest)
        assert resolver.resolve(handle) == {'title': 'sometimes|string'}

    def test_resolve_source_reads_imports(self, resolver, tmp_path):
        namespace, aliases = resolver.resolve_source(anonymous_handle(tmp_path))
        assert namespace == 'App\\Http\\Requests'
        assert aliases == {'Status': 'App\\Enums\\Status'}


class TestSourceFailures:
    """Every source failure is recorded and falls through to reflection"""

    def test_no_line_info(self, resolver, collector):
        rules = resolver.resolve(ClassReflection(ArticleRequest))
        assert rules == {'title': 'required|string', 'verb': 'POST'}
        assert len(collector.by_error_type('anonymous_line_info_unavailable')) == 1

    def test_missing_file(self, resolver, collector, tmp_path):
        handle = ClassReflection(ArticleRequest, str(tmp_path / 'gone.php'), 3, 10)
        assert resolver.resolve(handle)['title'] == 'required|string'
        assert len(collector.by_error_type('file_not_found')) == 1

    def test_parse_error(self, resolver, collector, tmp_path):
        path = write_source(tmp_path, "<?php\n$x = new class {\n  public function rules( {\n};\n")
        handle = ClassReflection(ArticleRequest, str(path), 2, 4)
        assert resolver.resolve(handle)['title'] == 'required|string'
        errors = collector.by_error_type('anonymous_ast_parse_error')
        assert len(errors) == 1
        assert errors[0].is_error()

    def test_empty_tree(self, resolver, collector, tmp_path):
        path = write_source(tmp_path, "<?php\n// nothing here\n")
        handle = ClassReflection(ArticleRequest, str(path), 2, 2)
        resolver.resolve(handle)
        assert len(collector.by_error_type('anonymous_ast_null_result')) == 1

    def test_class_node_not_found(self, resolver, collector, tmp_path):
        path = write_source(tmp_path, "<?php\n$x = 1;\n")
        handle = ClassReflection(ArticleRequest, str(path), 2, 2)
        resolver.resolve(handle)
        warnings = collector.by_error_type('anonymous_class_node_not_found')
        assert len(warnings) == 1
        assert warnings[0].metadata['file_path'] == str(path)


class TestReflectionStrategy:

    def test_rules_failure_voids_everything(self, resolver, collector):
        details = resolver.resolve_details(ClassReflection(BrokenRulesRequest))
        assert details == {'rules': {}, 'attributes': {}, 'messages': {}}
        errors = collector.by_error_type('anonymous_method_invocation_error')
        assert len(errors) == 1
        assert errors[0].metadata['exception_class'] == 'RuntimeError'

    def test_attributes_failure_is_non_critical(self, resolver, collector):
        details = resolver.resolve_details(ClassReflection(BrokenAttributesRequest))
        assert details['rules'] == {'title': 'required'}
        assert details['attributes'] == {}
        assert details['messages'] == {'title.required': 'Needed'}
        warnings = collector.by_error_type('anonymous_non_critical_method_failure')
        assert len(warnings) == 1
        assert warnings[0].metadata['method'] == 'attributes'
        assert warnings[0].metadata['exception_class'] == 'ValueError'
        assert not collector.by_error_type('anonymous_method_invocation_error')

    def test_missing_optional_methods(self, resolver, collector):
        class RulesOnly:
            def rules(self):
                return {'q': 'string'}

        details = resolver.resolve_details(ClassReflection(RulesOnly))
        assert details == {'rules': {'q': 'string'}, 'attributes': {}, 'messages': {}}
        assert not collector.by_error_type('anonymous_non_critical_method_failure')

    def test_instantiation_failure(self, resolver, collector):
        handle = MagicMock()
        handle.get_name.return_value = 'class@anonymous'
        handle.get_file_name.return_value = None
        handle.new_instance_without_constructor.side_effect = TypeError('abstract')
        assert resolver.resolve(handle) == {}
        errors = collector.by_error_type('anonymous_instantiation_error')
        assert errors[0].metadata['exception_class'] == 'TypeError'

    def test_conditional_wraps_reflective_rules(self, resolver):
        result = resolver.resolve_conditional(ClassReflection(BrokenAttributesRequest))
        assert len(result.rule_set_branches) == 1
        assert result.rule_set_branches[0].is_default()
        assert result.merged_rules == {'title': ['required']}

    def test_request_property_is_optional(self, reader, extractor, path_analyzer, collector):
        resolver = AnonymousRequestResolver(reader, extractor, path_analyzer, collector,
                                            request_factory=MagicMock(side_effect=RuntimeError('no app')))
        rules = resolver.resolve(ClassReflection(BrokenAttributesRequest))
        assert rules == {'title': 'required'}
        resolver.request_factory.assert_not_called()


class TestClassReflection:

    def test_property_detection(self):
        assert ClassReflection(ArticleRequest).has_property('request')
        assert not ClassReflection(BrokenRulesRequest).has_property('request')

    def test_constructor_is_skipped(self):
        class Guarded:
            def __init__(self):
                raise AssertionError('constructor ran')

        instance = ClassReflection(Guarded).new_instance_without_constructor()
        assert isinstance(instance, Guarded)


class TestFragment:

    def test_fragment_wraps_class(self):
        lines = ["$r = new class extends FormRequest {\n", "    public $a;\n", "};\n"]
        assert build_fragment(lines, 1, 3) == \
            "<?php\nreturn new class extends FormRequest {\n    public $a;\n};\n"

    def test_single_line_class(self):
        lines = ["foo(new class { }, 1);\n"]
        assert build_fragment(lines, 1, 1) == "<?php\nreturn new class { };\n"

    def test_without_class_marker(self):
        assert build_fragment(["$x = 1;\n"], 1, 1) == "<?php\n$x = 1;\n"
