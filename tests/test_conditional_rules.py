"""Tests for path-sensitive rules() analysis"""

import pytest

from laravel_rule_extractor.conditional_rules import ConditionClassifier, merge_branch_rules
from laravel_rule_extractor.models import Condition, RuleSetBranch


class TestBranchDiscovery:

    def test_if_elseif_else_chain_gives_one_branch_per_arm(self, analyze_paths):
        result = analyze_paths("""
        if ($this->isMethod('POST')) {
            return ['a' => 'required'];
        } elseif ($this->isMethod('PUT')) {
            return ['a' => 'sometimes'];
        } elseif ($this->isMethod('PATCH')) {
            return ['a' => 'nullable'];
        } else {
            return ['a' => 'string'];
        }""")
        assert len(result.rule_set_branches) == 4
        methods = [b.conditions[0].method if b.conditions else None for b in result.rule_set_branches]
        assert methods == ['POST', 'PUT', 'PATCH', None]
        assert result.rule_set_branches[-1].probability == 1.0

    def test_else_if_with_space(self, analyze_paths):
        result = analyze_paths("""
        if ($this->isMethod('POST')) {
            return ['a' => 'required'];
        } else if ($this->isMethod('PUT')) {
            return ['a' => 'sometimes'];
        } else {
            return ['a' => 'string'];
        }""")
        assert len(result.rule_set_branches) == 3

    def test_no_conditionals_gives_single_default_branch(self, analyze_paths):
        result = analyze_paths("""
        return ['name' => 'required'];""")
        assert len(result.rule_set_branches) == 1
        branch = result.rule_set_branches[0]
        assert branch.is_default()
        assert branch.probability == 1.0
        assert branch.rules == {'name': 'required'}
        assert not result.has_conditions

    def test_empty_method_gives_empty_default_branch(self, analyze_paths):
        result = analyze_paths("        //")
        assert [b.rules for b in result.rule_set_branches] == [{}]

    def test_assignments_fork_with_paths(self, analyze_paths):
        result = analyze_paths("""
        $rules = ['name' => 'required'];
        if ($this->isMethod('PUT')) {
            $rules['name'] = 'sometimes';
        }
        return $rules;""")
        rules = sorted(b.rules['name'] for b in result.rule_set_branches)
        assert rules == ['required', 'sometimes']
        put = next(b for b in result.rule_set_branches if b.conditions)
        assert put.rules == {'name': 'sometimes'}

    def test_switch_cases(self, analyze_paths):
        result = analyze_paths("""
        switch ($this->method()) {
            case 'POST':
                return ['a' => 'required'];
            case 'PUT':
                return ['a' => 'sometimes'];
            default:
                return [];
        }""")
        assert len(result.rule_set_branches) == 3
        first = result.rule_set_branches[0].conditions[0]
        assert first.type == Condition.HTTP_METHOD
        assert first.method == 'POST'

    def test_path_limit(self, analyze_paths, collector):
        ifs = '\n'.join(
            f"        if ($this->flag{i}) {{ $rules['f{i}'] = 'string'; }}" for i in range(10))
        result = analyze_paths(f"""
        $rules = [];
{ifs}
        return $rules;""")
        assert len(result.rule_set_branches) == 256
        assert len(collector.by_error_type('path_limit_exceeded')) == 1


class TestProbability:

    def test_nested_condition_probability(self, analyze_paths):
        result = analyze_paths("""
        if ($this->isMethod('POST')) {
            if ($this->has('b')) {
                return ['x' => 'required'];
            }
        }
        return [];""")
        nested = next(b for b in result.rule_set_branches if len(b.conditions) == 2)
        assert nested.probability == 0.25

    @pytest.mark.parametrize('depth', [0, 1, 2, 3])
    def test_create_uses_power_of_two(self, depth):
        branch = RuleSetBranch.create([Condition.custom('x')] * depth, {})
        assert branch.probability == 1 / 2 ** depth


class TestScenarios:

    def test_http_method_branches(self, analyze_paths):
        result = analyze_paths("""
        if ($this->isMethod('DELETE')) {
            return [];
        }

        if ($this->isMethod('POST')) {
            return [
                'name' => 'required|string',
                'email' => 'required|email',
            ];
        }

        return [
            'name' => 'sometimes|string',
            'email' => 'sometimes|email',
        ];""")
        branches = result.rule_set_branches
        assert len(branches) == 3
        delete = branches[0]
        assert delete.conditions[0].method == 'DELETE'
        assert delete.rules == {}
        assert result.merged_rules['email'] == ['required', 'email', 'sometimes', 'email']
        assert result.has_conditions

    def test_nested_user_condition(self, analyze_paths):
        result = analyze_paths("""
        if ($this->isMethod('POST')) {
            if ($this->user()->isAdmin()) {
                return ['role' => 'required|in:admin,moderator'];
            }
            return ['role' => 'required|in:user'];
        }
        return [];""")
        branches = result.rule_set_branches
        assert len(branches) == 3

        admin = branches[0]
        assert len(admin.conditions) == 2
        assert admin.probability == 0.25
        assert admin.conditions[0] == Condition.http_method('POST', "$this->isMethod('POST')")
        assert admin.conditions[1].type == Condition.USER_METHOD
        assert admin.conditions[1].method == 'isAdmin'

        assert branches[1].rules == {'role': 'required|in:user'}
        assert branches[1].probability == 0.5
        assert branches[2].rules == {}
        assert branches[2].probability == 1.0

    def test_merge_keeps_every_branch_token(self, analyze_paths):
        result = analyze_paths("""
        if ($this->isMethod('POST')) {
            return ['a' => ['required', 'string'], 'b' => 'integer'];
        }
        return ['a' => 'nullable|string', 'c' => 'boolean'];""")
        assert result.merged_rules == {
            'a': ['required', 'string', 'nullable', 'string'],
            'b': ['integer'],
            'c': ['boolean'],
        }


class TestConditionClassifier:

    @pytest.fixture
    def classify(self, reader):
        def parse(expression: str) -> Condition:
            ast = reader.parse_source(f"<?php if ({expression}) {{}}")
            condition = ast.statements[0].child_by_field_name('condition')
            return ConditionClassifier().classify(ast, condition)
        return parse

    def test_is_method(self, classify):
        condition = classify("$this->isMethod('post')")
        assert condition.type == Condition.HTTP_METHOD
        assert condition.method == 'POST'

    @pytest.mark.parametrize('expression', [
        "$this->method() === 'PUT'",
        "'PUT' == request()->method()",
        "$this->getMethod() == 'PUT'",
    ])
    def test_verb_comparisons(self, classify, expression):
        condition = classify(expression)
        assert condition.type == Condition.HTTP_METHOD
        assert condition.method == 'PUT'

    def test_request_helper_is_method(self, classify):
        condition = classify("request()->isMethod('patch')")
        assert condition.type == Condition.HTTP_METHOD
        assert condition.method == 'PATCH'

    def test_user_predicate(self, classify):
        condition = classify('$this->user()->hasRole()')
        assert condition.type == Condition.USER_METHOD
        assert condition.method == 'hasRole'

    def test_guarded_user_predicate_is_custom(self, classify):
        condition = classify('$this->user() && $this->user()->isAdmin()')
        assert condition.type == Condition.CUSTOM
        assert condition.expression == '$this->user() && $this->user()->isAdmin()'

    def test_non_predicate_user_call_is_custom(self, classify):
        assert classify('$this->user()->team()').type == Condition.CUSTOM

    def test_multiline_expression_is_compacted(self, classify):
        condition = classify("$this->has('a')\n    && $this->has('b')")
        assert condition.expression == "$this->has('a') && $this->has('b')"


class TestMergeBranchRules:

    def test_pipe_strings_are_split(self):
        branches = [
            RuleSetBranch.create((), {'a': 'required|string'}),
            RuleSetBranch.create((Condition.custom('x'),), {'a': ['string'], 'b': 'integer'}),
        ]
        assert merge_branch_rules(branches) == {
            'a': ['required', 'string', 'string'],
            'b': ['integer'],
        }
