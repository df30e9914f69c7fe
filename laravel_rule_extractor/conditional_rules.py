"""
Path-sensitive rules() analysis.

Every reachable `return` becomes one RuleSetBranch carrying the conditions of
the if / elseif / switch arms that lead to it, outermost first.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from tree_sitter import Node

from .ast_reader import PhpAst, call_arguments, method_body, named_children, unwrap_parentheses
from .config import ExtractorConfig
from .diagnostics import DiagnosticsCollector
from .models import Condition, ConditionalRuleResult, RuleSetBranch
from .node_values import NodeValueExtractor
from .rule_tokens import normalize_rules
from .rules_extractor import CALL_TYPES, ExtractionContext, RulesExtractor, compact_text

logger = logging.getLogger(__name__)

LOOP_TYPES = ('foreach_statement', 'for_statement', 'while_statement', 'do_statement')


class ConditionClassifier:
    """Classify an if() test as http_method, user_method or custom"""

    def __init__(self, value_extractor: Optional[NodeValueExtractor] = None,
                 user_predicate_prefixes: Tuple[str, ...] = ('is', 'has', 'can')):
        self.values = value_extractor or NodeValueExtractor()
        self.user_predicate_prefixes = user_predicate_prefixes

    def classify(self, ast: PhpAst, node: Optional[Node]) -> Condition:
        node = unwrap_parentheses(node)
        if node is None:
            return Condition.custom('')
        expression = compact_text(ast.text(node))

        if node.type in CALL_TYPES:
            name = ast.text(node.child_by_field_name('name'))
            if name.lower() == 'ismethod':
                args = call_arguments(node)
                verb = self.values.extract_string(ast, args[0]) if args else None
                if verb:
                    return Condition.http_method(verb, expression)
            elif self._is_user_call(ast, node.child_by_field_name('object')) and self._is_predicate(name):
                return Condition.user_method(name, expression)

        if node.type == 'binary_expression':
            verb = self._compared_verb(ast, node)
            if verb:
                return Condition.http_method(verb, expression)

        return Condition.custom(expression)

    def classify_case(self, ast: PhpAst, subject: Optional[Node], value: Optional[Node]) -> Condition:
        """`switch ($this->method()) { case 'POST': ... }` arm"""
        subject = unwrap_parentheses(subject)
        expression = compact_text(f"{ast.text(subject)} == {ast.text(value)}")
        if subject is not None and self._is_verb_call(ast, subject):
            verb = self.values.extract_string(ast, value)
            if verb:
                return Condition.http_method(verb, expression)
        return Condition.custom(expression)

    def _compared_verb(self, ast: PhpAst, node: Node) -> Optional[str]:
        operator = node.child_by_field_name('operator')
        if operator is None or ast.text(operator) not in ('==', '==='):
            return None
        left = unwrap_parentheses(node.child_by_field_name('left'))
        right = unwrap_parentheses(node.child_by_field_name('right'))
        for call, literal in ((left, right), (right, left)):
            if call is not None and self._is_verb_call(ast, call):
                return self.values.extract_string(ast, literal)
        return None

    def _is_verb_call(self, ast: PhpAst, node: Node) -> bool:
        return node.type in CALL_TYPES and \
            ast.text(node.child_by_field_name('name')).lower() in ('method', 'getmethod')

    def _is_user_call(self, ast: PhpAst, node: Optional[Node]) -> bool:
        node = unwrap_parentheses(node)
        return node is not None and node.type in CALL_TYPES and \
            ast.text(node.child_by_field_name('name')) == 'user'

    def _is_predicate(self, name: str) -> bool:
        for prefix in self.user_predicate_prefixes:
            if name == prefix:
                return True
            if name.startswith(prefix) and name[len(prefix):len(prefix) + 1].isupper():
                return True
        return False


@dataclass
class _PathState:
    conditions: Tuple[Condition, ...]
    scope: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    def fork(self, condition: Optional[Condition] = None) -> '_PathState':
        conditions = self.conditions + (condition,) if condition is not None else self.conditions
        return _PathState(conditions, {name: dict(rules) for name, rules in self.scope.items()})


@dataclass
class _Trace:
    ctx: ExtractionContext
    branches: List[RuleSetBranch] = field(default_factory=list)
    saw_conditional: bool = False
    truncated: bool = False


class ConditionalPathAnalyzer:
    """Extract rule sets per return path of a rules() method"""

    CONTEXT = 'ConditionalPathAnalyzer'
    MAX_PATHS = 256

    def __init__(self, extractor: Optional[RulesExtractor] = None,
                 classifier: Optional[ConditionClassifier] = None,
                 collector: Optional[DiagnosticsCollector] = None,
                 config: Optional[ExtractorConfig] = None):
        self.config = config or ExtractorConfig()
        self.collector = collector if collector is not None else DiagnosticsCollector()
        self.extractor = extractor or RulesExtractor(collector=self.collector, config=self.config)
        self.classifier = classifier or ConditionClassifier(
            self.extractor.values, self.config.user_predicate_prefixes)

        self._statement_handlers = {
            'expression_statement': self._expression_statement,
            'return_statement': self._return_statement,
            'if_statement': self._if_statement,
            'switch_statement': self._switch_statement,
            'compound_statement': self._compound_statement,
            'colon_block': self._compound_statement,
            'try_statement': self._try_statement,
        }
        for loop_type in LOOP_TYPES:
            self._statement_handlers[loop_type] = self._loop_statement

    def analyze(self, ast: PhpAst, method_node: Node, class_node: Optional[Node] = None) -> ConditionalRuleResult:
        name = ast.text(method_node.child_by_field_name('name'))
        trace = _Trace(self.extractor.context_for(ast, class_node, name))

        body = method_body(method_node)
        if body is not None:
            self._run_block(named_children(body), [_PathState(())], trace)

        if not trace.branches and not trace.saw_conditional:
            trace.branches.append(RuleSetBranch.create((), {}))

        logger.debug("%s: %d branches", name, len(trace.branches))
        return ConditionalRuleResult(trace.branches, merge_branch_rules(trace.branches))

    def _run_block(self, statements: List[Node], states: List[_PathState], trace: _Trace) -> List[_PathState]:
        """Run statements over every live path; returns the paths that fall through"""
        for statement in statements:
            if not states:
                break
            handler = self._statement_handlers.get(statement.type)
            if handler is not None:
                states = handler(statement, states, trace)
        return states

    def _expression_statement(self, statement: Node, states: List[_PathState], trace: _Trace) -> List[_PathState]:
        for state in states:
            self.extractor.track_assignment(statement, state.scope, trace.ctx)
        return states

    def _return_statement(self, statement: Node, states: List[_PathState], trace: _Trace) -> List[_PathState]:
        for state in states:
            rules = self.extractor.evaluate_return(statement, state.scope, trace.ctx)
            trace.branches.append(RuleSetBranch.create(state.conditions, rules))
        return []

    def _if_statement(self, statement: Node, states: List[_PathState], trace: _Trace) -> List[_PathState]:
        trace.saw_conditional = True
        ast = trace.ctx.ast

        arms = [(self.classifier.classify(ast, statement.child_by_field_name('condition')),
                 statement.child_by_field_name('body'))]
        has_else = False
        for clause in named_children(statement):
            if clause.type == 'else_if_clause':
                arms.append((self.classifier.classify(ast, clause.child_by_field_name('condition')),
                             clause.child_by_field_name('body')))
            elif clause.type == 'else_clause':
                # `else if` arrives here with a nested if_statement as the body
                body = clause.child_by_field_name('body')
                if body is None:
                    body = named_children(clause)[-1]
                arms.append((None, body))
                has_else = True

        return self._run_arms(arms, has_else, states, trace)

    def _switch_statement(self, statement: Node, states: List[_PathState], trace: _Trace) -> List[_PathState]:
        trace.saw_conditional = True
        ast = trace.ctx.ast
        subject = statement.child_by_field_name('condition')
        block = statement.child_by_field_name('body')
        if block is None:
            return states

        arms = []
        has_default = False
        for case in named_children(block):
            children = named_children(case)
            if case.type == 'case_statement' and children:
                value = case.child_by_field_name('value')
                if value is None:
                    value = children[0]
                body = [c for c in children if c.id != value.id]
                arms.append((self.classifier.classify_case(ast, subject, value), body))
            elif case.type == 'default_statement':
                arms.append((None, children))
                has_default = True

        return self._run_arms(arms, has_default, states, trace)

    def _run_arms(self, arms: List[Tuple[Optional[Condition], Any]], exhaustive: bool,
                  states: List[_PathState], trace: _Trace) -> List[_PathState]:
        continuing: List[_PathState] = []
        for state in states:
            for condition, body in arms:
                if body is None:
                    continue
                statements = body if isinstance(body, list) else _block_statements(body)
                continuing.extend(self._run_block(statements, [state.fork(condition)], trace))
            if not exhaustive:
                continuing.append(state)
        return self._limit(continuing, trace)

    def _compound_statement(self, statement: Node, states: List[_PathState], trace: _Trace) -> List[_PathState]:
        return self._run_block(named_children(statement), states, trace)

    def _loop_statement(self, statement: Node, states: List[_PathState], trace: _Trace) -> List[_PathState]:
        body = statement.child_by_field_name('body')
        if body is None:
            return states
        return self._run_block(_block_statements(body), states, trace)

    def _try_statement(self, statement: Node, states: List[_PathState], trace: _Trace) -> List[_PathState]:
        body = statement.child_by_field_name('body')
        if body is None:
            return states
        return self._run_block(_block_statements(body), states, trace)

    def _limit(self, states: List[_PathState], trace: _Trace) -> List[_PathState]:
        if len(states) <= self.MAX_PATHS:
            return states
        if not trace.truncated:
            trace.truncated = True
            self.collector.add_warning(self.CONTEXT, f"More than {self.MAX_PATHS} paths, extra paths dropped", {
                'error_type': 'path_limit_exceeded',
                'file_path': trace.ctx.ast.label or '<string>',
            })
        return states[:self.MAX_PATHS]


def merge_branch_rules(branches: List[RuleSetBranch]) -> Dict[str, List[Any]]:
    """Append every branch's tokens per field, keeping duplicates"""
    merged: Dict[str, List[Any]] = {}
    for branch in branches:
        for field_name, rules in branch.rules.items():
            merged.setdefault(field_name, []).extend(normalize_rules(rules))
    return merged


def _block_statements(node: Node) -> List[Node]:
    if node.type in ('compound_statement', 'colon_block'):
        return named_children(node)
    return [node]
