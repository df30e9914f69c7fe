"""
Validation rule extraction from a FormRequest rules() method.

Supports:
- literal array returns
- variables assigned earlier in the body (last assignment wins)
- $rules['field'] = ... and $rules += [...] after the initial assignment
- array_merge(...) / array_replace(...) with literals, variables and $this->helper() calls
- array union (+) and spread ([...$base, ...])
- match expressions (first arm only)
- Rule::in / unique / exists / requiredIf / when / enum / dimensions, new Enum(...),
  File::types(...)->max(...) builder chains
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, Iterator, List, Optional, Tuple

from tree_sitter import Node

from .ast_reader import (
    ASTReader, PhpAst, array_elements, call_arguments, find_child_by_type,
    method_body, named_children, unwrap_parentheses,
)
from .config import ExtractorConfig
from .diagnostics import DiagnosticsCollector
from .models import EnumToken, FileRuleToken, RawExpression
from .node_values import STRING_TYPES, NodeValueExtractor, is_interpolated

logger = logging.getLogger(__name__)

# Statement containers walked in source order by extract()
BLOCK_TYPES = (
    'compound_statement', 'colon_block', 'if_statement', 'else_if_clause', 'else_clause',
    'foreach_statement', 'for_statement', 'while_statement', 'do_statement',
    'try_statement', 'catch_clause', 'finally_clause',
    'switch_statement', 'switch_block', 'case_statement', 'default_statement',
)

CALL_TYPES = ('member_call_expression', 'nullsafe_member_call_expression')

_SIZE_WITH_UNIT = re.compile(r'^\s*(\d+(?:\.\d+)?)\s*(kb|mb|gb|tb)?\s*$', re.IGNORECASE)
_UNIT_KB = {None: 1, 'kb': 1, 'mb': 1024, 'gb': 1024 ** 2, 'tb': 1024 ** 3}

# Rule::dimensions()->maxWidth(...) chain methods -> dimensions: keys
_DIMENSION_METHODS = {
    'width': 'width', 'height': 'height',
    'minwidth': 'min_width', 'minheight': 'min_height',
    'maxwidth': 'max_width', 'maxheight': 'max_height',
    'ratio': 'ratio',
}


def compact_text(text: str) -> str:
    """Collapse whitespace runs so multi-line source reads as one line"""
    return ' '.join(text.split())


@dataclass(frozen=True)
class ExtractionContext:
    """Where an expression lives: its tree, class and helper call stack"""
    ast: PhpAst
    class_node: Optional[Node] = None
    depth: int = 0
    visiting: FrozenSet[str] = frozenset()

    def enter(self, method_name: str) -> 'ExtractionContext':
        return ExtractionContext(self.ast, self.class_node, self.depth + 1,
                                 self.visiting | {method_name.lower()})


class RulesExtractor:
    """Extract validation rules from rules() method"""

    CONTEXT = 'RulesExtractor'

    def __init__(self, ast_reader: Optional[ASTReader] = None,
                 value_extractor: Optional[NodeValueExtractor] = None,
                 collector: Optional[DiagnosticsCollector] = None,
                 config: Optional[ExtractorConfig] = None):
        self.collector = collector if collector is not None else DiagnosticsCollector()
        self.ast_reader = ast_reader or ASTReader(self.collector)
        self.values = value_extractor or NodeValueExtractor()
        self.config = config or ExtractorConfig()

        self._rules_handlers = {
            'array_creation_expression': self._array_rules,
            'variable_name': self._variable_rules,
            'function_call_expression': self._function_call_rules,
            'member_call_expression': self._helper_call_rules,
            'nullsafe_member_call_expression': self._helper_call_rules,
            'match_expression': self._match_rules,
            'conditional_expression': self._ternary_rules,
            'binary_expression': self._union_rules,
        }
        self._token_handlers = {
            'string': self._string_token,
            'encapsed_string': self._string_token,
            'binary_expression': self._concatenation_token,
            'scoped_call_expression': self._builder_token,
            'member_call_expression': self._builder_token,
            'nullsafe_member_call_expression': self._builder_token,
            'object_creation_expression': self._new_token,
            'null': lambda ctx, node: None,
        }

    def context_for(self, ast: PhpAst, class_node: Optional[Node] = None,
                    method_name: Optional[str] = None) -> ExtractionContext:
        visiting = frozenset([method_name.lower()]) if method_name else frozenset()
        return ExtractionContext(ast, class_node, 0, visiting)

    def extract(self, ast: PhpAst, method_node: Node, class_node: Optional[Node] = None) -> Dict[str, Any]:
        """Field -> rules for the method; the last return reached wins"""
        name = ast.text(method_node.child_by_field_name('name'))
        return self._extract_method(method_node, self.context_for(ast, class_node, name))

    def extract_array_method(self, ast: PhpAst, method_node: Node) -> Dict[str, Any]:
        """Literal key/value array returned by attributes() / messages()"""
        body = method_body(method_node)
        if body is None:
            return {}
        for statement, _nested in iter_statements(body):
            if statement.type == 'return_statement':
                values = named_children(statement)
                if values:
                    return {k: v for k, v in self.values.extract_keyed_array(ast, values[0]).items()
                            if isinstance(v, str)}
        return {}

    def _extract_method(self, method_node: Node, ctx: ExtractionContext) -> Dict[str, Any]:
        body = method_body(method_node)
        if body is None:
            return {}

        scope: Dict[str, Dict[str, Any]] = {}
        rules = None
        for statement, nested in iter_statements(body):
            if statement.type == 'expression_statement':
                self.track_assignment(statement, scope, ctx)
            elif statement.type == 'return_statement':
                rules = self.evaluate_return(statement, scope, ctx)
                if not nested:
                    break

        logger.debug("Extracted %d rule fields", len(rules or {}))
        return rules or {}

    def evaluate_return(self, statement: Node, scope: Dict[str, Dict[str, Any]],
                        ctx: ExtractionContext) -> Dict[str, Any]:
        """Rule set returned by a return statement, {} when unsupported"""
        values = named_children(statement)
        if not values:
            return {}

        expression = unwrap_parentheses(values[0])
        rules = self.evaluate_rules_expression(expression, scope, ctx)
        if expression is not None and expression.type == 'conditional_expression':
            self.collector.add_warning(self.CONTEXT, "Ternary rule returns are not evaluated", {
                'error_type': 'unsupported_ternary_rules',
                'file_path': ctx.ast.label or '<string>',
                'line': statement.start_point[0] + 1,
                'expression': compact_text(ctx.ast.text(expression))[:200],
            })
        elif rules is None:
            self.collector.add_warning(self.CONTEXT, "Unsupported rules() return expression", {
                'error_type': 'unsupported_rules_expression',
                'file_path': ctx.ast.label or '<string>',
                'line': statement.start_point[0] + 1,
                'expression': compact_text(ctx.ast.text(expression))[:200],
            })
        return rules or {}

    def evaluate_rules_expression(self, node: Optional[Node], scope: Dict[str, Dict[str, Any]],
                                  ctx: ExtractionContext) -> Optional[Dict[str, Any]]:
        """Rule set an expression evaluates to, None when it can't be resolved"""
        node = unwrap_parentheses(node)
        if node is None:
            return None
        handler = self._rules_handlers.get(node.type)
        if handler is None:
            return None
        return handler(node, scope, ctx)

    def track_assignment(self, statement: Node, scope: Dict[str, Dict[str, Any]], ctx: ExtractionContext):
        """Apply `$var = ...`, `$var['k'] = ...` and `$var += ...` to scope"""
        expressions = named_children(statement)
        if not expressions:
            return
        expression = expressions[0]
        ast = ctx.ast

        if expression.type == 'assignment_expression':
            left = expression.child_by_field_name('left')
            right = expression.child_by_field_name('right')
            if left is None or right is None:
                return

            if left.type == 'variable_name':
                value = self.evaluate_rules_expression(right, scope, ctx)
                name = ast.text(left).lstrip('$')
                if value is None:
                    scope.pop(name, None)
                else:
                    scope[name] = value
            elif left.type == 'subscript_expression':
                parts = named_children(left)
                if len(parts) < 2 or parts[0].type != 'variable_name':
                    return
                key = self._field_key(ast, parts[1])
                if key is None:
                    return
                value = self.evaluate_rule_value(right, ctx)
                if value is not None:
                    scope.setdefault(ast.text(parts[0]).lstrip('$'), {})[key] = value

        elif expression.type == 'augmented_assignment_expression':
            left = expression.child_by_field_name('left')
            right = expression.child_by_field_name('right')
            operator = expression.child_by_field_name('operator')
            if left is None or left.type != 'variable_name':
                return
            if operator is not None and ast.text(operator) != '+=':
                return
            addition = self.evaluate_rules_expression(right, scope, ctx)
            if addition is not None:
                target = scope.setdefault(ast.text(left).lstrip('$'), {})
                for field_name, value in addition.items():
                    target.setdefault(field_name, value)

    # Rule set expressions

    def _array_rules(self, node: Node, scope, ctx: ExtractionContext) -> Dict[str, Any]:
        rules: Dict[str, Any] = {}
        for key, value, is_spread in array_elements(node):
            if is_spread:
                spread = self.evaluate_rules_expression(value, scope, ctx)
                if spread:
                    rules.update(spread)
                continue
            if key is None or value is None:
                continue

            field_name = self._field_key(ctx.ast, key)
            if not field_name:
                continue
            rule_value = self.evaluate_rule_value(value, ctx)
            if rule_value is not None:
                rules[field_name] = rule_value
        return rules

    def _variable_rules(self, node: Node, scope, ctx: ExtractionContext) -> Optional[Dict[str, Any]]:
        name = ctx.ast.text(node).lstrip('$')
        if name in scope:
            return dict(scope[name])
        return None

    def _function_call_rules(self, node: Node, scope, ctx: ExtractionContext) -> Optional[Dict[str, Any]]:
        function = ctx.ast.text(node.child_by_field_name('function')).strip('\\').lower()
        if function not in ('array_merge', 'array_replace'):
            return None

        merged: Dict[str, Any] = {}
        for argument in call_arguments(node):
            part = self.evaluate_rules_expression(argument, scope, ctx)
            if part:
                merged.update(part)
        return merged

    def _helper_call_rules(self, node: Node, scope, ctx: ExtractionContext) -> Optional[Dict[str, Any]]:
        receiver = node.child_by_field_name('object')
        name = ctx.ast.text(node.child_by_field_name('name'))
        if ctx.class_node is None or ctx.ast.text(receiver) != '$this' or not name:
            return None
        if ctx.depth >= self.config.helper_method_depth or name.lower() in ctx.visiting:
            logger.debug("Not following helper %s (depth %d)", name, ctx.depth)
            return None

        method = self.ast_reader.find_method(ctx.ast, ctx.class_node, name)
        if method is None:
            return None
        return self._extract_method(method, ctx.enter(name))

    def _match_rules(self, node: Node, scope, ctx: ExtractionContext) -> Dict[str, Any]:
        block = node.child_by_field_name('body')
        if block is None:
            block = find_child_by_type(node, 'match_block')
        if block is None:
            return {}
        arms = [c for c in named_children(block)
                if c.type in ('match_conditional_expression', 'match_default_expression')]
        if not arms:
            return {}

        # Only the first arm is used
        result = arms[0].child_by_field_name('return_expression')
        if result is None:
            result = named_children(arms[0])[-1]
        return self.evaluate_rules_expression(result, scope, ctx) or {}

    def _ternary_rules(self, node: Node, scope, ctx: ExtractionContext) -> Dict[str, Any]:
        return {}

    def _union_rules(self, node: Node, scope, ctx: ExtractionContext) -> Optional[Dict[str, Any]]:
        if self._operator(ctx.ast, node) != '+':
            return None
        left = self.evaluate_rules_expression(node.child_by_field_name('left'), scope, ctx)
        right = self.evaluate_rules_expression(node.child_by_field_name('right'), scope, ctx)
        if left is None and right is None:
            return None

        # Left operand wins on duplicate keys
        union = dict(left or {})
        for field_name, value in (right or {}).items():
            union.setdefault(field_name, value)
        return union

    # Rule values

    def evaluate_rule_value(self, node: Optional[Node], ctx: ExtractionContext) -> Any:
        """Pipe string, list of tokens, or a single structured token"""
        node = unwrap_parentheses(node)
        if node is None:
            return None
        if node.type == 'array_creation_expression':
            tokens = []
            for _key, value, is_spread in array_elements(node):
                if is_spread:
                    continue
                token = self.evaluate_single_rule(value, ctx)
                if token is not None:
                    tokens.append(token)
            return tokens
        return self.evaluate_single_rule(node, ctx)

    def evaluate_single_rule(self, node: Optional[Node], ctx: ExtractionContext) -> Any:
        node = unwrap_parentheses(node)
        if node is None:
            return None
        handler = self._token_handlers.get(node.type)
        if handler is None:
            return RawExpression(compact_text(ctx.ast.text(node)))
        return handler(ctx, node)

    def _string_token(self, ctx: ExtractionContext, node: Node) -> Any:
        if is_interpolated(node):
            return RawExpression(ctx.ast.text(node))
        return self.values.extract_string(ctx.ast, node)

    def _concatenation_token(self, ctx: ExtractionContext, node: Node) -> Any:
        if self._operator(ctx.ast, node) != '.':
            return RawExpression(compact_text(ctx.ast.text(node)))
        # Plain str so 'required|max:' . self::MAX still splits on '|'
        return self.concatenation_text(ctx.ast, node)

    def concatenation_text(self, ast: PhpAst, node: Optional[Node]) -> str:
        """'.' chain as text: literals by value, other operands by their source"""
        node = unwrap_parentheses(node)
        if node is None:
            return ''
        if node.type == 'binary_expression' and self._operator(ast, node) == '.':
            return self.concatenation_text(ast, node.child_by_field_name('left')) + \
                self.concatenation_text(ast, node.child_by_field_name('right'))
        literal = self.fold_string(ast, node)
        if literal is not None:
            return literal
        return compact_text(ast.text(node))

    def fold_string(self, ast: PhpAst, node: Optional[Node]) -> Optional[str]:
        """Join '.'-concatenated literals; None if any part isn't a literal"""
        node = unwrap_parentheses(node)
        if node is None:
            return None
        if node.type == 'binary_expression':
            if self._operator(ast, node) != '.':
                return None
            left = self.fold_string(ast, node.child_by_field_name('left'))
            right = self.fold_string(ast, node.child_by_field_name('right'))
            if left is None or right is None:
                return None
            return left + right
        if node.type in STRING_TYPES or node.type in ('integer', 'float'):
            value = self.values.extract_value(ast, node)
            if isinstance(value, bool) or value is None:
                return None
            return str(value)
        return None

    def _builder_token(self, ctx: ExtractionContext, node: Node) -> Any:
        ast = ctx.ast
        root, chain = self._unwind_chain(node)
        if root is None or root.type != 'scoped_call_expression':
            return RawExpression(compact_text(ast.text(node)))

        facade = ast.text(root.child_by_field_name('scope')).strip('\\').rsplit('\\', 1)[-1]
        method = ast.text(root.child_by_field_name('name'))
        args = call_arguments(root)

        if facade == 'Rule':
            return self._rule_facade(ctx, method, args, chain, node)
        if facade == 'File':
            return self._file_builder(ctx, method, args, chain)
        if facade == 'Password':
            return RawExpression(re.sub(r'\s+', '', ast.text(node)))
        return RawExpression(compact_text(ast.text(node)))

    def _unwind_chain(self, node: Node) -> Tuple[Optional[Node], List[Node]]:
        """Rule::unique('users')->ignore($id) -> (Rule::unique(...) node, [->ignore()])"""
        chain = []
        current = node
        while current is not None and current.type in CALL_TYPES:
            chain.append(current)
            current = current.child_by_field_name('object')
        chain.reverse()
        return current, chain

    def _rule_facade(self, ctx: ExtractionContext, method: str, args: List[Node],
                     chain: List[Node], node: Node) -> Any:
        ast = ctx.ast
        name = method.lower()

        if name in ('in', 'notin'):
            values = self._literal_list(ast, args)
            if values is None:
                return RawExpression(compact_text(ast.text(node)))
            prefix = 'in' if name == 'in' else 'not_in'
            return f"{prefix}:{','.join(values)}"

        if name in ('unique', 'exists'):
            if not args:
                return name
            table = self.values.extract_string(ast, args[0]) or self.class_reference(ast, args[0])
            if table is None:
                return RawExpression(compact_text(ast.text(node)))
            column = self.values.extract_string(ast, args[1]) if len(args) > 1 else None
            return f"{name}:{table}:{column}" if column else f"{name}:{table}"

        if name in ('requiredif', 'prohibitedif', 'excludeif'):
            base = {'requiredif': 'required_if', 'prohibitedif': 'prohibited_if',
                    'excludeif': 'exclude_if'}[name]
            parts = [self.values.extract_value(ast, a) for a in args]
            parts = [str(p) for p in parts if isinstance(p, (str, int, float)) and not isinstance(p, bool)]
            return f"{base}:{':'.join(parts)}" if parts else base

        if name == 'when':
            return 'sometimes'

        if name == 'enum':
            enum_class = self.class_reference(ast, args[0]) if args else None
            if enum_class is None:
                return RawExpression(compact_text(ast.text(node)))
            return EnumToken(enum_class)

        if name == 'dimensions':
            return self._dimensions(ast, args, chain)

        if name in ('file', 'imagefile'):
            return self._file_builder(ctx, 'image' if name == 'imagefile' else 'default', args, chain)

        if name == 'date':
            for call in chain:
                if ast.text(call.child_by_field_name('name')).lower() == 'format':
                    call_args = call_arguments(call)
                    date_format = self.values.extract_string(ast, call_args[0]) if call_args else None
                    if date_format:
                        return f"date_format:{date_format}"
            return 'date'

        return RawExpression(compact_text(ast.text(node)))

    def _dimensions(self, ast: PhpAst, args: List[Node], chain: List[Node]) -> str:
        constraints: Dict[str, str] = {}
        if args:
            for key, value in self.values.extract_keyed_array(ast, args[0]).items():
                if value is not None:
                    constraints[key] = str(value)
        for call in chain:
            key = _DIMENSION_METHODS.get(ast.text(call.child_by_field_name('name')).lower())
            call_args = call_arguments(call)
            if key and call_args:
                value = self.values.extract_value(ast, call_args[0])
                constraints[key] = str(value) if value is not None else compact_text(ast.text(call_args[0]))
        if not constraints:
            return 'dimensions'
        return 'dimensions:' + ','.join(f"{k}={v}" for k, v in constraints.items())

    def _file_builder(self, ctx: ExtractionContext, method: str, args: List[Node],
                      chain: List[Node]) -> FileRuleToken:
        ast = ctx.ast
        image = method.lower() == 'image'
        extensions: List[str] = []
        min_kb = max_kb = None

        if method.lower() == 'types' and args:
            extensions.extend(self._string_list(ast, args))

        for call in chain:
            name = ast.text(call.child_by_field_name('name')).lower()
            call_args = call_arguments(call)
            if name in ('types', 'extensions'):
                extensions.extend(self._string_list(ast, call_args))
            elif name == 'min' and call_args:
                min_kb = self._kilobytes(ast, call_args[0])
            elif name == 'max' and call_args:
                max_kb = self._kilobytes(ast, call_args[0])
            elif name == 'between' and len(call_args) >= 2:
                min_kb = self._kilobytes(ast, call_args[0])
                max_kb = self._kilobytes(ast, call_args[1])

        return FileRuleToken(tuple(e.lower() for e in extensions), min_kb, max_kb, image)

    def _new_token(self, ctx: ExtractionContext, node: Node) -> Any:
        ast = ctx.ast
        class_name = None
        for child in named_children(node):
            if child.type in ('name', 'qualified_name'):
                class_name = ast.text(child).strip('\\').rsplit('\\', 1)[-1]
                break

        if class_name in ('Enum', 'In', 'NotIn', 'Unique', 'Exists', 'Dimensions'):
            return self._rule_facade(ctx, class_name, call_arguments(node), [], node)
        if class_name == 'Password':
            return RawExpression(re.sub(r'\s+', '', ast.text(node)))
        return RawExpression(compact_text(ast.text(node)))

    # Small helpers

    def class_reference(self, ast: PhpAst, node: Optional[Node]) -> Optional[str]:
        """`Status::class` or 'App\\Enums\\Status' -> class name text"""
        node = unwrap_parentheses(node)
        if node is None:
            return None
        if node.type == 'class_constant_access_expression':
            text = ast.text(node)
            if text.endswith('::class'):
                return text[:-len('::class')].strip()
            return None
        return self.values.extract_string(ast, node)

    def _field_key(self, ast: PhpAst, node: Node) -> Optional[str]:
        value = self.values.extract_value(ast, node)
        if isinstance(value, (str, int)) and not isinstance(value, bool):
            return str(value)
        folded = self.fold_string(ast, node)
        if folded is not None:
            return folded
        if node.type in ('variable_name', 'member_access_expression'):
            return None
        # Constants such as self::EMAIL keep their source text
        return compact_text(ast.text(node)) or None

    def _literal_list(self, ast: PhpAst, args: List[Node]) -> Optional[List[str]]:
        if len(args) == 1:
            value = self.values.extract_value(ast, args[0])
            if isinstance(value, list):
                return [_scalar_text(v) for v in value if not isinstance(v, list)]
        values = [self.values.extract_value(ast, a) for a in args]
        if values and all(v is not None and not isinstance(v, list) for v in values):
            return [_scalar_text(v) for v in values]
        return None

    def _string_list(self, ast: PhpAst, args: List[Node]) -> List[str]:
        strings = []
        for arg in args:
            value = self.values.extract_value(ast, arg)
            if isinstance(value, list):
                strings.extend(str(v) for v in value if isinstance(v, str))
            elif isinstance(value, str):
                strings.extend(v.strip() for v in value.split(',') if v.strip())
        return strings

    def _kilobytes(self, ast: PhpAst, node: Node) -> Optional[int]:
        value = self._integer_expression(ast, node)
        if value is not None:
            return value
        text = self.values.extract_string(ast, node)
        match = _SIZE_WITH_UNIT.match(text or '')
        if not match:
            return None
        unit = match.group(2).lower() if match.group(2) else None
        return int(float(match.group(1)) * _UNIT_KB[unit])

    def _integer_expression(self, ast: PhpAst, node: Optional[Node]) -> Optional[int]:
        """Integer literals and products such as 10 * 1024"""
        node = unwrap_parentheses(node)
        if node is None:
            return None
        if node.type == 'binary_expression' and self._operator(ast, node) == '*':
            left = self._integer_expression(ast, node.child_by_field_name('left'))
            right = self._integer_expression(ast, node.child_by_field_name('right'))
            if left is None or right is None:
                return None
            return left * right
        value = self.values.extract_value(ast, node)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return None
        return int(value)

    def _operator(self, ast: PhpAst, node: Node) -> str:
        operator = node.child_by_field_name('operator')
        if operator is not None:
            return ast.text(operator)
        left = node.child_by_field_name('left')
        right = node.child_by_field_name('right')
        if left is None or right is None:
            return ''
        return ast.source[left.end_byte:right.start_byte].decode('utf8', errors='ignore').strip()


def iter_statements(node: Node, nested: bool = False) -> Iterator[Tuple[Node, bool]]:
    """Statements in source order, descending into blocks (nested=True inside them)"""
    for child in named_children(node):
        if child.type in BLOCK_TYPES:
            yield from iter_statements(child, True)
        else:
            yield child, nested


def _scalar_text(value: Any) -> str:
    if isinstance(value, bool):
        return 'true' if value else 'false'
    return str(value)
