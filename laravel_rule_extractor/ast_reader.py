"""
PHP source parsing and AST lookup helpers built on tree-sitter-php.

Every lookup works on a `PhpAst`, which pairs the tree with the source bytes
it was parsed from; node text is always read by slicing those bytes.
"""

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple, Union

import tree_sitter_php as tsphp
from tree_sitter import Language, Node, Parser, Tree

from .diagnostics import DiagnosticsCollector
from .exceptions import SourceParseError

logger = logging.getLogger(__name__)

PHP_LANGUAGE = Language(tsphp.language_php())

# Nodes that never carry program meaning
SKIPPED_TYPES = ('comment', 'php_tag', 'text_interpolation', 'text', '?>')

_USE_ITEM = re.compile(r'^\\?([A-Za-z_][\w\\]*)(?:\s+as\s+([A-Za-z_]\w*))?$', re.IGNORECASE)


@dataclass
class PhpAst:
    """Parsed tree plus the exact bytes it came from"""
    tree: Tree
    source: bytes
    label: Optional[str] = None

    @property
    def root(self) -> Node:
        return self.tree.root_node

    def text(self, node: Optional[Node]) -> str:
        if node is None:
            return ''
        return get_node_text(node, self.source)

    @property
    def statements(self) -> List[Node]:
        return [c for c in self.root.named_children if c.type not in SKIPPED_TYPES]

    def is_empty(self) -> bool:
        return not self.statements


def get_node_text(node: Node, source: bytes) -> str:
    """Extract text for a node"""
    return source[node.start_byte:node.end_byte].decode('utf8', errors='ignore')


def find_child_by_type(node: Node, node_type: str) -> Optional[Node]:
    for child in node.children:
        if child.type == node_type:
            return child
    return None


def find_children_by_type(node: Node, node_type: str) -> List[Node]:
    return [child for child in node.children if child.type == node_type]


def named_children(node: Node) -> List[Node]:
    """Named children without comments"""
    return [c for c in node.named_children if c.type != 'comment']


def walk(node: Node) -> Iterator[Node]:
    """Pre-order traversal"""
    stack = [node]
    while stack:
        current = stack.pop()
        yield current
        stack.extend(reversed(current.children))


def unwrap_parentheses(node: Optional[Node]) -> Optional[Node]:
    while node is not None and node.type == 'parenthesized_expression':
        inner = named_children(node)
        if not inner:
            return None
        node = inner[0]
    return node


def class_body(class_node: Node) -> Optional[Node]:
    body = class_node.child_by_field_name('body')
    if body is None:
        body = find_child_by_type(class_node, 'declaration_list')
    return body


def method_body(method_node: Node) -> Optional[Node]:
    body = method_node.child_by_field_name('body')
    if body is None:
        body = find_child_by_type(method_node, 'compound_statement')
    return body


def call_arguments(call_node: Node) -> List[Node]:
    """Value nodes of a call's argument list, in order"""
    args = call_node.child_by_field_name('arguments')
    if args is None:
        args = find_child_by_type(call_node, 'arguments')
    if args is None:
        return []

    values = []
    for arg in named_children(args):
        if arg.type == 'argument':
            inner = named_children(arg)
            if inner:
                # Named arguments put the name first
                values.append(inner[-1])
        elif arg.type != 'variadic_placeholder':
            values.append(arg)
    return values


def array_elements(array_node: Node) -> List[Tuple[Optional[Node], Optional[Node], bool]]:
    """(key, value, is_spread) for each entry of an array literal"""
    elements = []
    for element in named_children(array_node):
        if element.type != 'array_element_initializer':
            continue

        key = element.child_by_field_name('key')
        value = element.child_by_field_name('value')
        if value is not None:
            elements.append((key, value, False))
            continue

        children = [c for c in element.children if c.type != 'comment']
        arrow = next((i for i, c in enumerate(children) if c.type == '=>'), None)
        if arrow is not None:
            before = [c for c in children[:arrow] if c.is_named]
            after = [c for c in children[arrow + 1:] if c.is_named]
            elements.append((before[-1] if before else None, after[0] if after else None, False))
            continue

        inner = [c for c in children if c.is_named]
        if not inner:
            continue
        first = inner[0]
        if first.type == 'variadic_unpacking':
            spread = named_children(first)
            elements.append((None, spread[0] if spread else None, True))
        elif any(c.type == '...' for c in children):
            elements.append((None, first, True))
        else:
            elements.append((None, first, False))
    return elements


class ASTReader:
    """Parse PHP source and locate classes, methods and properties"""

    CONTEXT = 'ASTReader'

    def __init__(self, collector: Optional[DiagnosticsCollector] = None):
        self.collector = collector if collector is not None else DiagnosticsCollector()
        self.parser = Parser(PHP_LANGUAGE)

    def parse(self, text: Union[str, bytes], source_label: Optional[str] = None) -> PhpAst:
        """Parse PHP source, raising SourceParseError on a syntax error"""
        source = text.encode('utf8') if isinstance(text, str) else bytes(text)
        try:
            tree = self.parser.parse(source)
        except (ValueError, TypeError) as e:
            raise SourceParseError(str(e), source_label) from e

        if tree.root_node.has_error:
            line = self._first_error_line(tree.root_node)
            raise SourceParseError(f"Syntax error near line {line}" if line else "Syntax error", source_label)
        return PhpAst(tree, source, source_label)

    def try_parse(self, text: Union[str, bytes]) -> Tuple[Optional[PhpAst], Optional[str]]:
        """Parse without reporting; returns (ast, error message)"""
        try:
            return self.parse(text), None
        except SourceParseError as e:
            return None, str(e)

    def parse_source(self, text: Union[str, bytes], source_label: Optional[str] = None) -> Optional[PhpAst]:
        """Parse PHP source; None (plus an error entry) on a syntax error"""
        ast, error = self.try_parse(text)
        if ast is None:
            self.collector.add_error(self.CONTEXT, f"Failed to parse PHP source: {error}", {
                'error_type': 'parse_error',
                'file_path': source_label or '<string>',
            })
            return None

        ast.label = source_label
        logger.debug("Parsed %s", source_label or '<string>')
        return ast

    def parse_file(self, path: Union[str, Path]) -> Optional[PhpAst]:
        """Read and parse a PHP file"""
        path = Path(path)
        if not path.is_file():
            self.collector.add_warning(self.CONTEXT, f"File not found: {path}", {
                'error_type': 'file_not_found',
                'file_path': str(path),
            })
            return None

        try:
            source = path.read_bytes()
        except OSError as e:
            self.collector.add_warning(self.CONTEXT, f"Could not read {path}: {e}", {
                'error_type': 'file_not_found',
                'file_path': str(path),
                'exception_class': type(e).__name__,
            })
            return None

        return self.parse_source(source, str(path))

    def find_class(self, ast: PhpAst, name: str) -> Optional[Node]:
        """Named class declaration; `name` may be short or fully qualified"""
        short_name = name.strip('\\').rsplit('\\', 1)[-1]
        for node in walk(ast.root):
            if node.type == 'class_declaration':
                if ast.text(node.child_by_field_name('name')) == short_name:
                    return node
        return None

    def find_anonymous_class(self, ast: PhpAst) -> Optional[Node]:
        """First `new class ... { }` in source order"""
        for node in walk(ast.root):
            if node.type == 'anonymous_class':
                return node
            if node.type == 'object_creation_expression' and find_child_by_type(node, 'declaration_list'):
                return node
        return None

    def find_method(self, ast: PhpAst, class_node: Node, name: str) -> Optional[Node]:
        body = class_body(class_node)
        if body is None:
            return None
        for child in body.named_children:
            if child.type == 'method_declaration':
                # PHP method names are case-insensitive
                if ast.text(child.child_by_field_name('name')).lower() == name.lower():
                    return child
        return None

    def find_property(self, ast: PhpAst, class_node: Node, name: str) -> Optional[Node]:
        """Property declaration declaring `$name`, including `protected $a, $b;`"""
        body = class_body(class_node)
        if body is None:
            return None
        wanted = '$' + name.lstrip('$')
        for child in body.named_children:
            if child.type != 'property_declaration':
                continue
            for element in find_children_by_type(child, 'property_element'):
                variable = find_child_by_type(element, 'variable_name')
                if variable is not None and ast.text(variable) == wanted:
                    return child
        return None

    def extract_namespace(self, ast: PhpAst) -> Optional[str]:
        for node in walk(ast.root):
            if node.type == 'namespace_definition':
                name = node.child_by_field_name('name')
                if name is None:
                    name = find_child_by_type(node, 'namespace_name')
                return ast.text(name).strip('\\') or None
        return None

    def extract_import_aliases(self, ast: PhpAst) -> Dict[str, str]:
        """alias -> fully qualified name for every top-level `use` import"""
        aliases: Dict[str, str] = {}
        for node in walk(ast.root):
            if node.type != 'namespace_use_declaration':
                continue
            for fqn, alias in self._parse_use_declaration(ast.text(node)):
                aliases[alias] = fqn
        return aliases

    def _parse_use_declaration(self, text: str) -> List[Tuple[str, str]]:
        body = re.sub(r'^\s*use\s+', '', text).rstrip().rstrip(';')
        body = re.sub(r'^(function|const)\s+', '', body.strip())

        prefix = ''
        if '{' in body:
            prefix, _, rest = body.partition('{')
            prefix = prefix.strip().strip('\\')
            body = rest.rsplit('}', 1)[0]

        imports = []
        for item in body.split(','):
            match = _USE_ITEM.match(item.strip())
            if not match:
                continue
            fqn = f"{prefix}\\{match.group(1)}" if prefix else match.group(1)
            alias = match.group(2) or fqn.rsplit('\\', 1)[-1]
            imports.append((fqn, alias))
        return imports

    def _first_error_line(self, root: Node) -> Optional[int]:
        for node in walk(root):
            if node.type == 'ERROR' or node.is_missing:
                return node.start_point[0] + 1
        return None
