"""Turn literal PHP expression nodes into Python values"""

import re
from typing import Any, Dict, List, Optional

from tree_sitter import Node

from .ast_reader import PhpAst, array_elements, named_children, unwrap_parentheses

_SINGLE_QUOTE_ESCAPE = re.compile(r"\\([\\'])")
_DOUBLE_QUOTE_ESCAPE = re.compile(r'\\(x[0-9A-Fa-f]{1,2}|[0-7]{1,3}|[nrtvef\\$"])')

_SIMPLE_ESCAPES = {
    'n': '\n', 'r': '\r', 't': '\t', 'v': '\v', 'e': '\x1b', 'f': '\f',
    '\\': '\\', '$': '$', '"': '"',
}

STRING_TYPES = ('string', 'encapsed_string')


def decode_php_string(text: str) -> str:
    """Decode a quoted PHP string literal as PHP would"""
    if text[:1] in ('b', 'B') and text[1:2] in ("'", '"'):
        text = text[1:]
    if len(text) < 2:
        return text

    quote = text[0]
    inner = text[1:-1] if text[-1] == quote else text[1:]
    if quote == "'":
        return _SINGLE_QUOTE_ESCAPE.sub(r'\1', inner)
    if quote == '"':
        return _DOUBLE_QUOTE_ESCAPE.sub(_replace_escape, inner)
    return text


def _replace_escape(match) -> str:
    escape = match.group(1)
    if escape[0] == 'x':
        return chr(int(escape[1:], 16))
    if escape[0].isdigit():
        return chr(int(escape, 8) & 0xFF)
    return _SIMPLE_ESCAPES[escape]


def is_interpolated(node: Node) -> bool:
    """Double-quoted string containing $vars or {$expr}"""
    return node.type == 'encapsed_string' and any(
        c.type not in ('string_content', 'string_value', 'escape_sequence', '"')
        for c in node.children
    )


class NodeValueExtractor:
    """Extract literal values from AST nodes"""

    def __init__(self):
        self._handlers = {
            'string': self._string,
            'encapsed_string': self._string,
            'integer': self._integer,
            'float': self._float,
            'boolean': self._constant,
            'null': self._constant,
            'name': self._constant,
            'qualified_name': self._constant,
            'constant_access_expression': self._constant,
            'array_creation_expression': self._array,
            'unary_op_expression': self._negative,
            'heredoc': self._heredoc,
            'nowdoc': self._heredoc,
        }

    def extract_value(self, ast: PhpAst, node: Optional[Node]) -> Any:
        """Scalar or list for literal nodes, None for anything else"""
        node = unwrap_parentheses(node)
        if node is None:
            return None
        handler = self._handlers.get(node.type)
        if handler is None:
            return None
        return handler(ast, node)

    def extract_keyed_array(self, ast: PhpAst, node: Optional[Node]) -> Dict[str, Any]:
        """Only `'key' => value` entries; empty dict for non-arrays"""
        node = unwrap_parentheses(node)
        if node is None or node.type != 'array_creation_expression':
            return {}

        result = {}
        for key, value, is_spread in array_elements(node):
            if is_spread or key is None:
                continue
            key_value = self.extract_string(ast, key)
            if key_value is None:
                continue
            result[key_value] = self.extract_value(ast, value)
        return result

    def extract_string(self, ast: PhpAst, node: Optional[Node]) -> Optional[str]:
        value = self.extract_value(ast, node)
        return value if isinstance(value, str) else None

    def extract_int(self, ast: PhpAst, node: Optional[Node]) -> Optional[int]:
        value = self.extract_value(ast, node)
        if isinstance(value, bool) or not isinstance(value, int):
            return None
        return value

    def extract_float(self, ast: PhpAst, node: Optional[Node]) -> Optional[float]:
        value = self.extract_value(ast, node)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return None
        return float(value)

    def _string(self, ast: PhpAst, node: Node) -> Optional[str]:
        if is_interpolated(node):
            return None
        return decode_php_string(ast.text(node))

    def _integer(self, ast: PhpAst, node: Node) -> Optional[int]:
        text = ast.text(node).replace('_', '').lower()
        try:
            if text.startswith('0x'):
                return int(text, 16)
            if text.startswith('0b'):
                return int(text, 2)
            if text.startswith('0o'):
                return int(text[2:], 8)
            if len(text) > 1 and text.startswith('0'):
                return int(text, 8)
            return int(text)
        except ValueError:
            return None

    def _float(self, ast: PhpAst, node: Node) -> Optional[float]:
        try:
            return float(ast.text(node).replace('_', ''))
        except ValueError:
            return None

    def _constant(self, ast: PhpAst, node: Node) -> Any:
        text = ast.text(node).strip('\\').lower()
        if text == 'true':
            return True
        if text == 'false':
            return False
        return None

    def _array(self, ast: PhpAst, node: Node) -> List[Any]:
        values = []
        for _key, value, is_spread in array_elements(node):
            if is_spread:
                continue
            extracted = self.extract_value(ast, value)
            if extracted is not None:
                values.append(extracted)
        return values

    def _negative(self, ast: PhpAst, node: Node) -> Any:
        operands = named_children(node)
        if len(operands) != 1 or not ast.text(node).lstrip().startswith('-'):
            return None
        value = self.extract_value(ast, operands[0])
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return None
        return -value

    def _heredoc(self, ast: PhpAst, node: Node) -> Optional[str]:
        lines = ast.text(node).split('\n')
        if len(lines) < 3:
            return None
        body = lines[1:-1]
        # Closing marker indentation is stripped from every line
        indent = len(lines[-1]) - len(lines[-1].lstrip())
        return '\n'.join(line[indent:] for line in body)
