"""
Enum rule recognition.

Accepted shapes:
- EnumToken / {'type': 'enum', 'class': ...} from Rule::enum(X::class)
- 'enum:App\\Enums\\Status' and 'enum:Status::class' (folded from 'required|enum:' . Status::class)
- "Rule::enum(Status::class)" / "new Enum(Status::class)" kept as source text
- "'required|enum:' . Status::class" concatenations kept as source text

Enum types come from PHP `enum` declarations held in an EnumRegistry.
"""

import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .ast_reader import ASTReader, PhpAst, find_child_by_type, named_children, walk
from .diagnostics import DiagnosticsCollector
from .models import EnumInfo, EnumToken
from .node_values import NodeValueExtractor
from .rule_tokens import rule_name, rule_parameters

logger = logging.getLogger(__name__)

_RULE_ENUM_CALL = re.compile(r'Rule::enum\(\s*\\?([\w\\]+)::class')
_NEW_ENUM = re.compile(r'new\s+\\?(?:Illuminate\\Validation\\Rules\\)?Enum\(\s*\\?([\w\\]+)::class')
_CONCATENATED_ENUM = re.compile(r'''['"][^'"]*enum:['"]\s*\.\s*\\?([\w\\]+)::class''')
_BACKING_TYPE = re.compile(r'enum\s+\w+\s*:\s*(string|int)\b', re.IGNORECASE)


class EnumRegistry:
    """Enum declarations known to the analyzer, keyed by fully qualified name"""

    def __init__(self, ast_reader: Optional[ASTReader] = None,
                 psr4_roots: Optional[Dict[str, str]] = None,
                 collector: Optional[DiagnosticsCollector] = None):
        self.collector = collector if collector is not None else DiagnosticsCollector()
        self.ast_reader = ast_reader or ASTReader(self.collector)
        self.values = NodeValueExtractor()
        self.psr4_roots = dict(psr4_roots or {})
        self._enums: Dict[str, EnumInfo] = {}
        self._looked_up: Dict[str, bool] = {}

    def register(self, enum_class: str, values: Sequence[Any], backing_type: str = 'string') -> EnumInfo:
        enum_class = enum_class.strip('\\')
        info = EnumInfo(enum_class, tuple(values), backing_type)
        self._enums[enum_class] = info
        return info

    def register_source(self, text: str, source_label: Optional[str] = None) -> List[str]:
        """Register every enum declared in a PHP source; returns their names"""
        ast = self.ast_reader.parse_source(text, source_label)
        if ast is None:
            return []
        return self.register_ast(ast)

    def register_file(self, path) -> List[str]:
        ast = self.ast_reader.parse_file(path)
        if ast is None:
            return []
        return self.register_ast(ast)

    def exists(self, enum_class: str) -> bool:
        return self.get(enum_class) is not None

    def get(self, enum_class: str) -> Optional[EnumInfo]:
        enum_class = enum_class.strip('\\')
        if enum_class not in self._enums:
            self._lookup_psr4(enum_class)
        return self._enums.get(enum_class)

    def __contains__(self, enum_class: str) -> bool:
        return self.exists(enum_class)

    def register_ast(self, ast: PhpAst) -> List[str]:
        namespace = self.ast_reader.extract_namespace(ast)
        registered = []
        for node in walk(ast.root):
            if node.type != 'enum_declaration':
                continue
            name = ast.text(node.child_by_field_name('name'))
            if not name:
                continue
            fqn = f"{namespace}\\{name}" if namespace else name
            values, backing_type = self._enum_cases(ast, node)
            self.register(fqn, values, backing_type)
            registered.append(fqn)
            logger.debug("Registered enum %s (%d cases)", fqn, len(values))
        return registered

    def _enum_cases(self, ast: PhpAst, node) -> Tuple[List[Any], str]:
        body = node.child_by_field_name('body')
        if body is None:
            body = find_child_by_type(node, 'enum_declaration_list')
        header = ast.source[node.start_byte:body.start_byte if body is not None else node.end_byte]
        match = _BACKING_TYPE.search(header.decode('utf8', errors='ignore'))
        backing_type = match.group(1).lower() if match else None

        values = []
        if body is None:
            return values, backing_type or 'string'
        for case in named_children(body):
            if case.type != 'enum_case':
                continue
            case_name = case.child_by_field_name('name')
            if case_name is None:
                case_name = find_child_by_type(case, 'name')
            value_node = case.child_by_field_name('value')
            if backing_type and value_node is None:
                parts = [c for c in named_children(case) if case_name is None or c.id != case_name.id]
                value_node = parts[-1] if parts else None

            if backing_type:
                value = self.values.extract_value(ast, value_node)
                if value is not None:
                    values.append(value)
            elif case_name is not None:
                # Unbacked enums validate against their case names
                values.append(ast.text(case_name))
        return values, backing_type or 'string'

    def _lookup_psr4(self, enum_class: str):
        if self._looked_up.get(enum_class):
            return
        self._looked_up[enum_class] = True

        for prefix, directory in self.psr4_roots.items():
            prefix = prefix.strip('\\')
            if not enum_class.startswith(prefix + '\\'):
                continue
            relative = enum_class[len(prefix) + 1:].replace('\\', '/') + '.php'
            path = Path(directory) / relative
            if path.is_file():
                self.register_file(path)
                return


class EnumAnalyzer:
    """Map an enum-shaped rule token to EnumInfo"""

    def __init__(self, registry: Optional[EnumRegistry] = None):
        self.registry = registry if registry is not None else EnumRegistry()

    def analyze_validation_rule(self, token: Any, namespace: Optional[str] = None,
                                import_aliases: Optional[Dict[str, str]] = None) -> Optional[EnumInfo]:
        enum_class = self.extract_enum_class(token)
        if enum_class is None:
            return None
        resolved = self.resolve_class_name(enum_class, namespace, import_aliases or {})
        return self.registry.get(resolved)

    def analyze_rules(self, tokens: Sequence[Any], namespace: Optional[str] = None,
                      import_aliases: Optional[Dict[str, str]] = None) -> Optional[EnumInfo]:
        """First token of the list that resolves to a known enum"""
        for token in tokens:
            info = self.analyze_validation_rule(token, namespace, import_aliases)
            if info is not None:
                return info
        return None

    def extract_enum_class(self, token: Any) -> Optional[str]:
        if isinstance(token, EnumToken):
            return token.enum_class
        if isinstance(token, dict):
            if token.get('type') == 'enum' and isinstance(token.get('class'), str):
                return token['class']
            return None
        if not isinstance(token, str):
            return None

        if rule_name(token) == 'enum':
            return rule_parameters(token).split(',')[0].strip() or None
        for pattern in (_RULE_ENUM_CALL, _NEW_ENUM, _CONCATENATED_ENUM):
            match = pattern.search(token)
            if match:
                return match.group(1)
        return None

    def resolve_class_name(self, name: str, namespace: Optional[str], import_aliases: Dict[str, str]) -> str:
        name = name.strip().strip('\'"')
        if name.endswith('::class'):
            name = name[:-len('::class')]
        if name.startswith('\\'):
            return name.strip('\\')

        first, _, rest = name.partition('\\')
        if first in import_aliases:
            return f"{import_aliases[first]}\\{rest}" if rest else import_aliases[first]
        if self.registry.exists(name):
            return name
        if namespace:
            prefix = namespace.strip('\\')
            candidate = f"{prefix}\\{name}"
            if '\\' not in name or self.registry.exists(candidate):
                return candidate
        return name
