"""
Rule extraction for anonymous FormRequest classes (`new class extends FormRequest {...}`).

Anonymous classes can't be looked up by name, so resolution goes through an
ordered chain of strategies:

1. source: cut the class's line range out of its file, wrap it into a
   parseable fragment and analyze the rules() method statically
2. reflection: create an instance without running the constructor and call
   rules() / attributes() / messages() on it

Only a rules() failure voids the reflective result; attributes() and
messages() failures degrade to empty maps.
"""

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple

from tree_sitter import Node

from .ast_reader import ASTReader, PhpAst
from .conditional_rules import ConditionalPathAnalyzer, merge_branch_rules
from .config import ExtractorConfig
from .diagnostics import DiagnosticsCollector
from .models import ConditionalRuleResult, RuleSetBranch
from .rules_extractor import RulesExtractor

logger = logging.getLogger(__name__)

_ANONYMOUS_START = re.compile(r'new\s+class\b')


class ReflectionHandle(Protocol):
    """What the resolver needs to know about a class"""

    def get_name(self) -> str: ...

    def get_namespace_name(self) -> str: ...

    def get_file_name(self) -> Optional[str]: ...

    def get_start_line(self) -> Optional[int]: ...

    def get_end_line(self) -> Optional[int]: ...

    def new_instance_without_constructor(self) -> Any: ...

    def has_method(self, name: str) -> bool: ...

    def get_method(self, name: str) -> Callable[[Any], Any]: ...

    def has_property(self, name: str) -> bool: ...

    def set_property(self, instance: Any, name: str, value: Any) -> None: ...


class ClassReflection:
    """ReflectionHandle over a Python class standing in for the PHP one"""

    def __init__(self, cls: type, file_name: Optional[str] = None,
                 start_line: Optional[int] = None, end_line: Optional[int] = None,
                 namespace: str = '', name: Optional[str] = None):
        self.cls = cls
        self.file_name = file_name
        self.start_line = start_line
        self.end_line = end_line
        self.namespace = namespace
        self.name = name or cls.__name__

    def get_name(self) -> str:
        return self.name

    def get_namespace_name(self) -> str:
        return self.namespace

    def get_file_name(self) -> Optional[str]:
        return self.file_name

    def get_start_line(self) -> Optional[int]:
        return self.start_line

    def get_end_line(self) -> Optional[int]:
        return self.end_line

    def new_instance_without_constructor(self) -> Any:
        return self.cls.__new__(self.cls)

    def has_method(self, name: str) -> bool:
        return callable(getattr(self.cls, name, None))

    def get_method(self, name: str) -> Callable[[Any], Any]:
        return getattr(self.cls, name)

    def has_property(self, name: str) -> bool:
        for klass in self.cls.__mro__:
            if name in getattr(klass, '__annotations__', {}):
                return True
        attribute = getattr(self.cls, name, None)
        return attribute is not None and not callable(attribute)

    def set_property(self, instance: Any, name: str, value: Any) -> None:
        setattr(instance, name, value)


@dataclass
class AnonymousResolution:
    """Everything recovered for one anonymous class"""
    strategy: str
    rules: Dict[str, Any] = field(default_factory=dict)
    attributes: Dict[str, str] = field(default_factory=dict)
    messages: Dict[str, str] = field(default_factory=dict)
    conditional: Optional[ConditionalRuleResult] = None


def build_fragment(lines: List[str], start_line: int, end_line: int) -> str:
    """Wrap the class's source lines into `<?php return new class ... };`"""
    selected = lines[start_line - 1:end_line]
    if not selected:
        return '<?php\n'

    first, last = selected[0], selected[-1]
    match = _ANONYMOUS_START.search(first)
    closing = last.rfind('}')
    if match is None or closing < 0:
        return '<?php\n' + ''.join(selected)

    if len(selected) == 1:
        body = first[match.start():closing + 1]
    else:
        body = first[match.start():] + ''.join(selected[1:-1]) + last[:closing + 1]
    return f"<?php\nreturn {body};\n"


def conditional_result(resolution: AnonymousResolution) -> ConditionalRuleResult:
    """Reflective rules become a single unconditional branch"""
    if resolution.conditional is not None:
        return resolution.conditional
    if resolution.strategy == 'none':
        return ConditionalRuleResult()
    branches = [RuleSetBranch.create((), resolution.rules)]
    return ConditionalRuleResult(branches, merge_branch_rules(branches))


class AnonymousRequestResolver:
    """Resolve rules of anonymous FormRequest classes"""

    CONTEXT = 'AnonymousRequestResolver'

    def __init__(self, ast_reader: Optional[ASTReader] = None,
                 extractor: Optional[RulesExtractor] = None,
                 conditional_analyzer: Optional[ConditionalPathAnalyzer] = None,
                 collector: Optional[DiagnosticsCollector] = None,
                 config: Optional[ExtractorConfig] = None,
                 request_factory: Callable[[], Any] = dict):
        self.config = config or ExtractorConfig()
        self.collector = collector if collector is not None else DiagnosticsCollector(self.config.fail_on_error)
        self.ast_reader = ast_reader or ASTReader(self.collector)
        self.extractor = extractor or RulesExtractor(self.ast_reader, collector=self.collector, config=self.config)
        self.conditional_analyzer = conditional_analyzer or ConditionalPathAnalyzer(
            self.extractor, collector=self.collector, config=self.config)
        self.request_factory = request_factory

    def resolve(self, handle: ReflectionHandle) -> Dict[str, Any]:
        return self.resolve_all(handle).rules

    def resolve_conditional(self, handle: ReflectionHandle) -> ConditionalRuleResult:
        return conditional_result(self.resolve_all(handle, conditional=True))

    def resolve_details(self, handle: ReflectionHandle) -> Dict[str, Dict[str, Any]]:
        resolution = self.resolve_all(handle)
        return {
            'rules': resolution.rules,
            'attributes': resolution.attributes,
            'messages': resolution.messages,
        }

    def resolve_source(self, handle: ReflectionHandle) -> Tuple[Optional[str], Dict[str, str]]:
        """(namespace, import aliases) of the file declaring the class"""
        namespace = handle.get_namespace_name() or None
        file_name = handle.get_file_name()
        if not file_name or not Path(file_name).is_file():
            return namespace, {}
        ast = self.ast_reader.parse_file(file_name)
        if ast is None:
            return namespace, {}
        return namespace or self.ast_reader.extract_namespace(ast), self.ast_reader.extract_import_aliases(ast)

    def resolve_all(self, handle: ReflectionHandle, conditional: bool = False) -> AnonymousResolution:
        """Run the strategies in order; the first one that locates the class wins"""
        for strategy in (self._resolve_from_source, self._resolve_by_reflection):
            resolution = strategy(handle, conditional)
            if resolution is not None:
                logger.debug("%s resolved via %s", handle.get_name(), resolution.strategy)
                return resolution
        return AnonymousResolution('none')

    def _resolve_from_source(self, handle: ReflectionHandle, conditional: bool) -> Optional[AnonymousResolution]:
        located = self._locate_class(handle)
        if located is None:
            return None
        ast, class_node = located

        resolution = AnonymousResolution('ast')
        rules_method = self.ast_reader.find_method(ast, class_node, self.config.rules_method)
        if rules_method is not None:
            if conditional:
                resolution.conditional = self.conditional_analyzer.analyze(ast, rules_method, class_node)
                resolution.rules = {f: list(t) for f, t in resolution.conditional.merged_rules.items()}
            else:
                resolution.rules = self.extractor.extract(ast, rules_method, class_node)

        for name in ('attributes', 'messages'):
            method = self.ast_reader.find_method(ast, class_node, name)
            if method is not None:
                setattr(resolution, name, self.extractor.extract_array_method(ast, method))
        return resolution

    def _locate_class(self, handle: ReflectionHandle) -> Optional[Tuple[PhpAst, Node]]:
        metadata = {'class_name': handle.get_name()}
        file_name = handle.get_file_name()
        if not file_name:
            self._warn("No source file available for anonymous class",
                       'anonymous_line_info_unavailable', metadata)
            return None
        metadata['file_path'] = file_name

        start_line, end_line = handle.get_start_line(), handle.get_end_line()
        if not start_line or not end_line or end_line < start_line:
            self._warn("Line range of anonymous class is unavailable",
                       'anonymous_line_info_unavailable', metadata)
            return None

        try:
            lines = Path(file_name).read_text(encoding='utf8', errors='ignore').splitlines(keepends=True)
        except OSError as e:
            self._warn(f"Source file could not be read: {e}", 'file_not_found',
                       dict(metadata, exception_class=type(e).__name__))
            return None

        fragment = build_fragment(lines, start_line, end_line)
        ast, error = self.ast_reader.try_parse(fragment)
        if error is not None:
            self.collector.add_error(self.CONTEXT, f"Failed to parse anonymous class source: {error}",
                                     dict(metadata, error_type='anonymous_ast_parse_error'))
            return None
        ast.label = file_name

        if ast.is_empty():
            self._warn("Anonymous class source parsed to an empty tree", 'anonymous_ast_null_result', metadata)
            return None

        class_node = self.ast_reader.find_anonymous_class(ast)
        if class_node is None:
            self._warn("Anonymous class node not found in source range",
                       'anonymous_class_node_not_found', metadata)
            return None
        return ast, class_node

    def _resolve_by_reflection(self, handle: ReflectionHandle, conditional: bool) -> Optional[AnonymousResolution]:
        metadata = {'class_name': handle.get_name(), 'file_path': handle.get_file_name() or 'unknown'}
        try:
            instance = handle.new_instance_without_constructor()
        except Exception as e:
            self.collector.add_error(self.CONTEXT, f"Failed to create instance: {e}", dict(
                metadata, error_type='anonymous_instantiation_error', exception_class=type(e).__name__))
            return None

        if handle.has_property('request'):
            try:
                handle.set_property(instance, 'request', self.request_factory())
            except Exception as e:
                self._warn(f"Could not populate request property: {e}", 'anonymous_request_property_error',
                           dict(metadata, exception_class=type(e).__name__))

        rules = self._invoke(handle, instance, self.config.rules_method, metadata, critical=True)
        if rules is None:
            # rules() failing voids the whole result
            return AnonymousResolution('reflection')

        return AnonymousResolution(
            'reflection',
            rules=rules,
            attributes=self._invoke(handle, instance, 'attributes', metadata, critical=False),
            messages=self._invoke(handle, instance, 'messages', metadata, critical=False),
        )

    def _invoke(self, handle: ReflectionHandle, instance: Any, name: str,
                metadata: Dict[str, Any], critical: bool) -> Optional[Dict[str, Any]]:
        if not handle.has_method(name):
            return {}
        try:
            result = handle.get_method(name)(instance)
        except Exception as e:
            details = dict(metadata, method=name, exception_class=type(e).__name__)
            if critical:
                self.collector.add_error(self.CONTEXT, f"{name}() raised: {e}",
                                         dict(details, error_type='anonymous_method_invocation_error'))
                return None
            self._warn(f"{name}() raised: {e}", 'anonymous_non_critical_method_failure', details)
            return {}
        return dict(result) if isinstance(result, dict) else {}

    def _warn(self, message: str, error_type: str, metadata: Dict[str, Any]):
        self.collector.add_warning(self.CONTEXT, message, dict(metadata, error_type=error_type))
