"""
FormRequest analysis entry point.

Ties the pieces together for one class:

    source unit -> ASTReader -> class node -> rules() / attributes()
                -> RulesExtractor or ConditionalPathAnalyzer
                -> ParameterBuilder -> [ParameterDefinition]

Anonymous classes take the AnonymousRequestResolver route instead.
"""

import logging
from typing import Any, Callable, Dict, List, Optional, Tuple, TypeVar

from .anonymous_request import AnonymousRequestResolver, ReflectionHandle, conditional_result
from .ast_reader import ASTReader, PhpAst
from .conditional_rules import ConditionClassifier, ConditionalPathAnalyzer
from .config import ExtractorConfig
from .diagnostics import DiagnosticsCollector
from .enums import EnumAnalyzer, EnumRegistry
from .file_uploads import FileUploadAnalyzer
from .models import ConditionalRuleResult, ParameterDefinition, SourceUnit
from .node_values import NodeValueExtractor
from .parameter_builder import ParameterBuilder
from .rules_extractor import RulesExtractor

logger = logging.getLogger(__name__)

T = TypeVar('T')

# cache(class_name, compute) -> cached value or compute()
CacheHook = Callable[[str, Callable[[], Any]], Any]


class FormRequestAnalyzer:
    """Analyze FormRequest classes into parameter definitions"""

    CONTEXT = 'FormRequestAnalyzer'

    def __init__(self, config: Optional[ExtractorConfig] = None,
                 collector: Optional[DiagnosticsCollector] = None,
                 enum_registry: Optional[EnumRegistry] = None,
                 request_factory: Callable[[], Any] = dict):
        self.config = config or ExtractorConfig()
        self.collector = collector if collector is not None else DiagnosticsCollector(self.config.fail_on_error)

        self.ast_reader = ASTReader(self.collector)
        values = NodeValueExtractor()
        self.extractor = RulesExtractor(self.ast_reader, values, self.collector, self.config)
        self.conditional_analyzer = ConditionalPathAnalyzer(
            self.extractor,
            ConditionClassifier(values, self.config.user_predicate_prefixes),
            self.collector,
            self.config,
        )
        self.anonymous_resolver = AnonymousRequestResolver(
            self.ast_reader, self.extractor, self.conditional_analyzer,
            self.collector, self.config, request_factory,
        )

        self.enum_registry = enum_registry if enum_registry is not None else EnumRegistry(
            self.ast_reader, self.config.psr4_roots, self.collector)
        self.builder = ParameterBuilder(
            enum_analyzer=EnumAnalyzer(self.enum_registry),
            file_analyzer=FileUploadAnalyzer(),
        )

    def analyze(self, source_unit: SourceUnit, class_name: str,
                cache: Optional[CacheHook] = None) -> List[ParameterDefinition]:
        """Parameters of a named class; [] when the class can't be analyzed"""
        return self._cached(cache, class_name, lambda: self._analyze(source_unit, class_name, False))

    def analyze_with_conditional_rules(self, source_unit: SourceUnit, class_name: str,
                                       cache: Optional[CacheHook] = None) -> List[ParameterDefinition]:
        """Like analyze(), with per-branch rules attached to every parameter"""
        return self._cached(cache, class_name, lambda: self._analyze(source_unit, class_name, True))

    def analyze_anonymous(self, handle: ReflectionHandle, conditional: bool = False) -> List[ParameterDefinition]:
        resolution = self.anonymous_resolver.resolve_all(handle, conditional)
        namespace, aliases = self.anonymous_resolver.resolve_source(handle)
        if conditional:
            return self.builder.build_from_conditional_rules(
                conditional_result(resolution), resolution.attributes, namespace, aliases)
        return self.builder.build_from_rules(resolution.rules, resolution.attributes, namespace, aliases)

    def extract_rules(self, source_unit: SourceUnit, class_name: str) -> Dict[str, Any]:
        """Raw field -> rules mapping of the class's rules() method"""
        located = self._locate(source_unit, class_name)
        if located is None:
            return {}
        ast, class_node, _, _ = located
        method = self.ast_reader.find_method(ast, class_node, self.config.rules_method)
        if method is None:
            return {}
        return self.extractor.extract(ast, method, class_node)

    def extract_conditional_rules(self, source_unit: SourceUnit, class_name: str) -> ConditionalRuleResult:
        located = self._locate(source_unit, class_name)
        if located is None:
            return ConditionalRuleResult()
        ast, class_node, _, _ = located
        method = self.ast_reader.find_method(ast, class_node, self.config.rules_method)
        if method is None:
            return ConditionalRuleResult()
        return self.conditional_analyzer.analyze(ast, method, class_node)

    def _analyze(self, source_unit: SourceUnit, class_name: str, conditional: bool) -> List[ParameterDefinition]:
        located = self._locate(source_unit, class_name)
        if located is None:
            return []
        ast, class_node, namespace, aliases = located

        method = self.ast_reader.find_method(ast, class_node, self.config.rules_method)
        if method is None:
            logger.debug("%s has no %s() method", class_name, self.config.rules_method)
            return []

        attributes = {}
        attributes_method = self.ast_reader.find_method(ast, class_node, 'attributes')
        if attributes_method is not None:
            attributes = self.extractor.extract_array_method(ast, attributes_method)

        if conditional:
            result = self.conditional_analyzer.analyze(ast, method, class_node)
            parameters = self.builder.build_from_conditional_rules(result, attributes, namespace, aliases)
        else:
            rules = self.extractor.extract(ast, method, class_node)
            parameters = self.builder.build_from_rules(rules, attributes, namespace, aliases)

        logger.debug("%s: %d parameters", class_name, len(parameters))
        return parameters

    def _locate(self, source_unit: SourceUnit,
                class_name: str) -> Optional[Tuple[PhpAst, Any, Optional[str], Dict[str, str]]]:
        ast = self.ast_reader.parse_source(source_unit.text, source_unit.label)
        if ast is None:
            return None

        class_node = self.ast_reader.find_class(ast, class_name)
        if class_node is None:
            self.collector.add_warning(self.CONTEXT, f"Class {class_name} not found", {
                'error_type': 'class_node_not_found',
                'class_name': class_name,
                'file_path': source_unit.label,
            })
            return None

        # Enums declared next to the request resolve without a PSR-4 lookup
        self.enum_registry.register_ast(ast)

        namespace = source_unit.namespace or self.ast_reader.extract_namespace(ast)
        aliases = self.ast_reader.extract_import_aliases(ast)
        aliases.update(source_unit.import_aliases)
        return ast, class_node, namespace, aliases

    def _cached(self, cache: Optional[CacheHook], key: str, compute: Callable[[], T]) -> T:
        if cache is None:
            return compute()
        return cache(key, compute)
