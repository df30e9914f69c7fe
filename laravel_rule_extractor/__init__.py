"""Static analysis of Laravel FormRequest validation rules"""

from .anonymous_request import AnonymousRequestResolver, ClassReflection, ReflectionHandle
from .ast_reader import ASTReader, PhpAst
from .conditional_rules import ConditionClassifier, ConditionalPathAnalyzer
from .config import ExtractorConfig, configure_logging
from .diagnostics import DiagnosticEntry, DiagnosticsCollector
from .enums import EnumAnalyzer, EnumRegistry
from .exceptions import AnalysisError, RuleExtractionError, SourceParseError
from .file_uploads import FileUploadAnalyzer
from .form_request import FormRequestAnalyzer
from .formats import FormatInferrer, PasswordRuleAnalyzer
from .models import (
    Condition, ConditionalRuleBranch, ConditionalRuleDetail, ConditionalRuleResult, EnumInfo,
    EnumToken, FileDimensions, FileRuleToken, FileUploadInfo, ParameterDefinition,
    PasswordRuleInfo, RawExpression, RuleSetBranch, SourceUnit,
)
from .node_values import NodeValueExtractor
from .parameter_builder import ParameterBuilder
from .requirement import RuleRequirementAnalyzer
from .rules_extractor import RulesExtractor

__version__ = '0.1.0'
