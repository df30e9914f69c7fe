"""
Build ParameterDefinition objects from extracted validation rules.

Two entry points:
- build_from_rules(): one flat field -> rules mapping
- build_from_conditional_rules(): a ConditionalRuleResult (or its to_dict()
  form); every field also gets its per-branch rules attached
"""

import logging
from collections.abc import Mapping
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .descriptions import ValidationDescriptionGenerator, format_field_name
from .enums import EnumAnalyzer
from .examples import ExampleGenerator
from .file_uploads import FileUploadAnalyzer
from .formats import FormatInferrer, PasswordRuleAnalyzer
from .models import (
    Condition, ConditionalRuleBranch, ConditionalRuleResult, EnumInfo, FileUploadInfo,
    ParameterDefinition,
)
from .requirement import RuleRequirementAnalyzer
from .rule_tokens import (
    BOOLEAN_RULES, INTEGER_RULES, NUMBER_RULES, has_rule, normalize_rules, parse_number,
    rule_name, rule_parameter_list, rule_parameters,
)

logger = logging.getLogger(__name__)

_BOUND_RULES = ('min', 'max', 'size', 'between', 'gt', 'gte', 'lt', 'lte')

# Closing delimiter for bracket-style PCRE delimiters
_BRACKET_DELIMITERS = {'(': ')', '{': '}', '[': ']', '<': '>'}


def strip_pcre_delimiters(pattern: str) -> str:
    """'/^[a-z]+$/i' -> '^[a-z]+$'"""
    pattern = pattern.strip()
    if len(pattern) < 2:
        return pattern
    opening = pattern[0]
    if opening.isalnum() or opening in ('\\', ' '):
        return pattern
    closing = _BRACKET_DELIMITERS.get(opening, opening)
    end = pattern.rfind(closing)
    if end <= 0:
        return pattern
    return pattern[1:end]


class ParameterBuilder:
    """Turn field rules into request parameter definitions"""

    def __init__(self, enum_analyzer: Optional[EnumAnalyzer] = None,
                 file_analyzer: Optional[FileUploadAnalyzer] = None,
                 requirement: Optional[RuleRequirementAnalyzer] = None,
                 format_inferrer: Optional[FormatInferrer] = None,
                 password_analyzer: Optional[PasswordRuleAnalyzer] = None,
                 descriptions: Optional[ValidationDescriptionGenerator] = None,
                 examples: Optional[ExampleGenerator] = None):
        self.enum_analyzer = enum_analyzer or EnumAnalyzer()
        self.file_analyzer = file_analyzer or FileUploadAnalyzer()
        self.requirement = requirement or RuleRequirementAnalyzer()
        self.formats = format_inferrer or FormatInferrer()
        self.passwords = password_analyzer or PasswordRuleAnalyzer()
        self.descriptions = descriptions or ValidationDescriptionGenerator(self.enum_analyzer)
        self.examples = examples or ExampleGenerator()

    def build_from_rules(self, rules: Dict[str, Any], attributes: Optional[Dict[str, str]] = None,
                         namespace: Optional[str] = None,
                         import_aliases: Optional[Dict[str, str]] = None) -> List[ParameterDefinition]:
        if not isinstance(rules, Mapping):
            return []

        parameters = []
        for field_name, value in rules.items():
            if not _is_input_field(field_name):
                continue
            tokens = normalize_rules(value)
            if self.requirement.has_exclude(tokens):
                continue

            required = self.requirement.is_required(tokens)
            conditional_required = self.requirement.has_conditional_required(tokens) and not required
            details = tuple(self.requirement.extract_conditional_details(tokens)) if conditional_required else ()

            parameter = self.build_parameter(
                field_name, tokens, attributes, namespace, import_aliases,
                required=required,
                conditional_required=conditional_required,
                conditional_rules=details,
            )
            parameters.extend(self._with_confirmation(parameter, tokens))

        logger.debug("Built %d parameters", len(parameters))
        return parameters

    def build_from_conditional_rules(self, result: Any, attributes: Optional[Dict[str, str]] = None,
                                     namespace: Optional[str] = None,
                                     import_aliases: Optional[Dict[str, str]] = None) -> List[ParameterDefinition]:
        """Malformed entries are skipped, never raised"""
        rule_sets, merged_rules = _conditional_parts(result)
        if rule_sets is None or merged_rules is None:
            return []

        per_field: Dict[str, List[ConditionalRuleBranch]] = {}
        branch_total = 0
        for rule_set in rule_sets:
            conditions, rules = _branch_parts(rule_set)
            if rules is None:
                continue
            branch_total += 1
            for field_name, value in rules.items():
                if not _is_input_field(field_name):
                    continue
                per_field.setdefault(field_name, []).append(
                    ConditionalRuleBranch(conditions, tuple(normalize_rules(value))))

        parameters = []
        for field_name, merged in merged_rules.items():
            if field_name not in per_field:
                continue
            tokens = normalize_rules(merged)
            if self.requirement.has_exclude(tokens):
                continue

            branches = per_field[field_name]
            branch_rules = [list(b.rules) for b in branches]
            required_somewhere = self.requirement.is_required_in_any_condition(branch_rules)
            # A branch that omits the field doesn't require it
            required = len(branches) == branch_total and \
                self.requirement.is_required_in_all_conditions(branch_rules)
            conditional_required = (required_somewhere and not required) or \
                (self.requirement.has_conditional_required(tokens) and not required)

            parameter = self.build_parameter(
                field_name, tokens, attributes, namespace, import_aliases,
                required=required,
                conditional_required=conditional_required,
                conditional_rules=tuple(branches),
                branch_count=len(branches),
            )
            parameters.extend(self._with_confirmation(parameter, tokens))
        return parameters

    def build_parameter(self, field_name: str, tokens: Sequence[Any],
                        attributes: Optional[Dict[str, str]] = None,
                        namespace: Optional[str] = None,
                        import_aliases: Optional[Dict[str, str]] = None,
                        required: bool = False,
                        conditional_required: bool = False,
                        conditional_rules: Tuple[Any, ...] = (),
                        branch_count: int = 0) -> ParameterDefinition:
        enum_info = self.enum_analyzer.analyze_rules(tokens, namespace, import_aliases)
        file_info = self.file_analyzer.analyze_field(field_name, tokens)
        field_type = self.resolve_type(tokens, enum_info, file_info)

        attribute = (attributes or {}).get(field_name)
        if not isinstance(attribute, str):
            attribute = None

        if file_info is not None:
            return ParameterDefinition(
                name=field_name,
                type='file',
                format='binary',
                required=required,
                conditional_required=conditional_required,
                conditional_rules=conditional_rules,
                validation=tuple(tokens),
                description=self.descriptions.generate_file_description(field_name, file_info, attribute),
                file_info=file_info,
            )

        field_format = self.formats.infer_format(tokens)
        constraints = self.type_constraints(field_type, tokens)
        if field_type == 'string' and 'min_length' not in constraints and 'max_length' not in constraints:
            password = self.passwords.analyze(tokens)
            if password is not None:
                if password.min_length is not None:
                    constraints['min_length'] = password.min_length
                if password.max_length is not None:
                    constraints['max_length'] = password.max_length

        description = attribute
        if description is None:
            description = self.descriptions.generate_description(
                field_name, tokens, namespace, import_aliases, field_type)
            if branch_count:
                description = self.descriptions.generate_conditional_description(
                    field_name, branch_count, description)

        return ParameterDefinition(
            name=field_name,
            type=field_type,
            format=field_format,
            required=required,
            conditional_required=conditional_required,
            conditional_rules=conditional_rules,
            validation=tuple(tokens),
            description=description,
            example=self.examples.generate(field_name, tokens, field_type, field_format, enum_info),
            pattern=self.extract_pattern(tokens),
            enum=enum_info,
            **constraints,
        )

    def resolve_type(self, tokens: Sequence[Any], enum_info: Optional[EnumInfo] = None,
                     file_info: Optional[FileUploadInfo] = None) -> str:
        if file_info is not None:
            return 'file'
        if has_rule(tokens, *INTEGER_RULES):
            return 'integer'
        if has_rule(tokens, *NUMBER_RULES):
            return 'number'
        if has_rule(tokens, *BOOLEAN_RULES):
            return 'boolean'
        if has_rule(tokens, 'array'):
            return 'array'
        if enum_info is not None:
            return enum_info.openapi_type
        return 'string'

    def type_constraints(self, field_type: str, tokens: Sequence[Any]) -> Dict[str, Any]:
        """min/max/size/between/gt/gte/lt/lte mapped onto the pair the type uses"""
        if field_type == 'string':
            lower, upper = 'min_length', 'max_length'
        elif field_type in ('integer', 'number'):
            lower, upper = 'minimum', 'maximum'
        elif field_type == 'array':
            lower, upper = 'min_items', 'max_items'
        else:
            return {}
        numeric = field_type in ('integer', 'number')

        constraints: Dict[str, Any] = {}
        for token in tokens:
            name = rule_name(token)
            if name not in _BOUND_RULES:
                continue
            values = [parse_number(p) for p in rule_parameter_list(token)]
            if not values or None in values:
                # gt:other_field and friends compare against another field
                continue
            if not numeric:
                values = [int(v) for v in values]

            if name in ('min', 'gte') and (numeric or name == 'min'):
                constraints[lower] = values[0]
            elif name in ('max', 'lte') and (numeric or name == 'max'):
                constraints[upper] = values[0]
            elif name == 'size':
                constraints[lower] = constraints[upper] = values[0]
            elif name == 'between' and len(values) >= 2:
                constraints[lower], constraints[upper] = values[0], values[1]
            elif numeric and name == 'gt':
                constraints['exclusive_minimum'] = values[0]
            elif numeric and name == 'lt':
                constraints['exclusive_maximum'] = values[0]
        return constraints

    def extract_pattern(self, tokens: Sequence[Any]) -> Optional[str]:
        for token in tokens:
            if rule_name(token) in ('regex', 'pattern'):
                return strip_pcre_delimiters(rule_parameters(token))
        return None

    def _with_confirmation(self, parameter: ParameterDefinition, tokens: Sequence[Any]) -> List[ParameterDefinition]:
        if not has_rule(tokens, 'confirmed'):
            return [parameter]
        name = f"{parameter.name}_confirmation"
        twin = ParameterDefinition(
            name=name,
            type=parameter.type,
            required=parameter.required,
            validation=(('required',) if parameter.required else ()) + (f"same:{parameter.name}",),
            description=format_field_name(name),
            min_length=parameter.min_length,
            max_length=parameter.max_length,
        )
        return [parameter, twin]


def _is_input_field(field_name: Any) -> bool:
    return isinstance(field_name, str) and bool(field_name) and not field_name.startswith('_')


def _conditional_parts(result: Any):
    if isinstance(result, ConditionalRuleResult):
        return result.rule_set_branches, result.merged_rules
    if not isinstance(result, Mapping):
        return None, None
    rule_sets = result.get('rules_sets')
    merged_rules = result.get('merged_rules')
    if not isinstance(rule_sets, (list, tuple)) or not isinstance(merged_rules, Mapping):
        return None, None
    return rule_sets, merged_rules


def _branch_parts(rule_set: Any) -> Tuple[Tuple[Condition, ...], Optional[Mapping]]:
    if hasattr(rule_set, 'rules') and hasattr(rule_set, 'conditions'):
        conditions, rules = rule_set.conditions, rule_set.rules
    elif isinstance(rule_set, Mapping):
        conditions, rules = rule_set.get('conditions') or (), rule_set.get('rules')
    else:
        return (), None

    if not isinstance(rules, Mapping):
        return (), None

    parsed = []
    if isinstance(conditions, (list, tuple)):
        for condition in conditions:
            if isinstance(condition, Condition):
                parsed.append(condition)
            else:
                converted = Condition.from_dict(condition)
                if converted is not None:
                    parsed.append(converted)
    return tuple(parsed), rules
