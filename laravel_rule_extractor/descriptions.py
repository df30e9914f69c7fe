"""Human readable parameter descriptions built from rule tokens"""

from typing import Any, Dict, List, Optional, Sequence

from .enums import EnumAnalyzer
from .models import FileUploadInfo, RawExpression
from .rule_tokens import rule_name, rule_parameters

# Rule -> sentence template; {0} is the rule's parameter text
DATE_CLAUSES = {
    'after': "Date must be after {0}",
    'after_or_equal': "Date must be after or equal to {0}",
    'before': "Date must be before {0}",
    'before_or_equal': "Date must be before or equal to {0}",
    'date_equals': "Date must be equal to {0}",
    'date_format': "Format: {0}",
}

FIELD_LIST_CLAUSES = {
    'required_with': "Required when any of these fields are present: {0}",
    'required_with_all': "Required when all of these fields are present: {0}",
    'required_without': "Required when any of these fields are not present: {0}",
    'required_without_all': "Required when none of these fields are present: {0}",
}

FIELD_VALUE_CLAUSES = {
    'required_if': "Required when {0} is {1}",
    'required_unless': "Required unless {0} is {1}",
    'prohibited_if': "Prohibited when {0} is {1}",
    'prohibited_unless': "Prohibited unless {0} is {1}",
}


def format_field_name(field_name: str) -> str:
    """'company_name' -> 'Company Name'"""
    return field_name.replace('_', ' ').replace('-', ' ').title()


def format_file_size(size: int) -> str:
    """Bytes -> '2 MB', '500 KB', '1.5 GB'"""
    value = float(size)
    for unit in ('B', 'KB', 'MB', 'GB'):
        if value < 1024 or unit == 'GB':
            break
        value /= 1024
    if value == int(value):
        return f"{int(value)} {unit}"
    return f"{value:.1f} {unit}"


def _field_and_value(parameters: str):
    # Rule::requiredIf() output uses ':' between field and value
    separator = ',' if ',' in parameters else ':'
    parts = parameters.split(separator)
    if len(parts) < 2:
        return None
    return parts[0], separator.join(parts[1:])


class ValidationDescriptionGenerator:
    """Build descriptions from field names and rules"""

    def __init__(self, enum_analyzer: Optional[EnumAnalyzer] = None):
        self.enum_analyzer = enum_analyzer or EnumAnalyzer()

    def generate_description(self, field_name: str, tokens: Sequence[Any],
                             namespace: Optional[str] = None,
                             import_aliases: Optional[Dict[str, str]] = None,
                             field_type: str = 'string') -> str:
        description = format_field_name(field_name)

        enum_info = self.enum_analyzer.analyze_rules(tokens, namespace, import_aliases)
        if enum_info is not None:
            description += f" ({enum_info.short_name})"

        notes = []
        lengths = self.length_notes(tokens) if field_type == 'string' else []
        if lengths:
            notes.append(', '.join(lengths))
        # Clauses may contain commas themselves
        notes.extend(clause[0].lower() + clause[1:] for clause in self.rule_clauses(tokens))
        if notes:
            description += f" ({'; '.join(notes)})"
        return description

    def generate_file_description(self, field_name: str, file_info: FileUploadInfo,
                                  attribute: Optional[str] = None) -> str:
        label = attribute or format_field_name(field_name)
        parts = []
        if file_info.mimes:
            parts.append('Allowed types: ' + ', '.join(file_info.mimes))
        if file_info.max_size is not None:
            parts.append(f"Max size: {format_file_size(file_info.max_size)}")
        if file_info.min_size is not None:
            parts.append(f"Min size: {format_file_size(file_info.min_size)}")

        dimensions = file_info.dimensions
        if dimensions is not None:
            if dimensions.min_width is not None and dimensions.min_height is not None:
                parts.append(f"Min dimensions: {dimensions.min_width}x{dimensions.min_height}")
            if dimensions.max_width is not None and dimensions.max_height is not None:
                parts.append(f"Max dimensions: {dimensions.max_width}x{dimensions.max_height}")
            if dimensions.ratio:
                parts.append(f"Aspect ratio: {dimensions.ratio}")

        if not parts:
            return label
        return f"{label} ({'. '.join(parts)})"

    def generate_conditional_description(self, field_name: str, branch_count: int,
                                         base: Optional[str] = None) -> str:
        description = base or format_field_name(field_name)
        if branch_count > 1:
            description += ' (rules vary by condition)'
        return description

    def length_notes(self, tokens: Sequence[Any]) -> List[str]:
        notes = []
        for token in tokens:
            name = rule_name(token)
            if name == 'min' and not any(n.startswith('min ') for n in notes):
                notes.append(f"min {rule_parameters(token)} characters")
            elif name == 'max' and not any(n.startswith('max ') for n in notes):
                notes.append(f"max {rule_parameters(token)} characters")
        return notes

    def rule_clauses(self, tokens: Sequence[Any]) -> List[str]:
        clauses = []
        for token in tokens:
            if not isinstance(token, str) or isinstance(token, RawExpression):
                continue
            clause = self._clause(rule_name(token), rule_parameters(token))
            if clause and clause not in clauses:
                clauses.append(clause)
        return clauses

    def _clause(self, name: str, parameters: str) -> Optional[str]:
        if name in FIELD_VALUE_CLAUSES:
            pair = _field_and_value(parameters)
            return FIELD_VALUE_CLAUSES[name].format(*pair) if pair else None
        if name in FIELD_LIST_CLAUSES and parameters:
            return FIELD_LIST_CLAUSES[name].format(parameters)
        if name in DATE_CLAUSES and parameters:
            return DATE_CLAUSES[name].format(parameters)
        if name == 'timezone':
            return 'Must be a valid timezone'
        return None
