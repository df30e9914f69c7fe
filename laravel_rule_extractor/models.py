"""
Data model shared by the extractor components.

Everything here is a plain dataclass; `to_dict()` turns each one into
JSON-ready data for whatever generates the final documentation.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple


class RawExpression(str):
    """Rule text kept as PHP source because it could not be evaluated

    Never split on '|' during normalization.
    """


@dataclass(frozen=True)
class EnumToken:
    """Structured rule token for Rule::enum(X::class) / new Enum(X::class)"""
    enum_class: str

    def canonical(self) -> str:
        return f"enum:{self.enum_class}"

    def to_dict(self) -> Dict[str, Any]:
        return {'type': 'enum', 'class': self.enum_class}


@dataclass(frozen=True)
class FileRuleToken:
    """File::types([...])->min()->max() / File::image() builder chain"""
    extensions: Tuple[str, ...] = ()
    min_kb: Optional[int] = None
    max_kb: Optional[int] = None
    image: bool = False

    def canonical(self) -> str:
        return 'image' if self.image else 'file'

    def to_dict(self) -> Dict[str, Any]:
        return {
            'type': 'file',
            'image': self.image,
            'extensions': list(self.extensions),
            'min_kb': self.min_kb,
            'max_kb': self.max_kb,
        }


@dataclass(frozen=True)
class Condition:
    """Classified boolean gate guarding a return path"""
    type: str
    expression: str = ''
    method: Optional[str] = None

    HTTP_METHOD = 'http_method'
    USER_METHOD = 'user_method'
    CUSTOM = 'custom'

    @classmethod
    def http_method(cls, method: str, expression: str = '') -> 'Condition':
        return cls(cls.HTTP_METHOD, expression, method.upper())

    @classmethod
    def user_method(cls, method: str, expression: str = '') -> 'Condition':
        return cls(cls.USER_METHOD, expression, method)

    @classmethod
    def custom(cls, expression: str) -> 'Condition':
        return cls(cls.CUSTOM, expression)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Optional['Condition']:
        if not isinstance(data, dict) or not isinstance(data.get('type'), str):
            return None
        method = data.get('method')
        if data['type'] == cls.HTTP_METHOD and isinstance(method, str):
            method = method.upper()
        return cls(data['type'], str(data.get('expression') or ''), method)

    def to_dict(self) -> Dict[str, Any]:
        result = {'type': self.type, 'expression': self.expression}
        if self.method is not None:
            result['method'] = self.method
        return result


@dataclass(frozen=True)
class RuleSetBranch:
    """One reachable return path and the conditions needed to reach it"""
    conditions: Tuple[Condition, ...]
    rules: Dict[str, Any]
    probability: float = 1.0

    @classmethod
    def create(cls, conditions, rules: Dict[str, Any]) -> 'RuleSetBranch':
        conditions = tuple(conditions)
        return cls(conditions, dict(rules), 1.0 / (2 ** len(conditions)))

    def is_default(self) -> bool:
        return not self.conditions

    def to_dict(self) -> Dict[str, Any]:
        return {
            'conditions': [c.to_dict() for c in self.conditions],
            'rules': _rules_to_data(self.rules),
            'probability': self.probability,
        }


@dataclass
class ConditionalRuleResult:
    """All return paths of a rules() method plus the per-field union"""
    rule_set_branches: List[RuleSetBranch] = field(default_factory=list)
    merged_rules: Dict[str, List[Any]] = field(default_factory=dict)

    @property
    def has_conditions(self) -> bool:
        return any(branch.conditions for branch in self.rule_set_branches)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'rules_sets': [b.to_dict() for b in self.rule_set_branches],
            'merged_rules': _rules_to_data(self.merged_rules),
            'has_conditions': self.has_conditions,
        }


@dataclass(frozen=True)
class EnumInfo:
    """Resolved enum constraint"""
    enum_class: str
    values: Tuple[Any, ...]
    backing_type: str = 'string'

    @property
    def short_name(self) -> str:
        return self.enum_class.rsplit('\\', 1)[-1]

    @property
    def openapi_type(self) -> str:
        return 'integer' if self.backing_type == 'int' else 'string'

    def to_dict(self) -> Dict[str, Any]:
        return {
            'class': self.enum_class,
            'values': list(self.values),
            'type': self.backing_type,
        }


@dataclass(frozen=True)
class FileDimensions:
    """Bounds parsed from a dimensions:... rule"""
    width: Optional[int] = None
    height: Optional[int] = None
    min_width: Optional[int] = None
    min_height: Optional[int] = None
    max_width: Optional[int] = None
    max_height: Optional[int] = None
    ratio: Optional[str] = None

    def is_empty(self) -> bool:
        return all(v is None for v in self.to_dict().values())

    def to_dict(self) -> Dict[str, Any]:
        return {
            'width': self.width,
            'height': self.height,
            'min_width': self.min_width,
            'min_height': self.min_height,
            'max_width': self.max_width,
            'max_height': self.max_height,
            'ratio': self.ratio,
        }


@dataclass(frozen=True)
class FileUploadInfo:
    """Upload constraints of one file field, sizes in bytes"""
    is_image: bool = False
    mimes: Tuple[str, ...] = ()
    mime_types: Tuple[str, ...] = ()
    min_size: Optional[int] = None
    max_size: Optional[int] = None
    dimensions: Optional[FileDimensions] = None
    multiple: bool = False

    def to_dict(self) -> Dict[str, Any]:
        result = {
            'is_image': self.is_image,
            'mimes': list(self.mimes),
            'mime_types': list(self.mime_types),
            'multiple': self.multiple,
        }
        if self.min_size is not None:
            result['min_size'] = self.min_size
        if self.max_size is not None:
            result['max_size'] = self.max_size
        if self.dimensions is not None:
            result['dimensions'] = {k: v for k, v in self.dimensions.to_dict().items() if v is not None}
        return result


@dataclass(frozen=True)
class ConditionalRuleDetail:
    """A required_if / prohibited_unless / exclude_with ... token"""
    type: str
    parameters: str
    full_rule: str

    def is_required_rule(self) -> bool:
        return self.type.startswith('required_')

    def is_prohibited_rule(self) -> bool:
        return self.type.startswith('prohibited_')

    def is_exclude_rule(self) -> bool:
        return self.type.startswith('exclude_')

    def parameters_list(self) -> List[str]:
        if not self.parameters:
            return []
        return [p.strip() for p in self.parameters.split(',')]

    def to_dict(self) -> Dict[str, Any]:
        return {'type': self.type, 'parameters': self.parameters, 'full_rule': self.full_rule}


@dataclass(frozen=True)
class ConditionalRuleBranch:
    """Per-branch rules of one field"""
    conditions: Tuple[Condition, ...]
    rules: Tuple[Any, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'conditions': [c.to_dict() for c in self.conditions],
            'rules': [_token_to_data(t) for t in self.rules],
        }


@dataclass(frozen=True)
class PasswordRuleInfo:
    """Requirements read from a Password::min(...)->... chain"""
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    requires_mixed_case: bool = False
    requires_numbers: bool = False
    requires_symbols: bool = False
    requires_letters: bool = False
    requires_uncompromised: bool = False

    def requirements(self) -> List[str]:
        labels = [
            (self.requires_letters, 'letters'),
            (self.requires_mixed_case, 'mixed case'),
            (self.requires_numbers, 'numbers'),
            (self.requires_symbols, 'symbols'),
            (self.requires_uncompromised, 'uncompromised'),
        ]
        return [label for enabled, label in labels if enabled]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'min_length': self.min_length,
            'max_length': self.max_length,
            'requires_mixed_case': self.requires_mixed_case,
            'requires_numbers': self.requires_numbers,
            'requires_symbols': self.requires_symbols,
            'requires_letters': self.requires_letters,
            'requires_uncompromised': self.requires_uncompromised,
        }


@dataclass(frozen=True)
class ParameterDefinition:
    """Synthesized request parameter"""
    name: str
    type: str = 'string'
    format: Optional[str] = None
    required: bool = False
    conditional_required: bool = False
    conditional_rules: Tuple[Any, ...] = ()
    validation: Tuple[Any, ...] = ()
    description: str = ''
    example: Any = None
    pattern: Optional[str] = None
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    minimum: Optional[Any] = None
    maximum: Optional[Any] = None
    exclusive_minimum: Optional[Any] = None
    exclusive_maximum: Optional[Any] = None
    min_items: Optional[int] = None
    max_items: Optional[int] = None
    enum: Optional[EnumInfo] = None
    file_info: Optional[FileUploadInfo] = None
    location: str = 'body'

    def is_file_upload(self) -> bool:
        return self.type == 'file' and self.file_info is not None

    def has_conditional_rules(self) -> bool:
        return bool(self.conditional_rules)

    def has_enum(self) -> bool:
        return self.enum is not None

    def to_dict(self) -> Dict[str, Any]:
        result = {
            'name': self.name,
            'in': self.location,
            'type': self.type,
            'required': self.required,
            'conditionalRequired': self.conditional_required,
            'description': self.description,
            'validation': [_token_to_data(t) for t in self.validation],
        }
        optional = [
            ('format', self.format),
            ('example', self.example),
            ('pattern', self.pattern),
            ('minLength', self.min_length),
            ('maxLength', self.max_length),
            ('minimum', self.minimum),
            ('maximum', self.maximum),
            ('exclusiveMinimum', self.exclusive_minimum),
            ('exclusiveMaximum', self.exclusive_maximum),
            ('minItems', self.min_items),
            ('maxItems', self.max_items),
        ]
        for key, value in optional:
            if value is not None:
                result[key] = value

        if self.enum is not None:
            result['enum'] = self.enum.to_dict()
        if self.file_info is not None:
            result['fileInfo'] = self.file_info.to_dict()
        if self.conditional_rules:
            result['conditionalRules'] = [
                r.to_dict() if hasattr(r, 'to_dict') else r for r in self.conditional_rules
            ]
        return result


@dataclass
class SourceUnit:
    """PHP source handed to the analyzers"""
    text: str
    file_path: Optional[str] = None
    start_line: Optional[int] = None
    end_line: Optional[int] = None
    namespace: Optional[str] = None
    import_aliases: Dict[str, str] = field(default_factory=dict)

    @property
    def label(self) -> str:
        return self.file_path or '<string>'


def _token_to_data(token: Any) -> Any:
    if hasattr(token, 'to_dict'):
        return token.to_dict()
    if isinstance(token, str):
        return str(token)
    return token


def _rules_to_data(rules: Dict[str, Any]) -> Dict[str, Any]:
    data = {}
    for name, value in rules.items():
        if isinstance(value, (list, tuple)):
            data[name] = [_token_to_data(t) for t in value]
        else:
            data[name] = _token_to_data(value)
    return data
