"""Example values for synthesized parameters"""

import math
import re
from typing import Any, Optional, Sequence, Set, Tuple

from .models import EnumInfo
from .rule_tokens import find_rule, has_rule, rule_name, rule_parameter_list, rule_parameters, parse_number

FORMAT_EXAMPLES = {
    'email': 'user@example.com',
    'uri': 'https://example.com',
    'uuid': '550e8400-e29b-41d4-a716-446655440000',
    'ulid': '01ARZ3NDEKTSV4RRFFQ69G5FAV',
    'ipv4': '192.168.1.1',
    'ipv6': '2001:0db8:85a3:0000:0000:8a2e:0370:7334',
    'mac': '00:11:22:33:44:55',
    'date': '2024-01-01',
    'date-time': '2024-01-01T00:00:00Z',
    'password': 'password123',
}

# PHP date() characters rendered for 2024-01-01 14:30:00 UTC (a Monday)
DATE_FORMAT_PARTS = {
    'd': '01', 'D': 'Mon', 'j': '1', 'l': 'Monday', 'N': '1', 'S': 'st', 'w': '1', 'z': '0',
    'W': '01', 'F': 'January', 'm': '01', 'M': 'Jan', 'n': '1', 't': '31', 'L': '1',
    'o': '2024', 'Y': '2024', 'y': '24', 'a': 'pm', 'A': 'PM', 'B': '645', 'g': '2', 'G': '14',
    'h': '02', 'H': '14', 'i': '30', 's': '00', 'u': '000000', 'v': '000', 'e': 'UTC',
    'I': '0', 'O': '+0000', 'P': '+00:00', 'p': 'Z', 'T': 'UTC', 'Z': '0',
    'c': '2024-01-01T14:30:00+00:00', 'r': 'Mon, 01 Jan 2024 14:30:00 +0000', 'U': '1704119400',
}

# (substring of the field name, example), checked in order
FIELD_NAME_EXAMPLES = (
    ('name', 'John Doe'),
    ('email', 'user@example.com'),
    ('phone', '+1234567890'),
    ('address', '123 Main Street'),
    ('password', 'password123'),
    ('age', 25),
    ('price', 99.99),
    ('amount', 99.99),
    ('cost', 99.99),
    ('timezone', 'UTC'),
    ('date', '2024-01-01'),
    ('time', '2024-01-01'),
)


def render_date_format(date_format: str) -> str:
    """Render a PHP date_format pattern for a fixed sample moment"""
    rendered = []
    escaped = False
    for char in date_format:
        if escaped:
            rendered.append(char)
            escaped = False
        elif char == '\\':
            escaped = True
        else:
            rendered.append(DATE_FORMAT_PARTS.get(char, char))
    return ''.join(rendered)


class ExampleGenerator:
    """Pick an example value from type, format and rules"""

    def generate(self, field_name: str, tokens: Sequence[Any], field_type: str,
                 field_format: Optional[str] = None, enum_info: Optional[EnumInfo] = None) -> Any:
        if enum_info is not None and enum_info.values:
            return enum_info.values[0]

        if has_rule(tokens, 'accepted', 'accepted_if'):
            return True
        if has_rule(tokens, 'declined', 'declined_if'):
            return False

        if field_type == 'file':
            return None
        if field_type == 'integer':
            return self.integer_example(field_name, tokens)
        if field_type == 'number':
            return self.number_example(tokens)
        if field_type == 'boolean':
            return True
        if field_type == 'array':
            return []

        date_format = find_rule(tokens, 'date_format')
        if date_format is not None:
            return render_date_format(rule_parameters(date_format))
        if field_format in FORMAT_EXAMPLES:
            return FORMAT_EXAMPLES[field_format]

        if has_rule(tokens, 'timezone'):
            return 'Asia/Tokyo'
        if has_rule(tokens, 'json'):
            return {'key': 'value'}
        in_rule = find_rule(tokens, 'in')
        if in_rule is not None and rule_parameter_list(in_rule):
            return rule_parameter_list(in_rule)[0]

        words = name_words(field_name)
        for hint, example in FIELD_NAME_EXAMPLES:
            if hint in words:
                return example
        return 'string'

    def integer_example(self, field_name: str, tokens: Sequence[Any]) -> int:
        minimum, maximum = numeric_bounds(tokens, integer=True)
        words = name_words(field_name)
        if 'id' in words:
            example = 1
        elif 'age' in words:
            example = 25
        elif words & {'count', 'quantity', 'qty'}:
            example = 10
        else:
            example = (minimum if minimum is not None else 1) + 1
        return int(clamp(example, minimum, maximum))

    def number_example(self, tokens: Sequence[Any]) -> float:
        example = 19.99
        decimal = find_rule(tokens, 'decimal')
        if decimal is not None:
            places = [parse_number(p) for p in rule_parameter_list(decimal)]
            places = [int(p) for p in places if p is not None]
            if places:
                # decimal:0,3 uses the upper bound
                scale = max(places)
                example = float('19.' + '9' * scale) if scale > 0 else 19.0
        minimum, maximum = numeric_bounds(tokens, integer=False)
        return float(clamp(example, minimum, maximum))


def name_words(field_name: str) -> Set[str]:
    """'user_id' / 'userId' / 'items.*.unit-price' -> lowercase words"""
    spaced = re.sub(r'(?<=[a-z0-9])(?=[A-Z])', ' ', field_name)
    return {w for w in re.split(r'[\W_]+', spaced.lower()) if w}


def numeric_bounds(tokens: Sequence[Any], integer: bool) -> Tuple[Optional[float], Optional[float]]:
    """Inclusive (minimum, maximum) from min/max/between/gt/gte/lt/lte"""
    minimum = maximum = None
    step = 1 if integer else 0.01
    for token in tokens:
        name = rule_name(token)
        values = [parse_number(p) for p in rule_parameter_list(token)]
        if not values or None in values:
            continue
        if name == 'between' and len(values) >= 2:
            minimum, maximum = values[0], values[1]
        elif name in ('min', 'gte'):
            minimum = values[0]
        elif name in ('max', 'lte'):
            maximum = values[0]
        elif name == 'gt':
            minimum = values[0] + step
        elif name == 'lt':
            maximum = values[0] - step
    if integer:
        if minimum is not None:
            minimum = math.ceil(minimum)
        if maximum is not None:
            maximum = math.floor(maximum)
    return minimum, maximum


def clamp(value, minimum, maximum):
    if minimum is not None and value < minimum:
        value = minimum
    if maximum is not None and value > maximum:
        value = maximum
    return value
