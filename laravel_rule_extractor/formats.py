"""OpenAPI format inference and Password:: rule parsing"""

import re
from typing import Any, Optional, Sequence

from .models import PasswordRuleInfo
from .rule_tokens import rule_name, rule_parameters

# Checked in this order after the Password:: check; first match wins
SIMPLE_FORMATS = (
    ('email', 'email'),
    ('url', 'uri'),
    ('uuid', 'uuid'),
    ('ulid', 'ulid'),
    ('ip', 'ipv4'),
    ('ipv4', 'ipv4'),
    ('ipv6', 'ipv6'),
    ('mac_address', 'mac'),
)

# PHP date() characters that put a time of day into the value
TIME_SPECIFIERS = set('HisGghAauvTcU')

_PASSWORD_START = re.compile(r'^(?:new\s+)?\\?(?:[A-Za-z_]\w*\\)*Password(?:::|\()')
_PASSWORD_MIN = re.compile(r'(?:^|::|->)min\((\d+)\)')
_PASSWORD_CONSTRUCTOR = re.compile(r'Password\((\d+)\)')
_PASSWORD_MAX = re.compile(r'->max\((\d+)\)')


def is_password_token(token: Any) -> bool:
    """Token text starts with Password:: (or an FQ ...\\Password::)"""
    return isinstance(token, str) and bool(_PASSWORD_START.match(token.strip()))


class FormatInferrer:
    """Infer the OpenAPI string format of a field; stateless"""

    def infer_format(self, tokens: Sequence[Any]) -> Optional[str]:
        if any(is_password_token(t) for t in tokens):
            return 'password'

        names = [rule_name(t) for t in tokens]
        for rule, fmt in SIMPLE_FORMATS:
            if rule in names:
                return fmt

        return self.infer_date_format(tokens)

    def infer_date_format(self, tokens: Sequence[Any]) -> Optional[str]:
        for token in tokens:
            name = rule_name(token)
            if name == 'date':
                return 'date'
            if name == 'datetime':
                return 'date-time'
            if name == 'date_format':
                return 'date-time' if has_time_component(rule_parameters(token)) else 'date'
        return None


def has_time_component(date_format: str) -> bool:
    escaped = False
    for char in date_format:
        if escaped:
            escaped = False
            # A literal T separator still marks a date-time
            if char == 'T':
                return True
            continue
        if char == '\\':
            escaped = True
        elif char in TIME_SPECIFIERS:
            return True
    return False


class PasswordRuleAnalyzer:
    """Read the requirements of a Password::min(8)->mixedCase()... chain"""

    def find_password_token(self, tokens: Sequence[Any]) -> Optional[str]:
        for token in tokens:
            if is_password_token(token):
                return str(token)
        return None

    def analyze(self, tokens: Sequence[Any]) -> Optional[PasswordRuleInfo]:
        token = self.find_password_token(tokens)
        if token is None:
            return None
        return self.analyze_expression(token)

    def analyze_expression(self, expression: str) -> PasswordRuleInfo:
        text = re.sub(r'\s+', '', expression)

        min_match = _PASSWORD_MIN.search(text) or _PASSWORD_CONSTRUCTOR.search(text)
        max_match = _PASSWORD_MAX.search(text)

        return PasswordRuleInfo(
            min_length=int(min_match.group(1)) if min_match else None,
            max_length=int(max_match.group(1)) if max_match else None,
            requires_mixed_case='->mixedCase(' in text,
            requires_numbers='->numbers(' in text,
            requires_symbols='->symbols(' in text,
            requires_letters='->letters(' in text,
            requires_uncompromised='->uncompromised(' in text,
        )
