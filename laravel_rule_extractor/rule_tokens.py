"""
Rule token normalization and the shared rule-name tables.

A field's rules arrive as a pipe string ('required|max:255'), a list
(['required', Rule::enum(...)]) or a single structured token. Everything
downstream works on the flat token list returned by `normalize_rules`.
"""

import re
from typing import Any, List, Tuple

from .models import EnumToken, FileRuleToken, RawExpression

# required_if, prohibited_unless, exclude_with_all, ...
CONDITIONAL_RULE_PATTERN = re.compile(
    r'^(required|prohibited|exclude)_(if|unless|with|without|with_all|without_all)$'
)

FILE_RULES = ('file', 'image', 'mimes', 'mimetypes')
BOOLEAN_RULES = ('boolean', 'bool', 'accepted', 'accepted_if', 'declined', 'declined_if')
INTEGER_RULES = ('integer', 'int')
NUMBER_RULES = ('numeric', 'decimal')


def normalize_rules(value: Any) -> List[Any]:
    """Flatten any rule value into a list of tokens"""
    tokens: List[Any] = []
    _collect(value, tokens)
    return tokens


def _collect(value: Any, tokens: List[Any]):
    if value is None:
        return
    if isinstance(value, (EnumToken, FileRuleToken, RawExpression)):
        tokens.append(value)
    elif isinstance(value, str):
        for part in value.split('|'):
            part = part.strip()
            if part:
                tokens.append(part)
    elif isinstance(value, dict):
        if value.get('type') == 'enum' and value.get('class'):
            tokens.append(EnumToken(str(value['class'])))
    elif isinstance(value, (list, tuple)):
        for item in value:
            # List entries are single rules, even when they contain '|'
            if isinstance(item, str) and not isinstance(item, RawExpression):
                item = item.strip()
                if item:
                    tokens.append(item)
            else:
                _collect(item, tokens)
    elif isinstance(value, bool):
        return
    elif isinstance(value, (int, float)):
        tokens.append(str(value))


def rule_name(token: Any) -> str:
    """'max:255' -> 'max'"""
    if isinstance(token, EnumToken):
        return 'enum'
    if isinstance(token, FileRuleToken):
        return token.canonical()
    if isinstance(token, RawExpression):
        return ''
    if not isinstance(token, str):
        return ''
    return token.split(':', 1)[0].strip().lower()


def rule_parameters(token: Any) -> str:
    """'between:1,10' -> '1,10'"""
    if isinstance(token, str) and not isinstance(token, RawExpression) and ':' in token:
        return token.split(':', 1)[1].strip()
    return ''


def rule_parameter_list(token: Any) -> List[str]:
    params = rule_parameters(token)
    if not params:
        return []
    return [p.strip() for p in params.split(',')]


def has_rule(tokens: List[Any], *names: str) -> bool:
    return any(rule_name(t) in names for t in tokens)


def find_rule(tokens: List[Any], *names: str):
    """First token whose name is one of `names`"""
    for token in tokens:
        if rule_name(token) in names:
            return token
    return None


def split_conditional_rule(token: Any) -> Tuple[str, str]:
    """'required_if:type,business' -> ('required_if', 'type,business'), else ('', '')"""
    name = rule_name(token)
    if CONDITIONAL_RULE_PATTERN.match(name):
        return name, rule_parameters(token)
    return '', ''


def parse_number(text: str):
    """'5' -> 5, '2.5' -> 2.5, junk -> None"""
    text = (text or '').strip()
    if not text:
        return None
    try:
        if '.' in text or 'e' in text.lower():
            return float(text)
        return int(text)
    except ValueError:
        return None
