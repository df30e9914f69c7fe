"""Required / conditionally-required checks over a field's token list"""

from typing import Any, List, Sequence

from .models import ConditionalRuleDetail
from .rule_tokens import CONDITIONAL_RULE_PATTERN, normalize_rules, rule_name, split_conditional_rule


class RuleRequirementAnalyzer:
    """Decide required-ness from rule tokens; stateless"""

    def is_required(self, tokens: Sequence[Any]) -> bool:
        """Bare `required` only; required_if and friends don't count"""
        return any(rule_name(t) == 'required' for t in tokens)

    def has_conditional_required(self, tokens: Sequence[Any]) -> bool:
        for token in tokens:
            name = rule_name(token)
            if name.startswith('required_') and CONDITIONAL_RULE_PATTERN.match(name):
                return True
        return False

    def has_exclude(self, tokens: Sequence[Any]) -> bool:
        """Bare `exclude`; exclude_if and friends keep the field"""
        return any(rule_name(t) == 'exclude' for t in tokens)

    def extract_conditional_details(self, tokens: Sequence[Any]) -> List[ConditionalRuleDetail]:
        details = []
        for token in tokens:
            rule_type, parameters = split_conditional_rule(token)
            if rule_type:
                details.append(ConditionalRuleDetail(rule_type, parameters, str(token)))
        return details

    def is_required_in_any_condition(self, branch_rules: Sequence[Any]) -> bool:
        """True if at least one branch's rules make the field required"""
        return any(self.is_required(normalize_rules(rules)) for rules in branch_rules)

    def is_required_in_all_conditions(self, branch_rules: Sequence[Any]) -> bool:
        if not branch_rules:
            return False
        return all(self.is_required(normalize_rules(rules)) for rules in branch_rules)
