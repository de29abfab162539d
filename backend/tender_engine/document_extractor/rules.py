"""
Load-time compilation of customer reference rules.

Customer patterns arrive as plain strings. They are compiled once per profile
snapshot; a pattern that fails to compile is recorded as rejected and never
reaches the extractor's match loop.
"""

import logging
import re
from dataclasses import dataclass, field

from tender_engine.schemas.candidate import BlockType, ReferenceSubtype
from tender_engine.schemas.customer import CustomerProfile, RuleScope, RuleStatus

logger = logging.getLogger("tender.rules")


def compile_rule_pattern(pattern: str) -> tuple[re.Pattern | None, str | None]:
    """Compile a customer pattern case-insensitively.

    Returns:
        Tuple of (compiled, error). Exactly one of the two is None.
    """
    try:
        return re.compile(pattern, re.IGNORECASE), None
    except re.error as e:
        return None, str(e)


def scope_allows(scope: RuleScope, block: BlockType) -> bool:
    """Whether a rule with ``scope`` may apply to a value found in ``block``.

    Header-scoped rules also apply in unknown blocks, since text before any
    recognizable section usually is the header.
    """
    if scope == RuleScope.GLOBAL:
        return True
    if scope.value == block.value:
        return True
    return scope == RuleScope.HEADER and block == BlockType.UNKNOWN


@dataclass(frozen=True)
class CompiledValueRule:
    index: int
    regex: re.Pattern
    subtype: ReferenceSubtype
    scope: RuleScope
    priority: int

    @property
    def is_scoped(self) -> bool:
        return self.scope != RuleScope.GLOBAL


@dataclass(frozen=True)
class CompiledRegexRule:
    index: int
    regex: re.Pattern
    subtype: ReferenceSubtype


@dataclass(frozen=True)
class CompiledLabelRule:
    index: int
    label: str
    regex: re.Pattern
    subtype: ReferenceSubtype


@dataclass(frozen=True)
class RuleCompileError:
    rule_kind: str
    index: int
    pattern: str
    error: str


@dataclass
class CompiledRuleSet:
    """Validated, compiled, precedence-ordered view of a customer profile."""

    customer_id: str | None = None
    value_rules: list[CompiledValueRule] = field(default_factory=list)
    regex_rules: list[CompiledRegexRule] = field(default_factory=list)
    label_rules: list[CompiledLabelRule] = field(default_factory=list)
    deprecated: list[tuple[int, str]] = field(default_factory=list)
    rejected: list[RuleCompileError] = field(default_factory=list)

    @classmethod
    def from_profile(cls, profile: CustomerProfile | None) -> "CompiledRuleSet":
        if profile is None:
            return cls()

        ruleset = cls(customer_id=profile.id)

        for i, rule in enumerate(profile.reference_value_rules):
            if rule.status != RuleStatus.ACTIVE:
                ruleset.deprecated.append((i, rule.pattern))
                continue
            compiled, error = compile_rule_pattern(rule.pattern)
            if error:
                ruleset.rejected.append(RuleCompileError("value_pattern", i, rule.pattern, error))
                continue
            ruleset.value_rules.append(
                CompiledValueRule(i, compiled, rule.subtype, rule.scope, rule.priority)
            )

        # Highest priority first, scoped before global on ties; sort is stable
        ruleset.value_rules.sort(key=lambda r: (-r.priority, not r.is_scoped))

        for i, rule in enumerate(profile.reference_regex_rules):
            compiled, error = compile_rule_pattern(rule.pattern)
            if error:
                ruleset.rejected.append(RuleCompileError("regex", i, rule.pattern, error))
                continue
            ruleset.regex_rules.append(CompiledRegexRule(i, compiled, rule.subtype))

        for i, rule in enumerate(profile.reference_label_rules):
            label_regex = re.compile(rf"\b{re.escape(rule.label)}\s*[#:]?\s*", re.IGNORECASE)
            ruleset.label_rules.append(CompiledLabelRule(i, rule.label, label_regex, rule.subtype))

        if ruleset.rejected:
            logger.warning(
                "Customer %s: %d rule pattern(s) failed to compile and will be skipped",
                profile.id, len(ruleset.rejected),
            )
        return ruleset
