"""
Deterministic candidate extraction from raw tender text.

Pass 1 runs every pattern in EXTRACTION_PATTERNS over the text. Reference
number matches are screened by the phone and quantity guards, then their
subtype is resolved with strict precedence:

    customer value-pattern > customer regex > customer label > built-in label

Pass 2 sorts by position and drops overlapping, weaker spans. Every customer
rule evaluation is recorded in the returned audit log.
"""

import logging
import re
from collections import Counter
from dataclasses import dataclass

from tender_engine.config import Settings, settings as default_settings
from tender_engine.document_extractor.patterns import (
    EXTRACTION_PATTERNS,
    LABEL_CONTEXT_KEYWORDS,
    LABEL_CONTEXT_TOKENS,
    REFERENCE_LABELS,
    ExtractionPattern,
)
from tender_engine.document_extractor.phone_guard import (
    has_non_reference_label,
    is_definitely_phone,
    phone_guard_applies,
)
from tender_engine.document_extractor.rules import CompiledRuleSet, scope_allows
from tender_engine.document_extractor.segmenter import (
    SegmentationResult,
    block_at,
    segment_document,
)
from tender_engine.schemas.candidate import (
    Candidate,
    CandidatePosition,
    CandidateType,
    ExtractionMetadata,
    ExtractionResult,
    ReferenceSubtype,
    RuleAuditEntry,
    RuleAuditLog,
)
from tender_engine.schemas.customer import CustomerProfile

logger = logging.getLogger("tender.extractor")

_STRIP_COMMAS = (CandidateType.WEIGHT, CandidateType.PIECES)


@dataclass
class SubtypeResolution:
    subtype: ReferenceSubtype | None
    label_hint: str | None = None
    source: str = "none"
    value_rule_index: int | None = None

    @property
    def from_customer_rule(self) -> bool:
        return self.source in ("value_pattern", "customer_regex", "customer_label")


def get_context(text: str, start: int, end: int, window: int = 40) -> str:
    """Text around a span with whitespace collapsed and ``...`` where truncated."""
    context_start = max(0, start - window)
    context_end = min(len(text), end + window)
    context = text[context_start:context_end]
    if context_start > 0:
        context = "..." + context
    if context_end < len(text):
        context = context + "..."
    return re.sub(r"\s+", " ", context).strip()


def _last_match(regex: re.Pattern, text: str) -> re.Match | None:
    last = None
    for last in regex.finditer(text):
        pass
    return last


def filter_overlapping(candidates: list[Candidate]) -> list[Candidate]:
    """Drop candidates shadowed by an overlapping, already-retained candidate.

    Expects candidates sorted by start position. A candidate is dropped when a
    retained overlap has strictly higher confidence, or when the retained one is
    a reference number and the new one is not.
    """
    retained: list[Candidate] = []
    for candidate in candidates:
        shadowed = False
        for kept in retained:
            if not candidate.overlaps(kept):
                continue
            if kept.confidence.rank > candidate.confidence.rank:
                shadowed = True
                break
            if (
                kept.type == CandidateType.REFERENCE_NUMBER
                and candidate.type != CandidateType.REFERENCE_NUMBER
            ):
                shadowed = True
                break
        if not shadowed:
            retained.append(candidate)
    return retained


class CandidateExtractor:
    """Finds typed, positioned spans in tender text and classifies reference numbers."""

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or default_settings

    def extract(
        self, text: str, customer_profile: CustomerProfile | None = None
    ) -> ExtractionResult:
        rules = CompiledRuleSet.from_profile(customer_profile)
        audit = RuleAuditLog()
        customer_resolved: dict[tuple[int, int], SubtypeResolution] = {}

        for error in rules.rejected:
            audit.skipped.append(RuleAuditEntry(
                rule=f"{error.rule_kind}:{error.pattern}",
                candidate="*",
                reason=f"invalid_pattern: {error.error}",
            ))
        for _, pattern in rules.deprecated:
            audit.skipped.append(RuleAuditEntry(
                rule=f"value_pattern:{pattern}", candidate="*", reason="deprecated",
            ))

        segmentation = segment_document(text, self.settings)
        seen: set[tuple[int, int]] = set()
        candidates: list[Candidate] = []

        for pattern in EXTRACTION_PATTERNS:
            for match in pattern.regex.finditer(text):
                span = match.span()
                if span in seen:
                    continue

                group = pattern.value_group or 0
                raw_value = match.group(group)
                if raw_value is None:
                    continue
                value = raw_value.strip()
                value_start = match.start(group)
                if pattern.type in _STRIP_COMMAS:
                    value = value.replace(",", "")

                resolution = SubtypeResolution(subtype=pattern.subtype)
                if pattern.type == CandidateType.REFERENCE_NUMBER:
                    if self._is_rejected_reference(value, text, match, pattern, audit):
                        continue
                    resolution = self._resolve_subtype(
                        value, value_start, match, pattern, text,
                        segmentation, rules, audit,
                    )
                    if resolution.from_customer_rule:
                        customer_resolved[span] = resolution

                seen.add(span)
                candidates.append(Candidate(
                    type=pattern.type,
                    value=value,
                    raw_match=match.group(0),
                    label_hint=resolution.label_hint,
                    subtype=resolution.subtype,
                    confidence=pattern.confidence,
                    position=CandidatePosition(start=span[0], end=span[1]),
                    context=get_context(text, span[0], span[1], self.settings.context_window),
                ))

        candidates.sort(key=lambda c: c.position.start)
        filtered = filter_overlapping(candidates)

        # Only rules that classified a surviving candidate count as applied
        value_rule_hits: Counter = Counter()
        applied_customer_rules = 0
        for candidate in filtered:
            resolution = customer_resolved.get((candidate.position.start, candidate.position.end))
            if resolution is None:
                continue
            applied_customer_rules += 1
            if resolution.value_rule_index is not None:
                value_rule_hits[resolution.value_rule_index] += 1

        logger.info(
            "Extracted %d candidates (%d before overlap filter), %d customer rule applications",
            len(filtered), len(candidates), applied_customer_rules,
        )
        return ExtractionResult(
            candidates=filtered,
            metadata=ExtractionMetadata(
                version=self.settings.extractor_version,
                text_length=len(text),
                customer_id=rules.customer_id,
                applied_customer_rules=applied_customer_rules,
                value_rule_hits=dict(value_rule_hits),
                audit_log=audit,
            ),
        )

    # --- Reference guards ---

    def _is_rejected_reference(
        self,
        value: str,
        text: str,
        match: re.Match,
        pattern: ExtractionPattern,
        audit: RuleAuditLog,
    ) -> bool:
        cfg = self.settings
        position = match.start()

        is_phone, reason = is_definitely_phone(
            value, text, position,
            label_lookback=cfg.phone_label_lookback,
            adjacency_window=cfg.phone_adjacency_window,
        )
        if is_phone:
            if phone_guard_applies(reason, explicitly_labeled=pattern.is_explicitly_labeled):
                audit.skipped.append(RuleAuditEntry(
                    rule="phone_exclusion", candidate=value, reason=reason,
                ))
                return True
            logger.debug("Trusting explicit label over phone signal %s for %r", reason, value)

        if not cfg.min_ref_length <= len(value) <= cfg.max_ref_length:
            audit.skipped.append(RuleAuditEntry(
                rule="length_bounds",
                candidate=value,
                reason=f"length {len(value)} outside [{cfg.min_ref_length}, {cfg.max_ref_length}]",
            ))
            return True

        label = has_non_reference_label(text, position, lookback=cfg.non_reference_lookback)
        if label:
            audit.skipped.append(RuleAuditEntry(
                rule="non_reference_label", candidate=value, reason=f"preceded by {label.strip()!r}",
            ))
            return True
        return False

    # --- Subtype precedence ---

    def _resolve_subtype(
        self,
        value: str,
        value_start: int,
        match: re.Match,
        pattern: ExtractionPattern,
        text: str,
        segmentation: SegmentationResult,
        rules: CompiledRuleSet,
        audit: RuleAuditLog,
    ) -> SubtypeResolution:
        cfg = self.settings
        lookback = text[max(0, value_start - cfg.max_label_distance):value_start]

        # 1. Customer value-pattern rules, scope-checked against the block
        if rules.value_rules:
            block = block_at(text, match.start(), segmentation, cfg)
            for rule in rules.value_rules:
                if not rule.regex.search(value):
                    continue
                rule_name = f"value_pattern:{rule.regex.pattern}"
                if not scope_allows(rule.scope, block):
                    audit.skipped.append(RuleAuditEntry(
                        rule=rule_name,
                        candidate=value,
                        reason=f"scope_mismatch: scope={rule.scope.value}, block={block.value}",
                    ))
                    continue
                audit.applied.append(RuleAuditEntry(
                    rule=rule_name,
                    candidate=value,
                    reason=f"block={block.value}, scope={rule.scope.value}",
                ))
                return SubtypeResolution(
                    rule.subtype, self._label_before(lookback), "value_pattern", rule.index
                )

        # 2. Customer regex rules, only with a label-like token nearby
        for rule in rules.regex_rules:
            if not rule.regex.search(value):
                continue
            rule_name = f"customer_regex:{rule.regex.pattern}"
            nearby = text[
                max(0, match.start() - cfg.regex_label_window_before):
                match.start() + len(value) + cfg.regex_label_window_after
            ]
            if LABEL_CONTEXT_TOKENS.search(nearby) or LABEL_CONTEXT_KEYWORDS.search(nearby):
                audit.applied.append(RuleAuditEntry(
                    rule=rule_name, candidate=value, reason="label_context_nearby",
                ))
                return SubtypeResolution(rule.subtype, self._label_before(lookback), "customer_regex")
            audit.skipped.append(RuleAuditEntry(
                rule=rule_name, candidate=value, reason="no_label_context_nearby",
            ))
            break

        # 3. Customer label rules, nearest label wins
        best = None
        for rule in rules.label_rules:
            found = _last_match(rule.regex, lookback)
            if found is None:
                continue
            distance = len(lookback) - found.end()
            if best is None or distance < best[0]:
                best = (distance, rule, found)
        if best is not None:
            distance, rule, found = best
            audit.applied.append(RuleAuditEntry(
                rule=f"customer_label:{rule.label}", candidate=value, reason=f"distance={distance}",
            ))
            return SubtypeResolution(rule.subtype, found.group(0).strip(), "customer_label")

        # 4. Built-in labels: the pattern's own label, else the nearest generic one
        if pattern.is_explicitly_labeled:
            own_label = text[match.start():value_start].strip().rstrip(":").strip()
            return SubtypeResolution(pattern.subtype, own_label or None, "explicit_label")

        generic = self._nearest_generic_label(lookback)
        if generic is not None:
            return SubtypeResolution(generic[1], generic[0], "generic_label")

        return SubtypeResolution(pattern.subtype)

    @staticmethod
    def _nearest_generic_label(lookback: str) -> tuple[str, ReferenceSubtype] | None:
        best = None
        for regex, subtype in REFERENCE_LABELS:
            found = _last_match(regex, lookback)
            if found is None:
                continue
            if best is None or found.end() > best[0]:
                best = (found.end(), found.group(0).strip(), subtype)
        if best is None:
            return None
        return best[1], best[2]

    def _label_before(self, lookback: str) -> str | None:
        generic = self._nearest_generic_label(lookback)
        return generic[0] if generic else None


def extract_candidates(
    text: str,
    customer_profile: CustomerProfile | None = None,
    settings: Settings | None = None,
) -> ExtractionResult:
    """Convenience wrapper around CandidateExtractor.extract."""
    return CandidateExtractor(settings).extract(text, customer_profile)
