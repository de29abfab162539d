"""
Correction learning.

Compares the shipment a classifier drafted with the one a human approved and
turns reference reclassifications into rule suggestions. A value-pattern rule
is tried first; when it is unsafe the detector falls back to a label rule
read from the text in front of the value, then to a coarse regex. Cargo
corrections are reported as raw learning events only.

Suggestions are never written to a customer profile here. Approval and
persistence belong to the caller.
"""

import logging
import re
from dataclasses import dataclass

from tender_engine.config import Settings, settings as default_settings
from tender_engine.document_extractor.segmenter import block_at, segment_document
from tender_engine.learning.safety import (
    assess_value_pattern,
    derive_legacy_regex,
    exclusion_signature,
)
from tender_engine.schemas.candidate import Candidate, CandidateType, ReferenceSubtype
from tender_engine.schemas.customer import (
    ReferenceLabelRule,
    ReferenceRegexRule,
    ReferenceValueRule,
    RuleScope,
)
from tender_engine.schemas.learning import (
    LearnableFieldType,
    LearningEvent,
    SuggestedRule,
    SuggestedRuleType,
)
from tender_engine.schemas.shipment import (
    ReferenceNumber,
    StructuredShipment,
    normalize_reference_value,
)

logger = logging.getLogger("tender.learning")

# Words that never make a usable reference label
LABEL_DENYLIST = ("total", "phone", "cell", "fax", "ext", "miles", "cases", "contact")

# Label-before-value shapes, tried in order: "Release #: X", "Release: X", "Release X"
_LABEL_WORDS = r"\b([A-Za-z][A-Za-z\s]{0,15})"
LABEL_TEMPLATES = (
    _LABEL_WORDS + r"\s*#\s*:?\s*",
    _LABEL_WORDS + r"\s*:\s*",
    _LABEL_WORDS + r"\s+",
)

CONTEXT_BEFORE = 50
CONTEXT_AFTER = 30
NEARBY_BEFORE = 40
NEARBY_AFTER = 20


def clean_label(label: str | None) -> str | None:
    """Collapse whitespace and strip trailing ``#``/``:``; None if unusable."""
    if not label:
        return None
    cleaned = re.sub(r"[\s#:]+$", "", " ".join(label.split()))
    if len(cleaned) < 2:
        return None
    lowered = cleaned.lower()
    if any(re.search(rf"\b{word}\b", lowered) for word in LABEL_DENYLIST):
        return None
    return cleaned


def extract_label_from_context(value: str, context: str) -> str | None:
    """Read the label printed in front of a value, e.g. "Release" in "Release #: TR123"."""
    if not context:
        return None
    escaped = re.escape(value)
    for template in LABEL_TEMPLATES:
        match = re.search(template + escaped + r"(?![A-Za-z0-9])", context, re.IGNORECASE)
        if match:
            label = clean_label(match.group(1))
            if label:
                return label
    return None


def text_window(text: str, start: int, end: int, before: int, after: int, *, ellipsis: bool = True) -> str:
    lo = max(0, start - before)
    hi = min(len(text), end + after)
    snippet = " ".join(text[lo:hi].split())
    if ellipsis:
        if lo > 0:
            snippet = "..." + snippet
        if hi < len(text):
            snippet = snippet + "..."
    return snippet


def _occurrences(value: str, text: str) -> list[tuple[int, int]]:
    if not value:
        return []
    return [(m.start(), m.end()) for m in re.finditer(re.escape(value), text, re.IGNORECASE)]


def _reference_candidates(value: str, candidates: list[Candidate]) -> list[Candidate]:
    key = normalize_reference_value(value)
    return [
        c for c in candidates
        if c.type == CandidateType.REFERENCE_NUMBER and normalize_reference_value(c.value) == key
    ]


@dataclass
class ReferenceChange:
    """A reference whose subtype differs between the draft and the approved shipment."""

    path: str
    value: str
    original_subtype: ReferenceSubtype | None
    final_subtype: ReferenceSubtype

    @property
    def was_unknown(self) -> bool:
        return self.original_subtype in (None, ReferenceSubtype.UNKNOWN)


def _reference_lists(shipment: StructuredShipment) -> list[tuple[str, list[ReferenceNumber]]]:
    lists = [("reference_numbers", shipment.reference_numbers)]
    for i, stop in enumerate(shipment.stops):
        lists.append((f"stops[{i}].reference_numbers", stop.reference_numbers))
    return lists


def find_reference_changes(original: StructuredShipment, final: StructuredShipment) -> list[ReferenceChange]:
    """Pair final references with their drafted counterparts by normalized value.

    A reference is looked up in the same list first (same stop, or the
    shipment-level list), then anywhere in the draft, since normalization may
    have moved it. A reference the draft never had counts as changed.
    """
    original_lists = dict(_reference_lists(original))
    anywhere: dict[str, ReferenceNumber] = {}
    for _, refs in _reference_lists(original):
        for ref in refs:
            anywhere.setdefault(ref.normalized_value, ref)

    changes = []
    for prefix, refs in _reference_lists(final):
        same_list = {r.normalized_value: r for r in reversed(original_lists.get(prefix, []))}
        for i, ref in enumerate(refs):
            if ref.type == ReferenceSubtype.UNKNOWN:
                continue
            before = same_list.get(ref.normalized_value) or anywhere.get(ref.normalized_value)
            if before is not None and before.type == ref.type:
                continue
            changes.append(ReferenceChange(
                path=f"{prefix}[{i}].type",
                value=ref.value.strip(),
                original_subtype=before.type if before else None,
                final_subtype=ref.type,
            ))
    return changes


class LearningDetector:
    """Turns human corrections into rule suggestions and learning events."""

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or default_settings

    def detect_reclassifications(
        self,
        original: StructuredShipment,
        final: StructuredShipment,
        candidates: list[Candidate],
        original_text: str,
    ) -> list[SuggestedRule]:
        """Suggest one rule per reclassified reference, deduplicated.

        Args:
            original: Shipment as the classifier drafted it
            final: Shipment as the human approved it
            candidates: Extractor output for the tender
            original_text: Tender text

        Returns:
            Suggestions awaiting approval, in document order.
        """
        segmentation = segment_document(original_text, self.settings)
        suggestions = []
        for change in find_reference_changes(original, final):
            suggestion = self._suggest(change, candidates, original_text, segmentation)
            if suggestion is not None:
                suggestions.append(suggestion)

        deduped = dedupe_suggestions(suggestions)
        logger.info(
            "Detected %d rule suggestions from %d reclassified references",
            len(deduped), len(suggestions),
        )
        return deduped

    def _suggest(self, change, candidates, text, segmentation) -> SuggestedRule | None:
        value = change.value
        matching = _reference_candidates(value, candidates)
        spans = _occurrences(value, text) or [(c.position.start, c.position.end) for c in matching]
        if not spans:
            logger.info("No context found for %r (%s), no suggestion", value, change.path)
            return None

        scopes = {block_at(text, start, segmentation, self.settings) for start, _ in spans}
        contexts = [c.context for c in matching if c.context]
        contexts.extend(text_window(text, s, e, CONTEXT_BEFORE, CONTEXT_AFTER, ellipsis=False) for s, e in spans)

        labels = {clean_label(c.label_hint) for c in matching}
        labels.update(extract_label_from_context(value, ctx) for ctx in contexts)
        # "Pickup Release" and "Release" count as one label
        labels = {label.lower().split()[-1] for label in labels if label}

        context = contexts[0] if matching and matching[0].context else (
            text_window(text, *spans[0], CONTEXT_BEFORE, CONTEXT_AFTER)
        )

        assessment = assess_value_pattern(
            value,
            was_unknown=change.was_unknown,
            scope_count=len(scopes),
            label_count=len(labels),
            candidates=candidates,
            text=text,
            settings=self.settings,
        )
        if assessment.accepted:
            logger.info(
                "Value pattern %s for %r accepted (score %d, %d collisions)",
                assessment.pattern, value, assessment.score, assessment.collision_count,
            )
            return SuggestedRule(
                type=SuggestedRuleType.VALUE_PATTERN,
                pattern=assessment.pattern,
                subtype=change.final_subtype,
                scope=RuleScope.GLOBAL,
                example_value=value,
                context=context,
                match_count=assessment.collision_count,
                example_matches=assessment.example_matches,
                score=assessment.score,
            )
        logger.info("Value pattern for %r rejected: %s", value, assessment.rejection)
        logger.debug("Value pattern assessment: %s", assessment.to_dict())

        label = self._find_label(value, matching, contexts)
        if label:
            return SuggestedRule(
                type=SuggestedRuleType.LABEL,
                label=label,
                subtype=change.final_subtype,
                example_value=value,
                context=context,
            )

        if exclusion_signature(value) is None:
            pattern = derive_legacy_regex(value)
            if pattern:
                return SuggestedRule(
                    type=SuggestedRuleType.REGEX,
                    pattern=pattern,
                    subtype=change.final_subtype,
                    example_value=value,
                    context=context,
                )

        logger.info("No safe rule for %r (%s), no suggestion", value, change.path)
        return None

    @staticmethod
    def _find_label(value: str, matching: list[Candidate], contexts: list[str]) -> str | None:
        for candidate in matching:
            label = clean_label(candidate.label_hint)
            if label:
                return label
        for ctx in contexts:
            label = extract_label_from_context(value, ctx)
            if label:
                return label
        return None

    def detect_all_edits(
        self,
        original: StructuredShipment,
        final: StructuredShipment,
        candidates: list[Candidate],
        original_text: str,
    ) -> list[LearningEvent]:
        events = []
        for change in find_reference_changes(original, final):
            matching = _reference_candidates(change.value, candidates)
            spans = _occurrences(change.value, original_text)
            context = {
                "value": change.value,
                "original_subtype": change.original_subtype.value if change.original_subtype else None,
                "label_hint": matching[0].label_hint if matching else None,
                "nearby_text": text_window(original_text, *spans[0], NEARBY_BEFORE, NEARBY_AFTER) if spans else None,
            }
            events.append(LearningEvent(
                field_type=LearnableFieldType.REFERENCE_SUBTYPE,
                field_path=change.path,
                before_value=context["original_subtype"],
                after_value=change.final_subtype.value,
                context={k: v for k, v in context.items() if v is not None},
            ))

        events.extend(self._cargo_events(original, final))
        logger.info("Detected %d learning events", len(events))
        return events

    @staticmethod
    def _cargo_events(original: StructuredShipment, final: StructuredShipment) -> list[LearningEvent]:
        events = []
        before_cargo, after_cargo = original.cargo, final.cargo
        before_temp, after_temp = before_cargo.temperature, after_cargo.temperature
        temp_value = after_temp.value if after_temp else None
        temp_mode = after_temp.mode.value if after_temp and after_temp.mode else None

        if after_cargo.commodity and _squash(after_cargo.commodity) != _squash(before_cargo.commodity):
            events.append(LearningEvent(
                field_type=LearnableFieldType.CARGO_COMMODITY,
                field_path="cargo.commodity",
                before_value=before_cargo.commodity,
                after_value=after_cargo.commodity,
                context={k: v for k, v in (
                    ("temperature_value", temp_value), ("temperature_mode", temp_mode),
                ) if v is not None},
            ))

        before_mode = before_temp.mode.value if before_temp and before_temp.mode else None
        if temp_mode and temp_mode != before_mode:
            events.append(LearningEvent(
                field_type=LearnableFieldType.TEMPERATURE_MODE,
                field_path="cargo.temperature.mode",
                before_value=before_mode,
                after_value=temp_mode,
                context={"temperature_value": temp_value} if temp_value is not None else {},
            ))

        before_weight, after_weight = before_cargo.weight.value, after_cargo.weight.value
        if before_weight and after_weight and after_weight > 0 and before_weight != after_weight:
            events.append(LearningEvent(
                field_type=LearnableFieldType.CARGO_WEIGHT,
                field_path="cargo.weight.value",
                before_value=before_weight,
                after_value=after_weight,
                context={"unit": after_cargo.weight.unit} if after_cargo.weight.unit else {},
            ))
        return events


def _squash(value: str | None) -> str:
    return " ".join((value or "").split()).lower()


def dedupe_suggestions(suggestions: list[SuggestedRule]) -> list[SuggestedRule]:
    seen: set[str] = set()
    unique = []
    for suggestion in suggestions:
        if suggestion.dedup_key in seen:
            continue
        seen.add(suggestion.dedup_key)
        unique.append(suggestion)
    return unique


def detect_reclassifications(
    original: StructuredShipment,
    final: StructuredShipment,
    candidates: list[Candidate],
    original_text: str,
    settings: Settings | None = None,
) -> list[SuggestedRule]:
    return LearningDetector(settings).detect_reclassifications(original, final, candidates, original_text)


def detect_all_edits(
    original: StructuredShipment,
    final: StructuredShipment,
    candidates: list[Candidate],
    original_text: str,
    settings: Settings | None = None,
) -> list[LearningEvent]:
    return LearningDetector(settings).detect_all_edits(original, final, candidates, original_text)


def is_rule_already_learned(
    suggestion: SuggestedRule,
    label_rules: list[ReferenceLabelRule],
    regex_rules: list[ReferenceRegexRule],
    value_rules: list[ReferenceValueRule] | None = None,
) -> bool:
    """Whether a customer profile already holds an equivalent rule.

    Label and regex rules compare case-insensitively. Value rules need the
    same pattern and subtype, and a scope that covers the suggestion's; a
    global rule covers every scope.
    """
    if suggestion.type == SuggestedRuleType.LABEL:
        wanted = (suggestion.label or "").lower()
        return any(r.label.lower() == wanted and r.subtype == suggestion.subtype for r in label_rules)

    if suggestion.type == SuggestedRuleType.REGEX:
        wanted = (suggestion.pattern or "").lower()
        return any(r.pattern.lower() == wanted and r.subtype == suggestion.subtype for r in regex_rules)

    requested = suggestion.scope or RuleScope.GLOBAL
    return any(
        r.pattern == suggestion.pattern
        and r.subtype == suggestion.subtype
        and (r.scope == RuleScope.GLOBAL or r.scope == requested)
        for r in value_rules or []
    )


def suggestion_to_rule(
    suggestion: SuggestedRule,
) -> ReferenceLabelRule | ReferenceRegexRule | ReferenceValueRule:
    """Convert an approved suggestion into the profile rule record it describes."""
    if suggestion.type == SuggestedRuleType.LABEL:
        return ReferenceLabelRule(label=suggestion.label, subtype=suggestion.subtype)
    description = f"Learned from {suggestion.example_value}"
    if suggestion.type == SuggestedRuleType.REGEX:
        return ReferenceRegexRule(
            pattern=suggestion.pattern, subtype=suggestion.subtype, description=description
        )
    return ReferenceValueRule(
        pattern=suggestion.pattern,
        subtype=suggestion.subtype,
        scope=suggestion.scope or RuleScope.GLOBAL,
        description=description,
    )
