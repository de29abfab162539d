"""Tests for correction learning: pattern safety, rule suggestions and learning events."""

import logging

import pytest

from tender_engine.config import Settings
from tender_engine.document_extractor.extractor import extract_candidates
from tender_engine.learning.detector import (
    LearningDetector,
    clean_label,
    dedupe_suggestions,
    detect_all_edits,
    detect_reclassifications,
    extract_label_from_context,
    find_reference_changes,
    is_rule_already_learned,
    suggestion_to_rule,
)
from tender_engine.learning.safety import (
    COLLISION_SENTINEL,
    PatternAssessment,
    assess_value_pattern,
    collision_count,
    derive_legacy_regex,
    derive_value_pattern,
    exclusion_signature,
    low_entropy_reason,
    score_signals,
)
from tender_engine.schemas.candidate import ReferenceSubtype
from tender_engine.schemas.customer import (
    ReferenceLabelRule,
    ReferenceRegexRule,
    ReferenceValueRule,
    RuleScope,
)
from tender_engine.schemas.learning import (
    LearnableFieldType,
    SuggestedRule,
    SuggestedRuleType,
)
from tender_engine.schemas.shipment import (
    CargoDetails,
    CargoTemperature,
    CargoWeight,
    ReferenceNumber,
    Stop,
    StopType,
    StructuredShipment,
)


def global_refs(*refs) -> StructuredShipment:
    return StructuredShipment(
        reference_numbers=[ReferenceNumber(type=t, value=v) for t, v in refs]
    )


def suggest(text, value, before="unknown", after="po", settings=None):
    """Run the detector on a single global reference reclassification."""
    candidates = extract_candidates(text).candidates
    return detect_reclassifications(
        global_refs((before, value)), global_refs((after, value)), candidates, text, settings
    )


def value_pattern_suggestions(suggestions):
    return [s for s in suggestions if s.type == SuggestedRuleType.VALUE_PATTERN]


# ── Safety filters ──


class TestExclusionSignature:
    """Tests for exclusion_signature."""

    @pytest.mark.parametrize("value,expected", [
        ("555-123-4567", "phone"),
        ("(555) 123-4567", "phone"),
        ("01/15/2026", "date"),
        ("2026-01-15", "date"),
        ("14:30", "time"),
        ("8:00 AM", "time"),
        ("60601", "zip"),
        ("60601-1234", "zip"),
        ("ABC12345", None),
    ])
    def test_signatures(self, value, expected):
        assert exclusion_signature(value) == expected


class TestLowEntropy:
    """Tests for low_entropy_reason."""

    def test_few_distinct_chars(self):
        assert low_entropy_reason("AAAA11111111") == "few_distinct_chars"

    def test_repeated_run(self):
        assert low_entropy_reason("XAAAAB12") == "repeated_run"

    def test_ascending_run(self):
        assert low_entropy_reason("PO12345X") == "ascending_run"

    def test_varied_value(self):
        assert low_entropy_reason("ABC98765432") is None


class TestDeriveValuePattern:
    """Tests for value shape derivation."""

    def test_prefix_digits(self):
        assert derive_value_pattern("ABC98765432") == r"^ABC\d{8,}$"

    def test_prefix_separator_digits(self):
        assert derive_value_pattern("PO-83921047") == r"^PO[-_]?\d{8,}$"

    def test_prefix_mixed_tail(self):
        assert derive_value_pattern("ABCD12X496Y78") == r"^ABCD[A-Z0-9]{9,}$"

    def test_digits_letters_digits(self):
        assert derive_value_pattern("123-AB-4567") == r"^\d{3,}-AB-\d{4,}$"

    def test_digit_bound(self):
        assert derive_value_pattern("ABC98765432", digit_slack=2) == r"^ABC\d{6,}$"
        assert derive_value_pattern("ABC1234", min_digits=6) == r"^ABC\d{6,}$"

    @pytest.mark.parametrize("value", ["12345678", "AB123", "123-456-7890", "ABCDEFGH"])
    def test_no_shape(self, value):
        assert derive_value_pattern(value) is None


class TestDeriveLegacyRegex:
    """Tests for the coarse regex fallback."""

    def test_prefix_digits(self):
        assert derive_legacy_regex("AB12345") == r"^AB\d{4,}$"

    def test_dashed_digits(self):
        assert derive_legacy_regex("123-456") == r"^\d+-\d+$"
        assert derive_legacy_regex("12-34-56") == r"^\d+-\d+-\d+$"

    def test_long_prefix(self):
        assert derive_legacy_regex("ABCDEF1234") is None


class TestCollisionCount:
    """Tests for collision_count."""

    def test_counts_distinct_tokens(self):
        text = "ABC10001, ABC10002; abc10003 XYZ99999 abc10001"
        count, examples = collision_count(r"^ABC\d{5,}$", [], text)
        assert count == 3
        assert examples == ["ABC10001", "ABC10002", "abc10003"]

    def test_example_cap(self):
        text = " ".join(f"ABC1000{i}" for i in range(1, 8))
        count, examples = collision_count(r"^ABC\d{5,}$", [], text, max_examples=2)
        assert count == 7
        assert len(examples) == 2

    def test_invalid_pattern(self):
        assert collision_count("(", [], "anything") == (COLLISION_SENTINEL, [])


class TestAssessValuePattern:
    """Tests for assess_value_pattern."""

    def assess(self, value, text, was_unknown=True, settings=None, **kwargs):
        return assess_value_pattern(
            value,
            was_unknown=was_unknown,
            scope_count=kwargs.get("scope_count", 1),
            label_count=kwargs.get("label_count", 1),
            candidates=[],
            text=text,
            settings=settings,
        )

    def test_accepted(self):
        result = self.assess("ABC98765432", "Order #: ABC98765432")
        assert result.accepted
        assert result.score == 3
        assert result.collision_count == 1
        assert result.rejection is None

    def test_reclassified_known_type_scores_low(self):
        result = self.assess("ABC98765432", "Order #: ABC98765432", was_unknown=False)
        assert not result.accepted
        assert result.rejection.startswith("score 1")

    def test_multi_scope_and_labels_add_up(self):
        result = self.assess(
            "ABC98765432", "ABC98765432", was_unknown=False, scope_count=2, label_count=2,
        )
        assert result.accepted
        assert result.score == 4

    def test_too_short(self):
        result = self.assess("ABC1234", "Order #: ABC1234")
        assert result.pattern == r"^ABC\d{4,}$"
        assert result.rejection.startswith("too_short")

    def test_purely_numeric(self):
        result = self.assess("12345678901", "Order #: 12345678901")
        assert result.pattern is None
        assert result.rejection == "no_derivable_pattern"

    def test_low_entropy(self):
        result = self.assess("AAAA11111111", "Order #: AAAA11111111")
        assert result.rejection == "low_entropy: few_distinct_chars"

    def test_too_broad(self):
        text = "\n".join(f"Load ABC1000{i}" for i in range(1, 6))
        result = self.assess("ABC10003", text)
        assert result.collision_count == 5
        assert result.rejection.startswith("too_broad")
        assert result.signals["too_broad"]

    def test_score_threshold_configurable(self):
        strict = Settings(_env_file=None, min_value_pattern_score=5)
        result = self.assess("ABC98765432", "ABC98765432", settings=strict)
        assert result.rejection == "score 3 < 5"

    def test_to_dict_lists_present_signals(self):
        result = self.assess("ABC98765432", "ABC98765432")
        assert result.to_dict()["signals"] == {"was_unknown": True, "alphanumeric": True}


def test_score_signals():
    assert score_signals({"was_unknown": True, "alphanumeric": True, "purely_numeric": False}) == 3
    assert score_signals({"too_short": True, "low_entropy": True}) == -3


def test_pattern_assessment_needs_pattern():
    assert not PatternAssessment(value="x").accepted


# ── Labels ──


class TestLabels:
    """Tests for label cleanup and context reading."""

    def test_clean_label(self):
        assert clean_label("  Release  #: ") == "Release"
        assert clean_label("Pickup\nRelease") == "Pickup Release"
        assert clean_label("#") is None
        assert clean_label(None) is None

    def test_denylisted_labels(self):
        assert clean_label("Contact") is None
        assert clean_label("Total") is None
        assert clean_label("Fax #") is None

    @pytest.mark.parametrize("context,expected", [
        ("Release #: TR123456", "Release"),
        ("Release # TR123456", "Release"),
        ("Shipper Ref: TR123456", "Shipper Ref"),
        ("Load TR123456", "Load"),
        ("TR123456 assigned", None),
    ])
    def test_extract_label_from_context(self, context, expected):
        assert extract_label_from_context("TR123456", context) == expected

    def test_value_prefix_of_longer_token(self):
        assert extract_label_from_context("TR123456", "Release #: TR1234567") is None


# ── Change detection ──


class TestFindReferenceChanges:
    """Tests for pairing drafted and approved references."""

    def test_moved_and_retyped(self):
        original = global_refs(("unknown", "TRFR0010713"))
        final = StructuredShipment(stops=[
            Stop(type=StopType.PICKUP, reference_numbers=[ReferenceNumber(type="po", value="TRFR0010713")]),
        ])
        changes = find_reference_changes(original, final)
        assert len(changes) == 1
        assert changes[0].path == "stops[0].reference_numbers[0].type"
        assert changes[0].original_subtype == ReferenceSubtype.UNKNOWN
        assert changes[0].final_subtype == ReferenceSubtype.PO
        assert changes[0].was_unknown

    def test_unchanged_type(self):
        refs = global_refs(("bol", "121230"))
        assert find_reference_changes(refs, refs) == []

    def test_leading_zeros_match(self):
        assert find_reference_changes(global_refs(("bol", "0012345")), global_refs(("bol", "12345"))) == []

    def test_added_reference(self):
        changes = find_reference_changes(global_refs(), global_refs(("po", "PO-83921047")))
        assert changes[0].original_subtype is None
        assert changes[0].was_unknown

    def test_final_unknown_ignored(self):
        assert find_reference_changes(global_refs(("po", "123456")), global_refs(("unknown", "123456"))) == []


# ── Rule suggestions ──


class TestValuePatternSuggestions:
    """Reclassifications that yield a value-pattern rule."""

    def test_prefix_digits(self):
        suggestions = suggest("Order #: ABC98765432", "ABC98765432", after="order")
        assert len(suggestions) == 1
        assert suggestions[0].type == SuggestedRuleType.VALUE_PATTERN
        assert suggestions[0].pattern.startswith(r"^ABC\d{")
        assert suggestions[0].subtype == ReferenceSubtype.ORDER

    def test_prefix_separator(self):
        suggestions = suggest("PO #: PO-83921047", "PO-83921047")
        assert value_pattern_suggestions(suggestions)[0].pattern.startswith(r"^PO[-_]?\d")

    def test_mixed_tail(self):
        suggestions = suggest("Ref: ABCD12X496Y78", "ABCD12X496Y78", after="reference")
        assert value_pattern_suggestions(suggestions)[0].pattern.startswith(r"^ABCD[A-Z0-9]")

    def test_release_number(self):
        suggestions = suggest("Pickup\nRelease #: TRFR0010713\nDelivery", "TRFR0010713")
        assert len(suggestions) == 1
        assert suggestions[0].pattern == r"^TRFR\d{7,}$"
        assert suggestions[0].score >= 3

    def test_stop_value_gets_global_scope(self):
        text = "LOAD TENDER\nPickup\nAcme Foods\nRelease: XYZQ98716543\nDelivery\nBig Store\n"
        original = StructuredShipment(stops=[
            Stop(type=StopType.PICKUP, reference_numbers=[ReferenceNumber(value="XYZQ98716543")]),
            Stop(type=StopType.DELIVERY, sequence=2),
        ])
        final = StructuredShipment(stops=[
            Stop(type=StopType.PICKUP, reference_numbers=[ReferenceNumber(type="po", value="XYZQ98716543")]),
            Stop(type=StopType.DELIVERY, sequence=2),
        ])
        candidates = extract_candidates(text).candidates

        suggestions = LearningDetector().detect_reclassifications(original, final, candidates, text)

        assert len(suggestions) == 1
        assert suggestions[0].type == SuggestedRuleType.VALUE_PATTERN
        assert suggestions[0].pattern == r"^XYZQ\d{8,}$"
        assert suggestions[0].scope == RuleScope.GLOBAL

    def test_collision_metadata(self):
        suggestions = suggest("Reference: WXYZ98317654", "WXYZ98317654", after="order")
        suggestion = value_pattern_suggestions(suggestions)[0]
        assert suggestion.match_count == 1
        assert suggestion.example_matches == ["WXYZ98317654"]
        assert isinstance(suggestion.score, int)
        assert "WXYZ98317654" in suggestion.context

    def test_same_pattern_deduplicated(self):
        text = "Order #: ABC98765432\nOrder #: ABC98765433\n"
        original = global_refs(("unknown", "ABC98765432"), ("unknown", "ABC98765433"))
        final = global_refs(("order", "ABC98765432"), ("order", "ABC98765433"))
        suggestions = detect_reclassifications(original, final, [], text)
        assert len(suggestions) == 1
        assert suggestions[0].pattern == r"^ABC\d{8,}$"


class TestFallbackSuggestions:
    """Reclassifications where a value pattern would be unsafe."""

    def test_collisions_fall_back_to_label(self):
        text = "\n".join(f"Load ABC1000{i}" for i in range(1, 6))
        suggestions = suggest(text, "ABC10003", after="bol")
        assert value_pattern_suggestions(suggestions) == []
        assert suggestions[0].type == SuggestedRuleType.LABEL
        assert suggestions[0].label == "Load"

    def test_short_value_falls_back_to_label(self):
        suggestions = suggest("Order #: ABC1234", "ABC1234", after="order")
        assert value_pattern_suggestions(suggestions) == []
        assert suggestions[0].type == SuggestedRuleType.LABEL
        assert suggestions[0].label == "Order"

    @pytest.mark.parametrize("text,value", [
        ("Order #: AAAA11111111", "AAAA11111111"),
        ("Order #: 12345678901", "12345678901"),
    ])
    def test_no_value_pattern(self, text, value):
        assert value_pattern_suggestions(suggest(text, value, after="order")) == []

    def test_phone_shaped_value_gets_nothing(self):
        assert suggest("Contact: 123-456-7890", "123-456-7890") == []

    def test_legacy_regex_without_label(self):
        suggestions = suggest("AB12345 assigned to driver", "AB12345")
        assert len(suggestions) == 1
        assert suggestions[0].type == SuggestedRuleType.REGEX
        assert suggestions[0].pattern == r"^AB\d{4,}$"

    def test_value_absent_from_text_gets_nothing(self, caplog):
        with caplog.at_level(logging.INFO, logger="tender.learning"):
            suggestions = suggest("Load #: 121230 and nothing else", "QZ9182")
        assert suggestions == []
        assert any("No context found" in r.getMessage() for r in caplog.records)

    def test_no_changes_no_suggestions(self):
        text = "Order #: ABC98765432"
        assert suggest(text, "ABC98765432", before="order", after="order") == []


# ── Learning events ──


class TestDetectAllEdits:
    """Tests for raw learning events."""

    def test_reference_event(self):
        text = "Pickup\nRelease: TRFR0010713\n"
        candidates = extract_candidates(text).candidates
        events = detect_all_edits(
            global_refs(("unknown", "TRFR0010713")), global_refs(("po", "TRFR0010713")), candidates, text,
        )
        assert len(events) == 1
        event = events[0]
        assert event.field_type == LearnableFieldType.REFERENCE_SUBTYPE
        assert event.field_path == "reference_numbers[0].type"
        assert event.before_value == "unknown"
        assert event.after_value == "po"
        assert event.context["value"] == "TRFR0010713"
        assert event.context["label_hint"] == "Release"
        assert "TRFR0010713" in event.context["nearby_text"]

    def test_cargo_events(self):
        original = StructuredShipment(cargo=CargoDetails(
            commodity="Frozen Shrimp", weight=CargoWeight(value=40000.0, unit="lbs"),
        ))
        final = StructuredShipment(cargo=CargoDetails(
            commodity="Frozen Chicken",
            weight=CargoWeight(value=42000.0, unit="lbs"),
            temperature=CargoTemperature(value=0.0, mode="frozen"),
        ))

        events = detect_all_edits(original, final, [], "")

        by_type = {e.field_type: e for e in events}
        assert set(by_type) == {
            LearnableFieldType.CARGO_COMMODITY,
            LearnableFieldType.TEMPERATURE_MODE,
            LearnableFieldType.CARGO_WEIGHT,
        }
        assert by_type[LearnableFieldType.CARGO_COMMODITY].context == {
            "temperature_value": 0.0, "temperature_mode": "frozen",
        }
        mode_event = by_type[LearnableFieldType.TEMPERATURE_MODE]
        assert mode_event.field_type.value == "cargo_temp_mode"
        assert mode_event.before_value is None
        assert mode_event.after_value == "frozen"
        assert by_type[LearnableFieldType.CARGO_WEIGHT].context == {"unit": "lbs"}

    def test_cosmetic_commodity_edit_ignored(self):
        original = StructuredShipment(cargo=CargoDetails(commodity="frozen  shrimp"))
        final = StructuredShipment(cargo=CargoDetails(commodity="Frozen Shrimp"))
        assert detect_all_edits(original, final, [], "") == []

    def test_weight_filled_from_blank_ignored(self):
        original = StructuredShipment()
        final = StructuredShipment(cargo=CargoDetails(weight=CargoWeight(value=42000.0)))
        assert detect_all_edits(original, final, [], "") == []


# ── Rule bookkeeping ──


class TestIsRuleAlreadyLearned:
    """Tests for is_rule_already_learned."""

    def value_suggestion(self, scope=RuleScope.GLOBAL):
        return SuggestedRule(
            type=SuggestedRuleType.VALUE_PATTERN,
            pattern=r"^TRFR\d{7,}$",
            subtype="po",
            scope=scope,
            example_value="TRFR0010713",
        )

    def test_same_value_rule(self):
        rules = [ReferenceValueRule(pattern=r"^TRFR\d{7,}$", subtype="po")]
        assert is_rule_already_learned(self.value_suggestion(), [], [], rules)

    def test_different_scope(self):
        rules = [ReferenceValueRule(pattern=r"^TRFR\d{7,}$", subtype="po", scope="pickup")]
        assert not is_rule_already_learned(self.value_suggestion(RuleScope.DELIVERY), [], [], rules)
        assert not is_rule_already_learned(self.value_suggestion(), [], [], rules)

    def test_global_rule_covers_scoped_suggestion(self):
        rules = [ReferenceValueRule(pattern=r"^TRFR\d{7,}$", subtype="po")]
        assert is_rule_already_learned(self.value_suggestion(RuleScope.PICKUP), [], [], rules)

    def test_different_subtype(self):
        rules = [ReferenceValueRule(pattern=r"^TRFR\d{7,}$", subtype="order")]
        assert not is_rule_already_learned(self.value_suggestion(), [], [], rules)

    def test_label_case_insensitive(self):
        suggestion = SuggestedRule(type="label", label="release", subtype="po", example_value="X1")
        assert is_rule_already_learned(suggestion, [ReferenceLabelRule(label="Release", subtype="po")], [])
        assert not is_rule_already_learned(suggestion, [ReferenceLabelRule(label="Release", subtype="bol")], [])

    def test_regex(self):
        suggestion = SuggestedRule(type="regex", pattern=r"^AB\d{4,}$", subtype="po", example_value="AB12345")
        assert is_rule_already_learned(suggestion, [], [ReferenceRegexRule(pattern=r"^ab\d{4,}$", subtype="po")])

    def test_no_value_rules(self):
        assert not is_rule_already_learned(self.value_suggestion(), [], [])


class TestSuggestionToRule:
    """Tests for converting approved suggestions into profile rules."""

    def test_label(self):
        rule = suggestion_to_rule(SuggestedRule(type="label", label="Release", subtype="po", example_value="X1"))
        assert isinstance(rule, ReferenceLabelRule)
        assert rule.label == "Release"

    def test_value_pattern(self):
        rule = suggestion_to_rule(SuggestedRule(
            type="value_pattern", pattern=r"^TRFR\d{7,}$", subtype="po", example_value="TRFR0010713",
        ))
        assert isinstance(rule, ReferenceValueRule)
        assert rule.scope == RuleScope.GLOBAL
        assert rule.description == "Learned from TRFR0010713"

    def test_regex(self):
        rule = suggestion_to_rule(SuggestedRule(
            type="regex", pattern=r"^AB\d{4,}$", subtype="po", example_value="AB12345",
        ))
        assert isinstance(rule, ReferenceRegexRule)
        assert rule.pattern == r"^AB\d{4,}$"


def test_dedupe_suggestions():
    label = SuggestedRule(type="label", label="Release", subtype="po", example_value="A1")
    same_label = SuggestedRule(type="label", label="RELEASE", subtype="po", example_value="B2")
    regex = SuggestedRule(type="regex", pattern=r"^AB\d{4,}$", subtype="po", example_value="AB12345")
    assert dedupe_suggestions([label, same_label, regex]) == [label, regex]
