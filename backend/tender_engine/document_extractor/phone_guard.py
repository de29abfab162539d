"""Pure phone-number and quantity guards for reference candidates. No state, easy to unit test."""

import re

from tender_engine.document_extractor.patterns import (
    FULL_PHONE,
    NON_REFERENCE_LABELS,
    PARTIAL_PHONE_PATTERNS,
    PHONE_LABELS,
    PHONE_PATTERNS,
)

# Reasons that mean the value itself is phone-shaped; no label can override these
DEFINITIVE_PHONE_REASONS = frozenset({"matches_phone_pattern", "10_digit_number"})


def _has_phone_label(text: str) -> bool:
    return any(p.search(text) for p in PHONE_LABELS)


def is_definitely_phone(
    value: str,
    text: str,
    position: int,
    *,
    label_lookback: int = 60,
    adjacency_window: int = 20,
) -> tuple[bool, str | None]:
    """Decide whether a would-be reference number is really a phone number.

    Args:
        value: Candidate value
        text: Full tender text
        position: Start offset of the match in ``text``
        label_lookback: Chars before the match searched for phone labels
        adjacency_window: Chars on either side of the value searched for a
            complete phone number

    Returns:
        Tuple of (is_phone, reason). Reason is one of matches_phone_pattern,
        partial_phone, 10_digit_number, 7_digit_with_phone_label,
        phone_label_nearby, adjacent_to_phone.
    """
    if any(p.search(value) for p in PHONE_PATTERNS):
        return True, "matches_phone_pattern"

    compact = re.sub(r"\s", "", value)
    if any(p.search(compact) for p in PARTIAL_PHONE_PATTERNS):
        return True, "partial_phone"

    digits = re.sub(r"\D", "", value)
    if len(digits) == 10:
        return True, "10_digit_number"

    lookback = text[max(0, position - label_lookback):position]
    if len(digits) == 7 and _has_phone_label(lookback):
        return True, "7_digit_with_phone_label"

    if _has_phone_label(lookback):
        return True, "phone_label_nearby"

    window = text[max(0, position - adjacency_window):position + len(value) + adjacency_window]
    if FULL_PHONE.search(window):
        without_value = window.replace(value, "XXX", 1)
        if FULL_PHONE.search(without_value) or len(digits) < 6:
            return True, "adjacent_to_phone"

    return False, None


def phone_guard_applies(reason: str | None, *, explicitly_labeled: bool) -> bool:
    """An explicit high-confidence label overrides every heuristic phone signal
    except a definitive phone-format match."""
    if reason is None:
        return False
    if explicitly_labeled and reason not in DEFINITIVE_PHONE_REASONS:
        return False
    return True


def has_non_reference_label(text: str, position: int, *, lookback: int = 40) -> str | None:
    """Return the quantity label (total, weight, $...) just before position, if any."""
    window = text[max(0, position - lookback):position]
    for pattern in NON_REFERENCE_LABELS:
        match = pattern.search(window)
        if match:
            return match.group(0)
    return None
