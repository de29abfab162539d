"""
Pure value-pattern safety functions. No state, easy to unit test.

A learned value-pattern rule applies regardless of label, with the highest
precedence of any rule, so a pattern that is too broad silently misclassifies
every future tender for the customer. Each proposal therefore has to pass the
length, exclusion and entropy filters, survive a collision count against the
document it was learned from, and reach a minimum score.
"""

import logging
import re
from dataclasses import dataclass, field

from tender_engine.config import Settings, settings as default_settings
from tender_engine.schemas.candidate import Candidate

logger = logging.getLogger("tender.learning.safety")

# Collision count reported for a derived pattern that does not compile
COLLISION_SENTINEL = 999

SCORE_WEIGHTS = {
    "multi_scope": 2,
    "was_unknown": 2,
    "multi_label": 1,
    "alphanumeric": 1,
    "too_short": -2,
    "too_broad": -2,
    "excluded": -2,
    "low_entropy": -1,
    "purely_numeric": -1,
}

EXCLUSION_SIGNATURES = {
    "phone": [
        re.compile(r"^\+?1?[-.\s]?\(?\d{3}\)?[-.\s]?\d{3}[-.\s]?\d{4}$"),
        re.compile(r"^\d{3}[-.\s]\d{4}$"),
    ],
    "date": [
        re.compile(r"^\d{1,2}[/\-.]\d{1,2}[/\-.]\d{2,4}$"),
        re.compile(r"^\d{4}-\d{2}-\d{2}$"),
    ],
    "time": [
        re.compile(r"^\d{1,2}:\d{2}(?::\d{2})?\s*(?:[ap]\.?m\.?)?$", re.IGNORECASE),
    ],
    "zip": [
        re.compile(r"^\d{5}(?:-\d{4})?$"),
    ],
}

_TOKEN_SPLIT = re.compile(r"[\s,;:#=()\[\]{}<>\"'|]+")


def exclusion_signature(value: str) -> str | None:
    """Name of the phone/date/time/zip shape the value matches, if any."""
    compact = value.strip()
    for name, patterns in EXCLUSION_SIGNATURES.items():
        if any(p.search(compact) for p in patterns):
            return name
    return None


def low_entropy_reason(value: str) -> str | None:
    """Why a value is too repetitive to generalize from, or None.

    Rejects values with two or fewer distinct characters, a run of four or more
    identical characters, or an ascending four-digit run such as 1234.
    """
    compact = value.strip().upper()
    if len(set(compact)) <= 2:
        return "few_distinct_chars"
    if re.search(r"(.)\1{3,}", compact):
        return "repeated_run"
    for i in range(len(compact) - 3):
        chunk = compact[i:i + 4]
        if chunk.isdigit() and all(int(chunk[k + 1]) - int(chunk[k]) == 1 for k in range(3)):
            return "ascending_run"
    return None


def derive_value_pattern(value: str, *, min_digits: int = 4, digit_slack: int = 0) -> str | None:
    """Derive an anchored pattern describing the shape of a reference value.

    Shapes, first match wins:
        ABC12345      -> ^ABC\\d{N,}$
        PO-12345      -> ^PO[-_]?\\d{N,}$
        ABCD12X49     -> ^ABCD[A-Z0-9]{N,}$
        123-AB-456    -> ^\\d{3,}-AB-\\d{3,}$

    The lower bound N is max(min_digits, observed length - digit_slack).

    Returns:
        The pattern, or None when the value has none of these shapes.
    """
    value = value.strip()

    def bound(observed: int) -> int:
        return max(min_digits, observed - digit_slack)

    match = re.fullmatch(r"([A-Za-z]{2,})(\d{4,})", value)
    if match:
        return rf"^{re.escape(match.group(1))}\d{{{bound(len(match.group(2)))},}}$"

    match = re.fullmatch(r"([A-Za-z]{2,})[-_]?(\d{4,})", value)
    if match:
        return rf"^{re.escape(match.group(1))}[-_]?\d{{{bound(len(match.group(2)))},}}$"

    match = re.fullmatch(r"([A-Za-z]{2,})([A-Za-z0-9]+)", value)
    if match:
        tail = match.group(2)
        if re.search(r"[A-Za-z]", tail) and re.search(r"\d", tail):
            return rf"^{re.escape(match.group(1))}[A-Z0-9]{{{bound(len(tail))},}}$"

    match = re.fullmatch(r"(\d+)-([A-Za-z]+)-(\d+)", value)
    if match:
        head, letters, tail = match.groups()
        return rf"^\d{{{len(head)},}}-{re.escape(letters)}-\d{{{len(tail)},}}$"

    return None


def derive_legacy_regex(value: str) -> str | None:
    """Coarse prefix+digits or digit-dash-digit regex used when no label is available."""
    value = value.strip()
    match = re.fullmatch(r"([A-Za-z]{2,5})(\d{4,})", value)
    if match:
        return rf"^{re.escape(match.group(1))}\d{{4,}}$"
    match = re.fullmatch(r"(\d+)-(\d+)(?:-(\d+))?", value)
    if match:
        return r"^\d+-\d+-\d+$" if match.group(3) else r"^\d+-\d+$"
    return None


def collision_count(
    pattern: str,
    candidates: list[Candidate],
    text: str,
    *,
    max_examples: int = 5,
) -> tuple[int, list[str]]:
    """Count distinct observed values the pattern would also match.

    Values are taken from every candidate plus every whitespace/punctuation
    delimited token of the text.

    Returns:
        Tuple of (distinct match count, first few matching values). A pattern
        that fails to compile reports COLLISION_SENTINEL.
    """
    try:
        regex = re.compile(pattern, re.IGNORECASE)
    except re.error as e:
        logger.warning("Derived pattern %r does not compile: %s", pattern, e)
        return COLLISION_SENTINEL, []

    observed = [c.value for c in candidates]
    observed.extend(token.strip(".") for token in _TOKEN_SPLIT.split(text))

    seen: set[str] = set()
    matches: list[str] = []
    for value in observed:
        key = value.strip().upper()
        if not key or key in seen:
            continue
        seen.add(key)
        if regex.search(value.strip()):
            matches.append(value.strip())
    return len(matches), matches[:max_examples]


def score_signals(signals: dict[str, bool]) -> int:
    return sum(SCORE_WEIGHTS[name] for name, present in signals.items() if present)


@dataclass
class PatternAssessment:
    """Outcome of vetting a derived value pattern."""

    value: str
    pattern: str | None = None
    collision_count: int = 0
    example_matches: list[str] = field(default_factory=list)
    signals: dict[str, bool] = field(default_factory=dict)
    score: int = 0
    rejection: str | None = None

    @property
    def accepted(self) -> bool:
        return self.pattern is not None and self.rejection is None

    def to_dict(self) -> dict:
        return {
            "value": self.value,
            "pattern": self.pattern,
            "collision_count": self.collision_count,
            "score": self.score,
            "signals": {k: v for k, v in self.signals.items() if v},
            "rejection": self.rejection,
        }


def assess_value_pattern(
    value: str,
    *,
    was_unknown: bool,
    scope_count: int,
    label_count: int,
    candidates: list[Candidate],
    text: str,
    settings: Settings | None = None,
) -> PatternAssessment:
    """Derive, filter, collision-check and score a value-pattern proposal.

    Args:
        value: The corrected reference value
        was_unknown: The classifier had no specific subtype for it
        scope_count: Distinct structural blocks the value appears in
        label_count: Distinct labels seen next to the value
        candidates: Extractor output for the document
        text: Original tender text
        settings: Threshold overrides

    Returns:
        PatternAssessment; ``accepted`` is True only when every filter passed
        and the score reached ``min_value_pattern_score``.
    """
    cfg = settings or default_settings
    value = value.strip()
    assessment = PatternAssessment(value=value)

    pattern = derive_value_pattern(
        value, min_digits=cfg.min_pattern_digits, digit_slack=cfg.pattern_digit_slack
    )
    if pattern is None:
        assessment.rejection = "no_derivable_pattern"
        return assessment
    assessment.pattern = pattern

    excluded = exclusion_signature(value)
    entropy = low_entropy_reason(value)
    count, examples = collision_count(
        pattern, candidates, text, max_examples=cfg.max_example_matches
    )
    assessment.collision_count = count
    assessment.example_matches = examples

    assessment.signals = {
        "multi_scope": scope_count > 1,
        "was_unknown": was_unknown,
        "multi_label": label_count >= 2,
        "alphanumeric": bool(re.search(r"[A-Za-z]", value) and re.search(r"\d", value)),
        "too_short": len(value) < cfg.min_value_pattern_length,
        "too_broad": count > cfg.max_pattern_collisions,
        "excluded": excluded is not None,
        "low_entropy": entropy is not None,
        "purely_numeric": value.isdigit(),
    }
    assessment.score = score_signals(assessment.signals)

    if assessment.signals["too_short"]:
        assessment.rejection = f"too_short: {len(value)} < {cfg.min_value_pattern_length}"
    elif excluded:
        assessment.rejection = f"exclusion: {excluded}"
    elif entropy:
        assessment.rejection = f"low_entropy: {entropy}"
    elif assessment.signals["too_broad"]:
        assessment.rejection = f"too_broad: {count} collisions > {cfg.max_pattern_collisions}"
    elif assessment.score < cfg.min_value_pattern_score:
        assessment.rejection = f"score {assessment.score} < {cfg.min_value_pattern_score}"
    return assessment
