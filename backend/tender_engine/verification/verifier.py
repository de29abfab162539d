"""
Post-inference verification of a drafted shipment against source evidence.

Every leaf value the classifier produced must be traceable to the tender:
an extracted candidate, the raw text itself, or (for multi-word values) most
of its significant words. Unsupported values are nulled, or for reference
numbers downgraded to ``unknown`` so a human can still correct them. Values
whose provenance marks them as customer rules or human edits are trusted.

The input shipment is never mutated; changed branches are copied with
``model_copy`` and untouched branches are shared.
"""

import enum
import logging
import math
import re
from dataclasses import dataclass, field

from pydantic import BaseModel

from tender_engine.config import Settings, settings as default_settings
from tender_engine.schemas.candidate import Candidate, Confidence, ReferenceSubtype
from tender_engine.schemas.shipment import (
    CargoDetails,
    ReferenceNumber,
    Stop,
    StructuredShipment,
)
from tender_engine.schemas.verification import (
    FieldProvenance,
    ProvenanceEvidence,
    ProvenanceSourceType,
    VerificationResult,
    VerificationWarning,
    WarningCategory,
    WarningReason,
)

logger = logging.getLogger("tender.verifier")

# Provenance sources whose values are kept even without textual support
TRUSTED_SOURCES = frozenset({ProvenanceSourceType.RULE, ProvenanceSourceType.USER_EDIT})

# Declared non-document sources: unsupported values are "unverified", not "hallucinated"
DECLARED_SOURCES = frozenset({ProvenanceSourceType.EMAIL_TEXT})

CANDIDATE_MATCH_CONFIDENCE = {
    Confidence.HIGH: 0.95,
    Confidence.MEDIUM: 0.85,
    Confidence.LOW: 0.7,
}
CONTAINMENT_FACTOR = 0.8
TEXT_MATCH_CONFIDENCE = 0.9
NUMERIC_MATCH_CONFIDENCE = 0.85

LOCATION_FIELDS = ("name", "address", "city", "state", "zip", "country")
SCHEDULE_FIELDS = ("date", "time")
DIMENSION_FIELDS = ("length", "width", "height")


@dataclass
class Support:
    confidence: float
    evidence: list[ProvenanceEvidence] = field(default_factory=list)
    method: str = "text"


def as_text(value) -> str | None:
    """Render a leaf value the way it would appear in a document."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, enum.Enum):
        value = value.value
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    text = str(value).strip()
    return text or None


def _candidate_evidence(candidate: Candidate, index: int) -> ProvenanceEvidence:
    return ProvenanceEvidence(
        matched_text=candidate.raw_match,
        start=candidate.position.start,
        end=candidate.position.end,
        label=candidate.label_hint,
        candidate_index=index,
    )


def find_support(
    value: str,
    candidates: list[Candidate],
    text: str,
    *,
    word_overlap: float = 0.7,
    min_word_length: int = 3,
) -> Support | None:
    """Look for evidence of a value in the candidates and the original text.

    Args:
        value: Leaf value rendered as text
        candidates: Candidates extracted from the same text
        text: Original tender text
        word_overlap: Fraction of significant words that must appear in the text
        min_word_length: Shortest word counted as significant

    Returns:
        Support with confidence and evidence, or None when unsupported.
    """
    needle = value.strip().lower()
    if not needle:
        return None

    for i, candidate in enumerate(candidates):
        if needle in (candidate.value.strip().lower(), candidate.raw_match.strip().lower()):
            return Support(
                CANDIDATE_MATCH_CONFIDENCE[candidate.confidence],
                [_candidate_evidence(candidate, i)],
                "candidate",
            )

    for i, candidate in enumerate(candidates):
        hay = candidate.value.strip().lower()
        if hay and (hay in needle or needle in hay):
            return Support(
                round(CANDIDATE_MATCH_CONFIDENCE[candidate.confidence] * CONTAINMENT_FACTOR, 3),
                [_candidate_evidence(candidate, i)],
                "candidate_partial",
            )

    haystack = text.lower()
    idx = haystack.find(needle)
    if idx >= 0:
        return Support(
            TEXT_MATCH_CONFIDENCE,
            [ProvenanceEvidence(matched_text=text[idx:idx + len(needle)], start=idx, end=idx + len(needle))],
        )

    compact = re.sub(r"[,\s]", "", needle)
    if compact and compact != needle:
        idx = haystack.find(compact)
        if idx >= 0:
            return Support(
                NUMERIC_MATCH_CONFIDENCE,
                [ProvenanceEvidence(matched_text=text[idx:idx + len(compact)], start=idx, end=idx + len(compact))],
                "numeric",
            )
    if any(ch.isdigit() for ch in needle):
        # "45000" against "45,000 lbs"
        if compact and compact in re.sub(r"(?<=\d),(?=\d)", "", haystack):
            return Support(NUMERIC_MATCH_CONFIDENCE, [ProvenanceEvidence(matched_text=value)], "numeric")

    words = [w for w in needle.split() if len(w) >= min_word_length]
    if len(words) >= 2:
        evidence = []
        for word in words:
            idx = haystack.find(word)
            if idx >= 0:
                evidence.append(ProvenanceEvidence(matched_text=text[idx:idx + len(word)], start=idx, end=idx + len(word)))
        if len(evidence) >= math.ceil(len(words) * word_overlap):
            return Support(round(0.5 + 0.3 * len(evidence) / len(words), 3), evidence, "word_overlap")

    return None


class _Run:
    """Mutable state for a single verify() call."""

    def __init__(self, candidates, text, existing):
        self.candidates = candidates
        self.text = text
        self.existing: dict[str, FieldProvenance] = existing
        self.provenance: dict[str, FieldProvenance] = dict(existing)
        self.warnings: list[VerificationWarning] = []


class ShipmentVerifier:
    """Cross-checks a classifier draft against the tender it came from."""

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or default_settings

    def verify(
        self,
        shipment: StructuredShipment,
        candidates: list[Candidate],
        original_text: str,
        existing_provenance: dict[str, FieldProvenance] | None = None,
    ) -> VerificationResult:
        run = _Run(candidates, original_text, existing_provenance or {})

        refs = [
            self._verify_reference(ref, f"reference_numbers[{i}]", run)
            for i, ref in enumerate(shipment.reference_numbers)
        ]
        stops = [self._verify_stop(stop, i, run) for i, stop in enumerate(shipment.stops)]
        cargo = self._verify_cargo(shipment.cargo, run)

        verified = shipment.model_copy(
            update={"reference_numbers": refs, "stops": stops, "cargo": cargo}
        )

        hallucinated = len(hallucinated_warnings(run.warnings))
        logger.info(
            "Verified shipment: %d warnings (%d hallucinated), %d provenance entries",
            len(run.warnings), hallucinated, len(run.provenance),
        )
        return VerificationResult(
            shipment=verified, warnings=run.warnings, provenance=run.provenance
        )

    # --- Leaf assessment ---

    def _assess(self, path: str, value, run: _Run) -> VerificationWarning | None:
        """Record provenance for a supported value, or describe why it is not."""
        text_value = as_text(value)
        if text_value is None:
            return None

        support = find_support(
            text_value,
            run.candidates,
            run.text,
            word_overlap=self.settings.address_word_overlap,
            min_word_length=self.settings.significant_word_min_length,
        )
        if support is not None:
            if path not in run.existing:
                run.provenance[path] = FieldProvenance(
                    source_type=ProvenanceSourceType.DOCUMENT_TEXT,
                    confidence=support.confidence,
                    evidence=support.evidence,
                    reason=support.method,
                )
            return None

        existing = run.existing.get(path)
        if existing is not None and existing.source_type in TRUSTED_SOURCES:
            logger.debug("Keeping %s=%r on %s provenance", path, text_value, existing.source_type.value)
            return None

        if existing is not None and existing.source_type in DECLARED_SOURCES:
            return VerificationWarning(
                path=path,
                value=text_value,
                reason=WarningReason.WEAK_EVIDENCE,
                category=WarningCategory.UNVERIFIED,
                source_type=existing.source_type,
            )
        return VerificationWarning(
            path=path,
            value=text_value,
            reason=WarningReason.UNSUPPORTED_BY_SOURCE,
            category=WarningCategory.HALLUCINATED,
            source_type=existing.source_type if existing else ProvenanceSourceType.LLM_INFERENCE,
        )

    def _verify_fields(self, model: BaseModel, prefix: str, fields, run: _Run) -> BaseModel:
        cleared = {}
        for name in fields:
            path = f"{prefix}.{name}"
            warning = self._assess(path, getattr(model, name), run)
            if warning is None:
                continue
            run.warnings.append(warning)
            run.provenance.pop(path, None)
            cleared[name] = None
        return model.model_copy(update=cleared) if cleared else model

    # --- Shipment branches ---

    def _verify_reference(self, ref: ReferenceNumber, path: str, run: _Run) -> ReferenceNumber:
        value_path = f"{path}.value"
        warning = self._assess(value_path, ref.value, run)
        if warning is None:
            return ref

        run.provenance.setdefault(value_path, FieldProvenance(
            source_type=ProvenanceSourceType.LLM_INFERENCE,
            confidence=0.0,
            reason=WarningReason.UNSUPPORTED_BY_SOURCE.value,
        ))
        if ref.type == ReferenceSubtype.UNKNOWN:
            # Nothing left to downgrade
            return ref

        run.warnings.append(warning)
        logger.info("Downgrading unsupported reference %s=%r to unknown", value_path, ref.value)
        return ref.model_copy(update={"type": ReferenceSubtype.UNKNOWN})

    def _verify_stop(self, stop: Stop, index: int, run: _Run) -> Stop:
        prefix = f"stops[{index}]"
        location = self._verify_fields(stop.location, f"{prefix}.location", LOCATION_FIELDS, run)
        schedule = self._verify_fields(stop.schedule, f"{prefix}.schedule", SCHEDULE_FIELDS, run)
        refs = [
            self._verify_reference(ref, f"{prefix}.reference_numbers[{j}]", run)
            for j, ref in enumerate(stop.reference_numbers)
        ]
        return stop.model_copy(
            update={"location": location, "schedule": schedule, "reference_numbers": refs}
        )

    def _verify_cargo(self, cargo: CargoDetails, run: _Run) -> CargoDetails:
        updates = {
            "weight": self._verify_fields(cargo.weight, "cargo.weight", ("value",), run),
            "pieces": self._verify_fields(cargo.pieces, "cargo.pieces", ("count", "type"), run),
        }
        if cargo.dimensions is not None:
            updates["dimensions"] = self._verify_fields(
                cargo.dimensions, "cargo.dimensions", DIMENSION_FIELDS, run
            )
        if cargo.temperature is not None:
            updates["temperature"] = self._verify_fields(
                cargo.temperature, "cargo.temperature", ("value",), run
            )

        cargo = self._verify_fields(cargo, "cargo", ("commodity",), run)
        return cargo.model_copy(update=updates)


def verify_shipment(
    shipment: StructuredShipment,
    candidates: list[Candidate],
    original_text: str,
    existing_provenance: dict[str, FieldProvenance] | None = None,
    settings: Settings | None = None,
) -> VerificationResult:
    return ShipmentVerifier(settings).verify(
        shipment, candidates, original_text, existing_provenance
    )


# --- Warning filters ---


def hallucinated_warnings(warnings: list[VerificationWarning]) -> list[VerificationWarning]:
    return [w for w in warnings if w.category == WarningCategory.HALLUCINATED]


def unverified_warnings(warnings: list[VerificationWarning]) -> list[VerificationWarning]:
    return [w for w in warnings if w.category == WarningCategory.UNVERIFIED]


def warning_for_path(warnings: list[VerificationWarning], path: str) -> VerificationWarning | None:
    for warning in warnings:
        if warning.path == path:
            return warning
    return None


def has_warning(warnings: list[VerificationWarning], path: str) -> bool:
    """True when ``path`` or any field below it (``path + "."``) has a warning."""
    prefix = f"{path}."
    return any(w.path == path or w.path.startswith(prefix) for w in warnings)
