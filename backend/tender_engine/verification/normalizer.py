"""
Reference scoping and de-duplication for drafted shipments.

Classifiers tend to dump every reference number into the shipment-level list.
This stage moves stop-specific references (pickup numbers, delivery
confirmations, a PO printed inside the pickup block) onto the stop they belong
to, drops global references that duplicate a stop reference, and records
where the cargo totals came from.
"""

import logging
import re
from dataclasses import dataclass

from tender_engine.config import Settings, settings as default_settings
from tender_engine.document_extractor.segmenter import block_at, segment_document
from tender_engine.schemas.candidate import (
    BlockType,
    Candidate,
    CandidateType,
    ReferenceSubtype,
)
from tender_engine.schemas.shipment import (
    ReferenceNumber,
    ReferenceScope,
    StopType,
    StructuredShipment,
    normalize_reference_value,
)
from tender_engine.schemas.verification import CargoSource, NormalizationMetadata

logger = logging.getLogger("tender.normalizer")

STOP_LEVEL_SUBTYPES = frozenset({
    ReferenceSubtype.PICKUP,
    ReferenceSubtype.DELIVERY,
    ReferenceSubtype.APPOINTMENT,
    ReferenceSubtype.CONFIRMATION,
})
GLOBAL_SUBTYPES = frozenset({ReferenceSubtype.BOL, ReferenceSubtype.ORDER, ReferenceSubtype.PRO})

PICKUP_CONTEXT = [
    re.compile(p, re.IGNORECASE)
    for p in (r"\bpickup\b", r"\bship\s*from\b", r"\borigin\b", r"\bsender\b",
              r"\bshipper\b", r"\bpu\s*#", r"\brelease\s*#")
]
DELIVERY_CONTEXT = [
    re.compile(p, re.IGNORECASE)
    for p in (r"\bdelivery\b", r"\bdeliver\s*to\b", r"\bship\s*to\b", r"\bconsignee\b",
              r"\bdestination\b", r"\bdel\s*#")
]
HEADER_CONTEXT = [
    re.compile(p, re.IGNORECASE)
    for p in (r"\bload\s*(?:#|number|info)", r"\bshipment\s*(?:#|number|info)", r"\bfreight\s*bill",
              r"\btender\s*(?:#|number)", r"\bcarrier\s*confirmation",
              r"\btotal\s*(?:cases|weight|lbs)")
]
CARGO_HEADER_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (r"total\s+(?:cases|weight|lbs|pounds)", r"load\s+(?:weight|total)",
              r"equipment\s*:", r"trailer\s*type", r"load\s*temp")
]


@dataclass
class RefContext:
    block: BlockType
    stop_index: int | None = None


def find_ref_position(value: str, text: str, candidates: list[Candidate]) -> int | None:
    """Locate a reference value in the text, preferring the extractor's own span."""
    key = normalize_reference_value(value)
    for candidate in candidates:
        if candidate.type != CandidateType.REFERENCE_NUMBER:
            continue
        if candidate.value == value or normalize_reference_value(candidate.value) == key:
            return candidate.position.start

    idx = text.find(value)
    if idx >= 0:
        return idx
    stripped = value.lstrip("0")
    if stripped and stripped != value:
        idx = text.find(stripped)
        if idx >= 0:
            return idx
    return None


def _nearest_keyword(patterns, before: str, after: str) -> int | None:
    """Distance to the closest keyword: preceding matches first, then following ones."""
    best = None
    for pattern in patterns:
        for match in pattern.finditer(before):
            distance = len(before) - match.end()
            if best is None or distance < best:
                best = distance
    if best is not None:
        return best
    for pattern in patterns:
        match = pattern.search(after)
        if match and (best is None or match.start() < best):
            best = match.start()
    # Following keywords always rank behind preceding ones
    return None if best is None else best + len(before) + 1


def determine_ref_context(
    position: int | None,
    text: str,
    shipment: StructuredShipment,
    *,
    before: int = 200,
    after: int = 100,
) -> RefContext:
    """Decide whether a reference sits in the header, a pickup block or a delivery block."""
    if position is None:
        return RefContext(BlockType.UNKNOWN)

    preceding = text[max(0, position - before):position]
    following = text[position:position + after]
    window = preceding + following

    has_header = any(p.search(window) for p in HEADER_CONTEXT)
    pickup_distance = _nearest_keyword(PICKUP_CONTEXT, preceding, following)
    delivery_distance = _nearest_keyword(DELIVERY_CONTEXT, preceding, following)

    if has_header and pickup_distance is None and delivery_distance is None:
        return RefContext(BlockType.HEADER)

    if pickup_distance is not None and (delivery_distance is None or pickup_distance <= delivery_distance):
        pickups = shipment.stops_of_type(StopType.PICKUP)
        return RefContext(BlockType.PICKUP, pickups[0] if pickups else None)
    if delivery_distance is not None:
        deliveries = shipment.stops_of_type(StopType.DELIVERY)
        return RefContext(BlockType.DELIVERY, deliveries[0] if deliveries else None)

    return RefContext(BlockType.UNKNOWN)


def should_be_stop_level(ref: ReferenceNumber, context: RefContext) -> bool:
    if ref.type in GLOBAL_SUBTYPES:
        return False
    if context.block == BlockType.HEADER:
        return False
    if ref.type in STOP_LEVEL_SUBTYPES:
        return True
    return context.block in (BlockType.PICKUP, BlockType.DELIVERY)


def _target_stop(ref: ReferenceNumber, context: RefContext, shipment: StructuredShipment) -> int | None:
    pickups = shipment.stops_of_type(StopType.PICKUP)
    deliveries = shipment.stops_of_type(StopType.DELIVERY)

    if ref.type == ReferenceSubtype.PICKUP:
        return pickups[0] if pickups else None
    if ref.type in (ReferenceSubtype.DELIVERY, ReferenceSubtype.CONFIRMATION, ReferenceSubtype.APPOINTMENT):
        return deliveries[0] if deliveries else None
    if ref.type == ReferenceSubtype.PO and context.block == BlockType.PICKUP:
        return pickups[0] if pickups else None
    return context.stop_index


def determine_cargo_source(text: str, candidates: list[Candidate] | None = None) -> CargoSource:
    """Header when summary totals are printed up top, stop when quantities sit in stop blocks."""
    if any(p.search(text) for p in CARGO_HEADER_PATTERNS):
        return CargoSource.HEADER

    quantities = [
        c for c in candidates or []
        if c.type in (CandidateType.WEIGHT, CandidateType.PIECES)
    ]
    if quantities:
        segmentation = segment_document(text)
        if any(
            block_at(text, c.position.start, segmentation) in (BlockType.PICKUP, BlockType.DELIVERY)
            for c in quantities
        ):
            return CargoSource.STOP
    return CargoSource.UNKNOWN


def needs_normalization(shipment: StructuredShipment) -> bool:
    """Whether any global reference looks like it belongs on a stop."""
    return any(
        ref.type in STOP_LEVEL_SUBTYPES
        or ref.applies_to in (ReferenceScope.PICKUP, ReferenceScope.DELIVERY, ReferenceScope.STOP)
        for ref in shipment.reference_numbers
    )


def normalize_shipment(
    shipment: StructuredShipment,
    original_text: str,
    candidates: list[Candidate],
    settings: Settings | None = None,
) -> tuple[StructuredShipment, NormalizationMetadata]:
    """Scope references to stops and remove duplicates.

    Args:
        shipment: Draft shipment, left untouched
        original_text: Tender text the draft came from
        candidates: Extractor output for the same text
        settings: Overrides for context window sizes

    Returns:
        Tuple of (normalized copy of the shipment, NormalizationMetadata).
    """
    cfg = settings or default_settings
    metadata = NormalizationMetadata()

    stop_keys: set[str] = {
        ref.normalized_value for stop in shipment.stops for ref in stop.reference_numbers
    }
    moves: dict[int, list[ReferenceNumber]] = {}
    kept_global: list[ReferenceNumber] = []

    for ref in shipment.reference_numbers:
        position = find_ref_position(ref.value, original_text, candidates)
        context = determine_ref_context(
            position, original_text, shipment,
            before=cfg.normalizer_context_before, after=cfg.normalizer_context_after,
        )
        target = _target_stop(ref, context, shipment) if should_be_stop_level(ref, context) else None
        if target is None:
            kept_global.append(ref)
            continue
        moves.setdefault(target, []).append(ref)

    stops = list(shipment.stops)
    for index, refs in moves.items():
        stop_refs = list(stops[index].reference_numbers)
        present = {r.normalized_value for r in stop_refs}
        for ref in refs:
            if ref.normalized_value in present:
                metadata.refs_deduplicated += 1
                continue
            stop_refs.append(ref)
            present.add(ref.normalized_value)
            stop_keys.add(ref.normalized_value)
            metadata.refs_moved_to_stops += 1
            logger.debug("Moved %s ref %r to stop %d", ref.type.value, ref.value, index)
        stops[index] = stops[index].model_copy(update={"reference_numbers": stop_refs})

    final_global: list[ReferenceNumber] = []
    seen: set[str] = set()
    for ref in kept_global:
        key = ref.normalized_value
        if key in stop_keys or key in seen:
            metadata.refs_deduplicated += 1
            continue
        seen.add(key)
        final_global.append(ref)

    metadata.cargo_source = determine_cargo_source(original_text, candidates)
    normalized = shipment.model_copy(update={"reference_numbers": final_global, "stops": stops})

    logger.info(
        "Normalized shipment: %d refs moved to stops, %d deduplicated, cargo from %s",
        metadata.refs_moved_to_stops, metadata.refs_deduplicated, metadata.cargo_source.value,
    )
    return normalized, metadata
