"""
Block segmentation of tender text.

Splits a tender into a header followed by pickup/delivery blocks so that
customer rules can be scoped to the region a value was found in. Pure
functions only, no state between calls.
"""

import logging
import re
from dataclasses import dataclass, field

from tender_engine.config import Settings, settings as default_settings
from tender_engine.schemas.candidate import BlockType

logger = logging.getLogger("tender.segmenter")

# Any of these marks the end of the header and the start of the stops section
STOPS_SECTION_PATTERNS = [
    re.compile(r"\bstops\b", re.IGNORECASE),
    re.compile(r"\bpickup\s*(?:#?\d*|information|details)?$", re.IGNORECASE | re.MULTILINE),
    re.compile(r"\bdelivery\s*(?:#?\d*|information|details)?$", re.IGNORECASE | re.MULTILINE),
    re.compile(r"\bship\s*from\b", re.IGNORECASE),
    re.compile(r"\bship\s*to\b", re.IGNORECASE),
    re.compile(r"\borigin\b", re.IGNORECASE),
    re.compile(r"\bconsignee\b", re.IGNORECASE),
    re.compile(r"\bshipper\b", re.IGNORECASE),
]

PICKUP_MARKERS = [
    re.compile(r"\bpickup\b", re.IGNORECASE),
    re.compile(r"\bship\s*from\b", re.IGNORECASE),
    re.compile(r"\borigin\b", re.IGNORECASE),
    re.compile(r"\bshipper\b", re.IGNORECASE),
    re.compile(r"\bpu\s*#", re.IGNORECASE),
]

DELIVERY_MARKERS = [
    re.compile(r"\bdelivery\b", re.IGNORECASE),
    re.compile(r"\bdeliver\s*to\b", re.IGNORECASE),
    re.compile(r"\bship\s*to\b", re.IGNORECASE),
    re.compile(r"\bconsignee\b", re.IGNORECASE),
    re.compile(r"\bdestination\b", re.IGNORECASE),
    re.compile(r"\bdel\s*#", re.IGNORECASE),
]


@dataclass
class Segment:
    type: BlockType
    start: int
    end: int

    def contains(self, position: int) -> bool:
        return self.start <= position < self.end


@dataclass
class SegmentationResult:
    segments: list[Segment] = field(default_factory=list)
    header_end: int = 0

    def segment_at(self, position: int) -> Segment | None:
        for segment in self.segments:
            if segment.contains(position):
                return segment
        return None


def find_header_end(text: str) -> int:
    """Offset of the first stops-section keyword, or len(text) when there is none."""
    header_end = len(text)
    for pattern in STOPS_SECTION_PATTERNS:
        match = pattern.search(text)
        if match and match.start() < header_end:
            header_end = match.start()
    return header_end


def segment_document(text: str, settings: Settings | None = None) -> SegmentationResult:
    """Split text into a header segment followed by pickup/delivery segments.

    A marker within ``segment_marker_merge_distance`` chars of the previous kept
    marker of the same type is merged into it, so "Pickup / Ship From" headings
    produce one block. A pickup marker never absorbs a delivery marker.
    """
    cfg = settings or default_settings
    header_end = find_header_end(text)
    result = SegmentationResult(header_end=header_end)

    if header_end > 0:
        result.segments.append(Segment(BlockType.HEADER, 0, header_end))

    markers: list[tuple[int, BlockType]] = []
    for patterns, block_type in (
        (PICKUP_MARKERS, BlockType.PICKUP),
        (DELIVERY_MARKERS, BlockType.DELIVERY),
    ):
        for pattern in patterns:
            for match in pattern.finditer(text, header_end):
                markers.append((match.start(), block_type))

    markers.sort(key=lambda m: m[0])
    kept: list[tuple[int, BlockType]] = []
    for position, block_type in markers:
        if (
            kept
            and kept[-1][1] == block_type
            and position - kept[-1][0] <= cfg.segment_marker_merge_distance
        ):
            continue
        kept.append((position, block_type))

    for i, (position, block_type) in enumerate(kept):
        end = kept[i + 1][0] if i + 1 < len(kept) else len(text)
        result.segments.append(Segment(block_type, position, end))

    logger.debug(
        "Segmented %d chars: header_end=%d, %d stop segments",
        len(text), header_end, len(kept),
    )
    return result


def nearest_marker(window: str) -> BlockType | None:
    """Type of the last pickup/delivery marker in ``window``, if any."""
    nearest: tuple[int, BlockType] | None = None
    for patterns, block_type in (
        (PICKUP_MARKERS, BlockType.PICKUP),
        (DELIVERY_MARKERS, BlockType.DELIVERY),
    ):
        for pattern in patterns:
            for match in pattern.finditer(window):
                if nearest is None or match.start() > nearest[0]:
                    nearest = (match.start(), block_type)
    return nearest[1] if nearest else None


def block_at(
    text: str,
    position: int,
    segmentation: SegmentationResult | None = None,
    settings: Settings | None = None,
) -> BlockType:
    """Classify a text offset as header, pickup, delivery or unknown.

    Args:
        text: Full tender text
        position: Character offset to classify
        segmentation: Precomputed segmentation of ``text``, to avoid re-segmenting
            when many offsets of one document are classified
        settings: Overrides for window sizes

    Returns:
        The containing stop segment's type. Offsets in the header or outside any
        segment take the nearest preceding marker in the lookback window, so
        inline "Pickup: ..." labels count even when no stops heading was found.
        Otherwise header/unknown by whether the offset precedes the stops section.
    """
    cfg = settings or default_settings
    seg = segmentation or segment_document(text, cfg)

    segment = seg.segment_at(position)
    if segment is not None and segment.type != BlockType.HEADER:
        return segment.type

    window = text[max(0, position - cfg.segment_lookback_window):position]
    marker = nearest_marker(window)
    if marker is not None:
        return marker

    return BlockType.HEADER if position < seg.header_end else BlockType.UNKNOWN


def is_in_header(text: str, position: int) -> bool:
    return position < find_header_end(text)


def is_in_stop_section(text: str, position: int) -> bool:
    return block_at(text, position) in (BlockType.PICKUP, BlockType.DELIVERY)
