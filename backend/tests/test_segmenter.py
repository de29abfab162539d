"""Tests for block segmentation of tender text."""

from tender_engine.document_extractor.segmenter import (
    block_at,
    find_header_end,
    is_in_header,
    is_in_stop_section,
    nearest_marker,
    segment_document,
)
from tender_engine.schemas.candidate import BlockType


class TestFindHeaderEnd:
    """Tests for locating the end of the header."""

    def test_pickup_heading_ends_header(self, scoped_tender):
        assert find_header_end(scoped_tender) == scoped_tender.index("Pickup")

    def test_no_stop_keywords_means_all_header(self):
        text = "Load #: 121230\nRate: $1,500"
        assert find_header_end(text) == len(text)

    def test_earliest_keyword_wins(self):
        text = "Tender 42\nShip From: Acme\nStops\nPickup\n"
        assert find_header_end(text) == text.index("Ship From")


class TestSegmentDocument:
    """Tests for segment_document."""

    def test_header_then_stops(self, scoped_tender):
        result = segment_document(scoped_tender)
        assert [s.type for s in result.segments] == [
            BlockType.HEADER, BlockType.PICKUP, BlockType.DELIVERY,
        ]
        assert result.segments[0].start == 0
        assert result.segments[0].end == result.header_end

    def test_segments_are_contiguous(self, scoped_tender):
        result = segment_document(scoped_tender)
        for prev, nxt in zip(result.segments, result.segments[1:]):
            assert prev.end == nxt.start
        assert result.segments[-1].end == len(scoped_tender)

    def test_adjacent_markers_merge(self):
        text = "Stops\nPickup / Ship From: Acme\nDelivery / Ship To: Store\n"
        result = segment_document(text)
        assert result.header_end == 0
        assert [s.type for s in result.segments] == [BlockType.PICKUP, BlockType.DELIVERY]

    def test_close_markers_of_different_types_stay_separate(self):
        text = "Pickup\n93817264\nDelivery\n48172635\n"
        result = segment_document(text)
        assert [(s.type, s.start) for s in result.segments] == [
            (BlockType.PICKUP, 0), (BlockType.DELIVERY, text.index("Delivery")),
        ]

    def test_empty_text(self):
        result = segment_document("")
        assert result.segments == []
        assert result.header_end == 0


class TestBlockAt:
    """Tests for block_at."""

    def test_pickup_block(self, scoped_tender):
        assert block_at(scoped_tender, scoped_tender.index("88341276")) == BlockType.PICKUP

    def test_delivery_block(self, scoped_tender):
        assert block_at(scoped_tender, scoped_tender.index("99120456")) == BlockType.DELIVERY

    def test_header(self, scoped_tender):
        assert block_at(scoped_tender, 2) == BlockType.HEADER

    def test_reuses_precomputed_segmentation(self, scoped_tender):
        seg = segment_document(scoped_tender)
        position = scoped_tender.index("Big Store")
        assert block_at(scoped_tender, position, seg) == BlockType.DELIVERY

    def test_unknown_after_unmarked_stops_heading(self):
        text = "Stops\nAcme Foods"
        assert block_at(text, text.index("Foods")) == BlockType.UNKNOWN

    def test_short_adjacent_blocks(self):
        text = "Pickup\n93817264\nDelivery\n48172635\n"
        assert block_at(text, text.index("93817264")) == BlockType.PICKUP
        assert block_at(text, text.index("48172635")) == BlockType.DELIVERY

    def test_inline_labels_without_stops_heading(self):
        text = "LOAD TENDER\nPickup: Acme\nRef 93817264\nDelivery: Store\nRef 48172635\n"
        assert find_header_end(text) == len(text)
        assert block_at(text, 2) == BlockType.HEADER
        assert block_at(text, text.index("93817264")) == BlockType.PICKUP
        assert block_at(text, text.index("48172635")) == BlockType.DELIVERY

    def test_nearest_marker_wins(self):
        assert nearest_marker("Pickup: Acme\nDelivery: Store\n") == BlockType.DELIVERY
        assert nearest_marker("Ship To: Store\nShipper: Acme\n") == BlockType.PICKUP
        assert nearest_marker("Rate: $1,500") is None


class TestPredicates:
    """Tests for the header / stop-section convenience predicates."""

    def test_is_in_header(self, scoped_tender):
        assert is_in_header(scoped_tender, 0)
        assert not is_in_header(scoped_tender, scoped_tender.index("Acme"))

    def test_is_in_stop_section(self, scoped_tender):
        assert is_in_stop_section(scoped_tender, scoped_tender.index("Acme"))
        assert not is_in_stop_section(scoped_tender, 0)
