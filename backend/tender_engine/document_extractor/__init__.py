from tender_engine.document_extractor.extractor import CandidateExtractor, extract_candidates
from tender_engine.document_extractor.rules import CompiledRuleSet, compile_rule_pattern
from tender_engine.document_extractor.segmenter import block_at, segment_document

__all__ = [
    "CandidateExtractor",
    "CompiledRuleSet",
    "block_at",
    "compile_rule_pattern",
    "extract_candidates",
    "segment_document",
]
