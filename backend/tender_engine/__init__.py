"""Load tender extraction, verification and rule-learning engine."""

from tender_engine.pipeline import TenderPipeline

__all__ = ["TenderPipeline"]
