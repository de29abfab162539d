from tender_engine.learning.detector import (
    LearningDetector,
    detect_all_edits,
    detect_reclassifications,
    is_rule_already_learned,
    suggestion_to_rule,
)

__all__ = [
    "LearningDetector",
    "detect_all_edits",
    "detect_reclassifications",
    "is_rule_already_learned",
    "suggestion_to_rule",
]
