import enum
from typing import Any

from pydantic import BaseModel, Field

from tender_engine.schemas.candidate import ReferenceSubtype
from tender_engine.schemas.customer import RuleScope


class SuggestedRuleType(str, enum.Enum):
    LABEL = "label"
    REGEX = "regex"
    VALUE_PATTERN = "value_pattern"


class LearnableFieldType(str, enum.Enum):
    REFERENCE_SUBTYPE = "reference_subtype"
    CARGO_COMMODITY = "cargo_commodity"
    TEMPERATURE_MODE = "cargo_temp_mode"
    CARGO_WEIGHT = "cargo_weight"


class SuggestedRule(BaseModel):
    """A rule proposal awaiting human approval. Never persisted by the engine."""

    type: SuggestedRuleType
    label: str | None = None
    pattern: str | None = None
    subtype: ReferenceSubtype
    scope: RuleScope | None = None
    example_value: str
    context: str = ""
    match_count: int | None = None
    example_matches: list[str] | None = None
    score: int | None = None

    @property
    def dedup_key(self) -> str:
        if self.type == SuggestedRuleType.LABEL:
            return f"label:{(self.label or '').lower()}"
        return f"{self.type.value}:{self.pattern}"


class LearningEvent(BaseModel):
    """Raw correction signal handed to an external aggregation process."""

    field_type: LearnableFieldType
    field_path: str
    before_value: Any = None
    after_value: Any = None
    context: dict[str, Any] = Field(default_factory=dict)


class LearningOutcome(BaseModel):
    suggestions: list[SuggestedRule] = Field(default_factory=list)
    events: list[LearningEvent] = Field(default_factory=list)
