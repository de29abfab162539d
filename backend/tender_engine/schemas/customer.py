import enum

from pydantic import BaseModel, Field

from tender_engine.schemas.candidate import ReferenceSubtype
from tender_engine.schemas.shipment import TemperatureMode


class RuleScope(str, enum.Enum):
    """Structural region in which a value rule may apply."""

    GLOBAL = "global"
    PICKUP = "pickup"
    DELIVERY = "delivery"
    HEADER = "header"


class RuleStatus(str, enum.Enum):
    ACTIVE = "active"
    DEPRECATED = "deprecated"


class ReferenceLabelRule(BaseModel):
    """Maps a customer-specific label (e.g. "Release #") to a subtype."""

    label: str = Field(..., min_length=1)
    subtype: ReferenceSubtype
    confidence: float = Field(0.5, ge=0.0, le=1.0)


class ReferenceRegexRule(BaseModel):
    """Classifies values matching a regex, only when a label-like token is nearby."""

    pattern: str = Field(..., min_length=1)
    subtype: ReferenceSubtype
    description: str | None = None
    confidence: float = Field(0.5, ge=0.0, le=1.0)


class ReferenceValueRule(BaseModel):
    """Classifies a reference purely by the shape of its value.

    Highest precedence of all rule kinds; only ``active`` rules whose scope is
    compatible with the match position are considered.
    """

    pattern: str = Field(..., min_length=1)
    subtype: ReferenceSubtype
    scope: RuleScope = RuleScope.GLOBAL
    priority: int = 0
    status: RuleStatus = RuleStatus.ACTIVE
    hits: int = 0
    confidence: float = Field(0.5, ge=0.0, le=1.0)
    description: str | None = None


class CommodityByTemp(BaseModel):
    frozen: str | None = None
    refrigerated: str | None = None
    dry: str | None = None


class CargoHints(BaseModel):
    """Learned cargo defaults for a customer."""

    commodity_by_temp: CommodityByTemp | None = None
    default_commodity: str | None = None
    default_temp_mode: TemperatureMode | None = None


class CustomerProfile(BaseModel):
    """Snapshot of one customer's learned parsing rules, treated as read-only per call."""

    id: str
    name: str | None = None
    code: str | None = None
    reference_label_rules: list[ReferenceLabelRule] = Field(default_factory=list)
    reference_regex_rules: list[ReferenceRegexRule] = Field(default_factory=list)
    reference_value_rules: list[ReferenceValueRule] = Field(default_factory=list)
    cargo_hints: CargoHints | None = None
