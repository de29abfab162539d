import enum

from pydantic import BaseModel, ConfigDict, Field


class CandidateType(str, enum.Enum):
    """Kind of span found by the deterministic extractor."""

    REFERENCE_NUMBER = "reference_number"
    DATE = "date"
    TIME = "time"
    DATETIME = "datetime"
    ADDRESS = "address"
    CITY_STATE_ZIP = "city_state_zip"
    WEIGHT = "weight"
    PIECES = "pieces"
    DIMENSIONS = "dimensions"
    TEMPERATURE = "temperature"
    COMMODITY = "commodity"
    STOP_BLOCK = "stop_block"


class ReferenceSubtype(str, enum.Enum):
    """Classification of a reference number."""

    PO = "po"
    BOL = "bol"
    ORDER = "order"
    PICKUP = "pickup"
    DELIVERY = "delivery"
    APPOINTMENT = "appointment"
    REFERENCE = "reference"
    CONFIRMATION = "confirmation"
    PRO = "pro"
    UNKNOWN = "unknown"


class Confidence(str, enum.Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return {"high": 3, "medium": 2, "low": 1}[self.value]


class BlockType(str, enum.Enum):
    """Structural region of a tender document."""

    HEADER = "header"
    PICKUP = "pickup"
    DELIVERY = "delivery"
    UNKNOWN = "unknown"


class CandidatePosition(BaseModel):
    model_config = ConfigDict(frozen=True)

    start: int
    end: int


class Candidate(BaseModel):
    """A typed, positioned span found in the raw tender text."""

    model_config = ConfigDict(frozen=True)

    type: CandidateType
    value: str
    raw_match: str
    label_hint: str | None = Field(None, description="Label text found before the value")
    subtype: ReferenceSubtype | None = Field(None, description="Reference classification")
    confidence: Confidence
    position: CandidatePosition
    context: str = Field("", description="Whitespace-collapsed text around the match")

    def overlaps(self, other: "Candidate") -> bool:
        return (
            self.position.start < other.position.end
            and other.position.start < self.position.end
        )


# --- Rule audit trail ---


class RuleAuditEntry(BaseModel):
    """One customer-rule evaluation, applied or skipped."""

    rule: str
    candidate: str
    reason: str


class RuleAuditLog(BaseModel):
    applied: list[RuleAuditEntry] = Field(default_factory=list)
    skipped: list[RuleAuditEntry] = Field(default_factory=list)


class ExtractionMetadata(BaseModel):
    version: str
    text_length: int
    customer_id: str | None = None
    applied_customer_rules: int = 0
    value_rule_hits: dict[int, int] = Field(
        default_factory=dict,
        description="Index into the profile's value rules -> times applied in this run",
    )
    audit_log: RuleAuditLog = Field(default_factory=RuleAuditLog)


class ExtractionResult(BaseModel):
    """Output of a single extraction run, persisted verbatim by callers for audit."""

    candidates: list[Candidate] = Field(default_factory=list)
    metadata: ExtractionMetadata

    @property
    def audit_log(self) -> RuleAuditLog:
        return self.metadata.audit_log

    def reference_numbers(self) -> list[Candidate]:
        return [c for c in self.candidates if c.type == CandidateType.REFERENCE_NUMBER]
