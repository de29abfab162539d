import enum

from pydantic import BaseModel, Field

from tender_engine.schemas.shipment import StructuredShipment


class ProvenanceSourceType(str, enum.Enum):
    """Where a field's final value came from."""

    DOCUMENT_TEXT = "document_text"
    EMAIL_TEXT = "email_text"
    RULE = "rule"
    USER_EDIT = "user_edit"
    LLM_INFERENCE = "llm_inference"


class WarningReason(str, enum.Enum):
    UNSUPPORTED_BY_SOURCE = "unsupported_by_source"
    WEAK_EVIDENCE = "weak_evidence"
    AMBIGUOUS_MATCH = "ambiguous_match"


class WarningCategory(str, enum.Enum):
    """Severity of a verification warning.

    ``hallucinated`` means no supporting evidence anywhere; ``unverified`` means
    the value has a declared non-document source but no evidence in the text.
    """

    HALLUCINATED = "hallucinated"
    UNVERIFIED = "unverified"


class CargoSource(str, enum.Enum):
    HEADER = "header"
    STOP = "stop"
    UNKNOWN = "unknown"


class ProvenanceEvidence(BaseModel):
    matched_text: str
    start: int | None = None
    end: int | None = None
    label: str | None = None
    candidate_index: int | None = None


class FieldProvenance(BaseModel):
    source_type: ProvenanceSourceType
    confidence: float = Field(..., ge=0.0, le=1.0)
    evidence: list[ProvenanceEvidence] = Field(default_factory=list)
    reason: str | None = None
    applied_at: str | None = None


class VerificationWarning(BaseModel):
    path: str = Field(..., description="JSON path, e.g. stops[0].schedule.time")
    value: str
    reason: WarningReason = WarningReason.UNSUPPORTED_BY_SOURCE
    category: WarningCategory = WarningCategory.HALLUCINATED
    source_type: ProvenanceSourceType | None = None


class VerificationResult(BaseModel):
    shipment: StructuredShipment
    warnings: list[VerificationWarning] = Field(default_factory=list)
    provenance: dict[str, FieldProvenance] = Field(default_factory=dict)


class NormalizationMetadata(BaseModel):
    refs_moved_to_stops: int = 0
    refs_deduplicated: int = 0
    cargo_source: CargoSource = CargoSource.UNKNOWN


class VerifiedShipmentResult(BaseModel):
    """Verified, normalized shipment with warnings pre-categorized for display."""

    shipment: StructuredShipment
    warnings: list[VerificationWarning] = Field(default_factory=list)
    provenance: dict[str, FieldProvenance] = Field(default_factory=dict)
    normalization: NormalizationMetadata = Field(default_factory=NormalizationMetadata)
