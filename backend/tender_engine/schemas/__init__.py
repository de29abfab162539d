from tender_engine.schemas.candidate import (
    BlockType,
    Candidate,
    CandidatePosition,
    CandidateType,
    Confidence,
    ExtractionMetadata,
    ExtractionResult,
    ReferenceSubtype,
    RuleAuditEntry,
    RuleAuditLog,
)
from tender_engine.schemas.customer import (
    CargoHints,
    CommodityByTemp,
    CustomerProfile,
    ReferenceLabelRule,
    ReferenceRegexRule,
    ReferenceValueRule,
    RuleScope,
    RuleStatus,
)
from tender_engine.schemas.learning import (
    LearnableFieldType,
    LearningEvent,
    LearningOutcome,
    SuggestedRule,
    SuggestedRuleType,
)
from tender_engine.schemas.shipment import (
    CargoDetails,
    CargoDimensions,
    CargoPieces,
    CargoTemperature,
    CargoWeight,
    ClassificationMetadata,
    ReferenceNumber,
    ReferenceScope,
    Stop,
    StopLocation,
    StopSchedule,
    StopType,
    StructuredShipment,
    TemperatureMode,
    normalize_reference_value,
)
from tender_engine.schemas.verification import (
    CargoSource,
    FieldProvenance,
    NormalizationMetadata,
    ProvenanceEvidence,
    ProvenanceSourceType,
    VerificationResult,
    VerificationWarning,
    VerifiedShipmentResult,
    WarningCategory,
    WarningReason,
)

__all__ = [
    "BlockType",
    "Candidate",
    "CandidatePosition",
    "CandidateType",
    "CargoDetails",
    "CargoDimensions",
    "CargoHints",
    "CargoPieces",
    "CargoSource",
    "CargoTemperature",
    "CargoWeight",
    "ClassificationMetadata",
    "CommodityByTemp",
    "Confidence",
    "CustomerProfile",
    "ExtractionMetadata",
    "ExtractionResult",
    "FieldProvenance",
    "LearnableFieldType",
    "LearningEvent",
    "LearningOutcome",
    "NormalizationMetadata",
    "ProvenanceEvidence",
    "ProvenanceSourceType",
    "ReferenceLabelRule",
    "ReferenceNumber",
    "ReferenceRegexRule",
    "ReferenceScope",
    "ReferenceSubtype",
    "ReferenceValueRule",
    "RuleAuditEntry",
    "RuleAuditLog",
    "RuleScope",
    "RuleStatus",
    "Stop",
    "StopLocation",
    "StopSchedule",
    "StopType",
    "StructuredShipment",
    "SuggestedRule",
    "SuggestedRuleType",
    "TemperatureMode",
    "VerificationResult",
    "VerificationWarning",
    "VerifiedShipmentResult",
    "WarningCategory",
    "WarningReason",
    "normalize_reference_value",
]
