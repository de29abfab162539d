"""
Extraction, verification and learning pipeline for load tenders.

Flow:
  1. extract: raw text (+ customer profile) -> typed candidates and rule audit log
  2. External classifier drafts a StructuredShipment (not part of this package)
  3. verify: normalize reference scoping -> evidence check -> customer cargo defaults
  4. Human reviews and corrects the shipment
  5. learn: draft vs approved shipment -> rule suggestions and learning events

Every stage is synchronous and free of I/O; one pipeline instance holds no
per-document state and may be shared.
"""

import logging

from tender_engine.config import Settings, settings as default_settings
from tender_engine.document_extractor.extractor import CandidateExtractor
from tender_engine.learning.detector import LearningDetector, is_rule_already_learned
from tender_engine.schemas.candidate import ExtractionResult
from tender_engine.schemas.customer import CustomerProfile
from tender_engine.schemas.learning import LearningOutcome
from tender_engine.schemas.shipment import StructuredShipment
from tender_engine.schemas.verification import FieldProvenance, VerifiedShipmentResult
from tender_engine.tracing import stage_trace
from tender_engine.verification.cargo_defaults import apply_cargo_defaults
from tender_engine.verification.normalizer import normalize_shipment
from tender_engine.verification.verifier import ShipmentVerifier, hallucinated_warnings

logger = logging.getLogger("tender.pipeline")


class TenderPipeline:
    """Orchestrates the extract, verify and learn stages."""

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or default_settings
        self.extractor = CandidateExtractor(self.settings)
        self.verifier = ShipmentVerifier(self.settings)
        self.detector = LearningDetector(self.settings)

    def extract(self, text: str, profile: CustomerProfile | None = None) -> ExtractionResult:
        with stage_trace("extract", customer_id=profile.id if profile else None) as trace:
            result = self.extractor.extract(text, profile)
            trace.record(
                text_length=len(text),
                candidates=len(result.candidates),
                customer_rules_applied=result.metadata.applied_customer_rules,
                rules_skipped=len(result.audit_log.skipped),
            )
        return result

    def verify(
        self,
        draft: StructuredShipment,
        extraction: ExtractionResult,
        text: str,
        profile: CustomerProfile | None = None,
        existing_provenance: dict[str, FieldProvenance] | None = None,
    ) -> VerifiedShipmentResult:
        """Normalize, verify and apply cargo defaults to a classifier draft.

        Args:
            draft: Shipment produced by the external classifier
            extraction: Result of ``extract`` on the same text
            text: Original tender text
            profile: Customer profile, for learned cargo defaults
            existing_provenance: Provenance already known for fields, keyed by path

        Returns:
            VerifiedShipmentResult with categorized warnings and per-field provenance.
        """
        candidates = extraction.candidates
        with stage_trace("verify", customer_id=profile.id if profile else None) as trace:
            normalized, normalization = normalize_shipment(draft, text, candidates, self.settings)
            verification = self.verifier.verify(normalized, candidates, text, existing_provenance)

            shipment, default_provenance = apply_cargo_defaults(
                verification.shipment,
                profile.cargo_hints if profile else None,
                self.settings,
            )
            provenance = {**verification.provenance, **default_provenance}

            trace.record(
                refs_moved=normalization.refs_moved_to_stops,
                refs_deduplicated=normalization.refs_deduplicated,
                warnings=len(verification.warnings),
                hallucinated=len(hallucinated_warnings(verification.warnings)),
                defaults_applied=len(default_provenance),
            )

        return VerifiedShipmentResult(
            shipment=shipment,
            warnings=verification.warnings,
            provenance=provenance,
            normalization=normalization,
        )

    def learn(
        self,
        original: StructuredShipment,
        final: StructuredShipment,
        extraction: ExtractionResult,
        text: str,
        profile: CustomerProfile | None = None,
    ) -> LearningOutcome:
        """Derive rule suggestions and learning events from a human correction.

        Suggestions the profile already holds are dropped.
        """
        candidates = extraction.candidates
        with stage_trace("learn", customer_id=profile.id if profile else None) as trace:
            suggestions = self.detector.detect_reclassifications(original, final, candidates, text)
            if profile is not None:
                fresh = [
                    s for s in suggestions
                    if not is_rule_already_learned(
                        s,
                        profile.reference_label_rules,
                        profile.reference_regex_rules,
                        profile.reference_value_rules,
                    )
                ]
                if len(fresh) < len(suggestions):
                    logger.info(
                        "Dropped %d suggestions already learned for customer %s",
                        len(suggestions) - len(fresh), profile.id,
                    )
                suggestions = fresh
            events = self.detector.detect_all_edits(original, final, candidates, text)
            trace.record(suggestions=len(suggestions), events=len(events))

        return LearningOutcome(suggestions=suggestions, events=events)
