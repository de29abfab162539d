from tender_engine.verification.cargo_defaults import apply_cargo_defaults
from tender_engine.verification.normalizer import needs_normalization, normalize_shipment
from tender_engine.verification.verifier import ShipmentVerifier, verify_shipment

__all__ = [
    "ShipmentVerifier",
    "apply_cargo_defaults",
    "needs_normalization",
    "normalize_shipment",
    "verify_shipment",
]
