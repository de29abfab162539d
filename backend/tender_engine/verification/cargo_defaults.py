"""Pure cargo-default application: fills blanks from a customer's learned cargo hints."""

import logging

from tender_engine.config import Settings, settings as default_settings
from tender_engine.schemas.customer import CargoHints
from tender_engine.schemas.shipment import StructuredShipment, TemperatureMode
from tender_engine.schemas.verification import FieldProvenance, ProvenanceSourceType

logger = logging.getLogger("tender.cargo_defaults")

RULE_CONFIDENCE = 0.8

_MODE_CATEGORIES = {
    TemperatureMode.FROZEN: "frozen",
    TemperatureMode.REFRIGERATED: "refrigerated",
    TemperatureMode.REEFER: "refrigerated",
    TemperatureMode.DRY: "dry",
    TemperatureMode.AMBIENT: "dry",
}


def temperature_category(
    value: float | None,
    mode: TemperatureMode | None,
    *,
    frozen_max: float = 32.0,
    refrigerated_max: float = 45.0,
) -> str | None:
    """Bucket a load into frozen / refrigerated / dry.

    The numeric temperature wins over the mode when both are present.

    Returns:
        "frozen", "refrigerated", "dry", or None when neither is known.
    """
    if value is not None:
        if value < frozen_max:
            return "frozen"
        if value <= refrigerated_max:
            return "refrigerated"
        return "dry"
    if mode is not None:
        return _MODE_CATEGORIES.get(TemperatureMode(mode))
    return None


def _rule_provenance(reason: str) -> FieldProvenance:
    return FieldProvenance(
        source_type=ProvenanceSourceType.RULE,
        confidence=RULE_CONFIDENCE,
        reason=reason,
    )


def apply_cargo_defaults(
    shipment: StructuredShipment,
    cargo_hints: CargoHints | None,
    settings: Settings | None = None,
) -> tuple[StructuredShipment, dict[str, FieldProvenance]]:
    """Fill a blank commodity and temperature mode from learned customer hints.

    Args:
        shipment: Verified shipment, left untouched
        cargo_hints: The customer's learned cargo defaults, if any
        settings: Overrides for the temperature category bounds

    Returns:
        Tuple of (shipment copy with defaults applied, rule provenance keyed by path).
    """
    if cargo_hints is None:
        return shipment, {}

    cfg = settings or default_settings
    cargo = shipment.cargo
    temperature = cargo.temperature
    updates = {}
    provenance: dict[str, FieldProvenance] = {}

    if not cargo.commodity and cargo_hints.commodity_by_temp is not None:
        category = temperature_category(
            temperature.value if temperature else None,
            temperature.mode if temperature else None,
            frozen_max=cfg.frozen_max_temp_f,
            refrigerated_max=cfg.refrigerated_max_temp_f,
        )
        learned = getattr(cargo_hints.commodity_by_temp, category) if category else None
        if learned:
            updates["commodity"] = learned
            provenance["cargo.commodity"] = _rule_provenance(f"commodity_by_temp:{category}")
            logger.info("Applied %s commodity default %r", category, learned)

    if not cargo.commodity and "commodity" not in updates and cargo_hints.default_commodity:
        updates["commodity"] = cargo_hints.default_commodity
        provenance["cargo.commodity"] = _rule_provenance("default_commodity")
        logger.info("Applied default commodity %r", cargo_hints.default_commodity)

    if temperature is not None and temperature.mode is None and cargo_hints.default_temp_mode:
        updates["temperature"] = temperature.model_copy(update={"mode": cargo_hints.default_temp_mode})
        provenance["cargo.temperature.mode"] = _rule_provenance("default_temp_mode")
        logger.info("Applied default temperature mode %s", cargo_hints.default_temp_mode)

    if not updates:
        return shipment, {}
    return shipment.model_copy(update={"cargo": cargo.model_copy(update=updates)}), provenance
