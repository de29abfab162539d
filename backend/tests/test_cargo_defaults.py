"""Tests for learned cargo defaults."""

import pytest

from tender_engine.schemas.customer import CargoHints, CommodityByTemp
from tender_engine.schemas.shipment import (
    CargoDetails,
    CargoTemperature,
    StructuredShipment,
    TemperatureMode,
)
from tender_engine.schemas.verification import ProvenanceSourceType
from tender_engine.verification.cargo_defaults import (
    RULE_CONFIDENCE,
    apply_cargo_defaults,
    temperature_category,
)


def shipment_with(commodity=None, temperature=None) -> StructuredShipment:
    return StructuredShipment(cargo=CargoDetails(commodity=commodity, temperature=temperature))


class TestTemperatureCategory:
    """Tests for temperature_category."""

    @pytest.mark.parametrize("value,expected", [
        (-10.0, "frozen"),
        (31.9, "frozen"),
        (32.0, "refrigerated"),
        (45.0, "refrigerated"),
        (55.0, "dry"),
    ])
    def test_numeric_bounds(self, value, expected):
        assert temperature_category(value, None) == expected

    def test_mode_fallback(self):
        assert temperature_category(None, TemperatureMode.REEFER) == "refrigerated"
        assert temperature_category(None, TemperatureMode.AMBIENT) == "dry"
        assert temperature_category(None, TemperatureMode.FROZEN) == "frozen"

    def test_value_beats_mode(self):
        assert temperature_category(20.0, TemperatureMode.DRY) == "frozen"

    def test_nothing_known(self):
        assert temperature_category(None, None) is None

    def test_custom_bounds(self):
        assert temperature_category(30.0, None, frozen_max=0.0, refrigerated_max=8.0) == "dry"


class TestApplyCargoDefaults:
    """Tests for apply_cargo_defaults."""

    def test_no_hints_returns_input(self):
        shipment = shipment_with()
        result, provenance = apply_cargo_defaults(shipment, None)
        assert result is shipment
        assert provenance == {}

    def test_commodity_by_frozen_temperature(self, acme_profile, test_settings):
        shipment = shipment_with(temperature=CargoTemperature(value=0.0, unit="F"))

        result, provenance = apply_cargo_defaults(shipment, acme_profile.cargo_hints, test_settings)

        assert result.cargo.commodity == "Frozen Poultry"
        prov = provenance["cargo.commodity"]
        assert prov.source_type == ProvenanceSourceType.RULE
        assert prov.confidence == RULE_CONFIDENCE
        assert prov.reason == "commodity_by_temp:frozen"

    def test_default_temp_mode_filled(self, acme_profile):
        shipment = shipment_with(temperature=CargoTemperature(value=0.0))
        result, provenance = apply_cargo_defaults(shipment, acme_profile.cargo_hints)
        assert result.cargo.temperature.mode == TemperatureMode.FROZEN
        assert result.cargo.temperature.value == 0.0
        assert provenance["cargo.temperature.mode"].reason == "default_temp_mode"

    def test_existing_values_kept(self, acme_profile):
        shipment = shipment_with(
            commodity="Ice Cream",
            temperature=CargoTemperature(value=-5.0, mode=TemperatureMode.REEFER),
        )
        result, provenance = apply_cargo_defaults(shipment, acme_profile.cargo_hints)
        assert result.cargo.commodity == "Ice Cream"
        assert result.cargo.temperature.mode == TemperatureMode.REEFER
        assert provenance == {}

    def test_default_commodity_when_category_unlearned(self):
        hints = CargoHints(
            commodity_by_temp=CommodityByTemp(frozen="Frozen Poultry"),
            default_commodity="General Freight",
        )
        shipment = shipment_with(temperature=CargoTemperature(value=38.0))

        result, provenance = apply_cargo_defaults(shipment, hints)

        assert result.cargo.commodity == "General Freight"
        assert provenance["cargo.commodity"].reason == "default_commodity"

    def test_default_commodity_without_temperature(self):
        hints = CargoHints(default_commodity="Paper Goods", default_temp_mode="dry")
        result, provenance = apply_cargo_defaults(shipment_with(), hints)
        assert result.cargo.commodity == "Paper Goods"
        # No temperature object to attach a mode to
        assert result.cargo.temperature is None
        assert set(provenance) == {"cargo.commodity"}

    def test_input_not_mutated(self, acme_profile):
        shipment = shipment_with(temperature=CargoTemperature(value=0.0))
        apply_cargo_defaults(shipment, acme_profile.cargo_hints)
        assert shipment.cargo.commodity is None
        assert shipment.cargo.temperature.mode is None
