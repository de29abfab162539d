import pytest

from tender_engine.config import Settings
from tender_engine.schemas.customer import (
    CargoHints,
    CommodityByTemp,
    CustomerProfile,
    ReferenceLabelRule,
    ReferenceValueRule,
)
from tender_engine.schemas.shipment import (
    CargoDetails,
    ReferenceNumber,
    Stop,
    StopType,
    StructuredShipment,
)


@pytest.fixture
def test_settings() -> Settings:
    """Settings built in-process so tests never depend on TENDER_* env vars."""
    return Settings(_env_file=None)


@pytest.fixture
def sample_tender() -> str:
    """A two-stop tender with a load number, scoped refs and cargo totals."""
    return (
        "LOAD TENDER\n"
        "Load #: 121230\n"
        "\n"
        "Pickup\n"
        "Acme Foods\n"
        "Ref: 88341276\n"
        "01/15/2026 08:00\n"
        "\n"
        "Delivery\n"
        "Big Store\n"
        "Ref: 99120456\n"
        "01/17/2026\n"
        "\n"
        "42,000 lbs\n"
        "22 pallets\n"
    )


@pytest.fixture
def scoped_tender() -> str:
    """Pickup and delivery blocks each carrying an unlabeled 8-digit number."""
    return (
        "LOAD TENDER\n"
        "Pickup\n"
        "Acme Foods\n"
        "Ref: 88341276\n"
        "Delivery\n"
        "Big Store\n"
        "Ref: 99120456\n"
    )


@pytest.fixture
def acme_profile() -> CustomerProfile:
    return CustomerProfile(
        id="acme",
        name="Acme Foods",
        reference_label_rules=[
            ReferenceLabelRule(label="Release", subtype="po"),
        ],
        reference_value_rules=[
            ReferenceValueRule(pattern=r"^TRFR\d{7,}$", subtype="po"),
        ],
        cargo_hints=CargoHints(
            commodity_by_temp=CommodityByTemp(frozen="Frozen Poultry", dry="Canned Goods"),
            default_temp_mode="frozen",
        ),
    )


def make_shipment(refs=(), stops=(), cargo=None) -> StructuredShipment:
    """Build a shipment from (type, value) ref tuples and stop types."""
    return StructuredShipment(
        reference_numbers=[ReferenceNumber(type=t, value=v) for t, v in refs],
        stops=[Stop(type=StopType(s), sequence=i + 1) for i, s in enumerate(stops)],
        cargo=cargo or CargoDetails(),
    )


@pytest.fixture
def shipment_factory():
    return make_shipment
