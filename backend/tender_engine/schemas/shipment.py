import enum

from pydantic import BaseModel, Field

from tender_engine.schemas.candidate import ReferenceSubtype


class StopType(str, enum.Enum):
    PICKUP = "pickup"
    DELIVERY = "delivery"


class ReferenceScope(str, enum.Enum):
    """Where a reference number applies within the shipment."""

    GLOBAL = "global"
    PICKUP = "pickup"
    DELIVERY = "delivery"
    STOP = "stop"


def normalize_reference_value(value: str) -> str:
    """Comparison key for reference numbers: trimmed, upper-cased, leading zeros dropped."""
    trimmed = value.strip().upper()
    return trimmed.lstrip("0") or trimmed


# --- Shared Sub-Models ---


class ReferenceNumber(BaseModel):
    type: ReferenceSubtype = ReferenceSubtype.UNKNOWN
    value: str
    applies_to: ReferenceScope | None = None

    @property
    def normalized_value(self) -> str:
        return normalize_reference_value(self.value)


class StopLocation(BaseModel):
    name: str | None = None
    address: str | None = None
    city: str | None = None
    state: str | None = None
    zip: str | None = None
    country: str | None = None


class StopSchedule(BaseModel):
    date: str | None = Field(None, description="Date exactly as written in the tender")
    time: str | None = Field(None, description="Time exactly as written in the tender")
    appointment_required: bool | None = None


class Stop(BaseModel):
    type: StopType
    sequence: int = 1
    location: StopLocation = Field(default_factory=StopLocation)
    schedule: StopSchedule = Field(default_factory=StopSchedule)
    reference_numbers: list[ReferenceNumber] = Field(default_factory=list)
    notes: str | None = None


# --- Cargo ---


class CargoWeight(BaseModel):
    value: float | None = None
    unit: str | None = Field(None, description="lbs or kg")


class CargoPieces(BaseModel):
    count: int | None = None
    type: str | None = Field(None, description="pallets, cases, pieces, ...")


class CargoDimensions(BaseModel):
    length: float | None = None
    width: float | None = None
    height: float | None = None
    unit: str | None = None


class TemperatureMode(str, enum.Enum):
    FROZEN = "frozen"
    REFRIGERATED = "refrigerated"
    DRY = "dry"
    AMBIENT = "ambient"
    REEFER = "reefer"


class CargoTemperature(BaseModel):
    value: float | None = None
    unit: str | None = Field(None, description="F or C")
    mode: TemperatureMode | None = None


class CargoDetails(BaseModel):
    weight: CargoWeight = Field(default_factory=CargoWeight)
    pieces: CargoPieces = Field(default_factory=CargoPieces)
    dimensions: CargoDimensions | None = None
    commodity: str | None = None
    temperature: CargoTemperature | None = None


class ClassificationMetadata(BaseModel):
    model: str | None = None
    classified_at: str | None = None
    confidence_notes: str | None = None


class StructuredShipment(BaseModel):
    """Structured load tender, drafted by an external classifier and corrected here."""

    reference_numbers: list[ReferenceNumber] = Field(default_factory=list)
    stops: list[Stop] = Field(default_factory=list)
    cargo: CargoDetails = Field(default_factory=CargoDetails)
    unclassified_notes: list[str] = Field(default_factory=list)
    classification_metadata: ClassificationMetadata = Field(
        default_factory=ClassificationMetadata
    )

    def stops_of_type(self, stop_type: StopType) -> list[int]:
        """Indexes of stops with the given type, in document order."""
        return [i for i, stop in enumerate(self.stops) if stop.type == stop_type]
