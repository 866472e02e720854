"""
Sensor Snapshot Model

Typed view of the flat JSON payload the firmware uploads to
``environment-current``. Keys arrive in camelCase; unknown keys are
ignored and firmware "no reading" sentinels become None.
"""

from typing import Annotated, Any

from pydantic import (
    AliasChoices,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    ValidationError as PydanticValidationError,
    model_validator,
)
from pydantic.alias_generators import to_camel

from paws_server.common.exceptions import ValidationError

# Values the firmware sends when a sensor has no reading
_SENTINELS = frozenset({"", "--", "NaN", "nan", "null"})

ENVIRONMENT_METRICS = ("temperature", "humidity", "co2", "voc", "methanal")


def _strip_percent(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip().rstrip("%").strip()
    return value


Percent = Annotated[float | None, BeforeValidator(_strip_percent)]


class SensorSnapshot(BaseModel):
    """One sensor upload, all fields optional"""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )

    # Water
    water_level: Percent = None
    water_level_state: str | None = None
    water_low: bool | None = None

    # Motion
    motion_light: bool | None = None
    distance: float | None = None

    # Bark
    bark_count: int | None = None
    bark_alert: bool | None = None

    # Feeder
    feeder_state: str | None = None
    feeder_status: str | None = None
    feeding: bool | None = None
    feeder_weight: float | None = None

    # Activity
    sleeping: bool | None = None
    pet_weight: float | None = Field(
        default=None,
        validation_alias=AliasChoices("petWeight", "pet_weight", "weight"),
    )

    # Air quality / environment
    aqi: float | str | None = None
    air_quality_alert: bool | None = None
    fan_on: bool | None = None
    temperature: float | None = None
    humidity: Percent = None
    co2: float | None = None
    voc: float | None = None
    methanal: float | None = None

    @model_validator(mode="before")
    @classmethod
    def _drop_sentinels(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        return {
            key: value
            for key, value in data.items()
            if not (isinstance(value, str) and value.strip() in _SENTINELS)
        }

    @classmethod
    def from_document(cls, document: Any) -> "SensorSnapshot":
        """
        Parse a stored or uploaded snapshot.

        Raises:
            ValidationError: the payload isn't an object or a field has the
                wrong type
        """
        if not isinstance(document, dict):
            raise ValidationError(
                f"Snapshot must be an object, got {type(document).__name__}"
            )
        try:
            return cls.model_validate(document)
        except PydanticValidationError as e:
            first = e.errors()[0] if e.errors() else {}
            location = ".".join(str(part) for part in first.get("loc", ()))
            raise ValidationError(
                f"Invalid snapshot field {location or '?'}: {first.get('msg', str(e))}",
                field=location or None,
            ) from e

    def environment_metrics(self) -> dict[str, Any]:
        """Environment readings present in this snapshot (AQI included)"""
        metrics = {
            name: getattr(self, name)
            for name in ENVIRONMENT_METRICS
            if getattr(self, name) is not None
        }
        if self.aqi is not None:
            metrics["aqi"] = self.aqi
        return metrics
