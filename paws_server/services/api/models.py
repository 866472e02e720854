"""
Request Models

Pydantic models for the JSON bodies the mobile client sends.
"""

import re
from enum import Enum
from typing import Any, TypeVar

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError as PydanticValidationError,
    field_validator,
)
from pydantic.alias_generators import to_camel

from paws_server.common.exceptions import ValidationError

_HHMM = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")

ModelT = TypeVar("ModelT", bound=BaseModel)


class ActionType(str, Enum):
    """Side-effecting actions the client can trigger"""
    TOGGLE_LIGHT = "toggle_light"
    DISPENSE_FOOD = "dispense_food"
    RESET_FOOD_AMOUNT = "reset_food_amount"
    REFILL_WATER = "refill_water"


class ApiModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class FeedingSchedule(ApiModel):
    """Feeding schedule request and stored ``feeding`` document."""
    weight: float | None = Field(default=None, ge=0)
    meal1_time: str | None = Field(default=None, alias="meal1Time")
    meal2_time: str | None = Field(default=None, alias="meal2Time")
    meal_amount: float | None = Field(default=None, gt=0)

    @field_validator("meal1_time", "meal2_time", mode="before")
    @classmethod
    def check_time(cls, value: Any) -> str | None:
        if value is None or value == "":
            return None
        if not isinstance(value, str) or not _HHMM.match(value.strip()):
            raise ValueError("meal time must be HH:MM")
        return value.strip()

    @property
    def meal_times(self) -> list[str]:
        return [t for t in (self.meal1_time, self.meal2_time) if t]

    def to_document(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class ActionRequest(ApiModel):
    action: str


class PushedAcknowledgement(ApiModel):
    times: list[str] = Field(default_factory=list)


def parse_payload(model: type[ModelT], payload: Any) -> ModelT:
    """
    Validate a request body.

    Raises:
        ValidationError: body isn't an object or a field is invalid
    """
    if not isinstance(payload, dict):
        raise ValidationError(f"Request body must be an object, got {type(payload).__name__}")
    try:
        return model.model_validate(payload)
    except PydanticValidationError as e:
        first = e.errors()[0] if e.errors() else {}
        location = ".".join(str(part) for part in first.get("loc", ()))
        raise ValidationError(
            f"Invalid field {location or '?'}: {first.get('msg', str(e))}",
            field=location or None,
        ) from e
