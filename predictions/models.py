import math
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

# counted in code points, so one emoji is one character
NAME_MAX_LENGTH = 100
PERCENT_MIN = 0.0
PERCENT_MAX = 100.0

TRUTHY_STRINGS = {"true", "1", "yes", "on"}


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PredictionCreate(CamelModel):
    """Untrusted prediction payload, coerced into a typed record.

    Optional fields take their default only when absent or null, so an
    explicit ``false`` or ``""`` from the caller is kept as sent.
    """

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="ignore"
    )

    name: str = Field(..., max_length=NAME_MAX_LENGTH, description="Who predicts")
    percent: float = Field(
        ..., ge=PERCENT_MIN, le=PERCENT_MAX, description="Probability, 0-100"
    )
    will_go: bool = Field(False, description="Predicted outcome")
    emoji: str = Field("", description="Decorative emoji")
    title: str = Field("", description="Decorative title")
    message: str = Field("", description="Free-form message")
    special: bool = Field(False, description="Highlight flag")

    @field_validator("name", mode="before")
    @classmethod
    def validate_name(cls, v: Any) -> str:
        if not isinstance(v, str):
            raise ValueError("name must be a string")
        v = v.strip()
        if not v:
            raise ValueError("name must not be blank")
        if len(v) > NAME_MAX_LENGTH:
            raise ValueError(f"name must be at most {NAME_MAX_LENGTH} characters")
        return v

    @field_validator("percent", mode="before")
    @classmethod
    def validate_percent(cls, v: Any) -> float:
        if isinstance(v, bool) or v is None:
            raise ValueError("percent must be a number")
        if isinstance(v, str):
            try:
                v = float(v.strip())
            except ValueError:
                raise ValueError("percent must be a number")
        elif isinstance(v, (int, float)):
            try:
                v = float(v)
            except OverflowError:
                raise ValueError("percent must be between 0 and 100")
        else:
            raise ValueError("percent must be a number")
        if not math.isfinite(v) or not PERCENT_MIN <= v <= PERCENT_MAX:
            raise ValueError("percent must be between 0 and 100")
        return v

    @field_validator("will_go", "special", mode="before")
    @classmethod
    def coerce_flag(cls, v: Any) -> bool:
        """Unlike plain truthiness, strings such as "false" or "abc" are false."""
        if v is None:
            return False
        if isinstance(v, bool):
            return v
        if isinstance(v, (int, float)):
            return v != 0
        if isinstance(v, str):
            return v.strip().lower() in TRUTHY_STRINGS
        return bool(v)

    @field_validator("emoji", "title", "message", mode="before")
    @classmethod
    def coerce_text(cls, v: Any) -> str:
        if v is None:
            return ""
        if not isinstance(v, str):
            raise ValueError("must be a string")
        return v


class Prediction(CamelModel):
    id: str = Field(..., description="Store-assigned identifier")
    name: str
    percent: float
    will_go: bool = False
    emoji: str = ""
    title: str = ""
    message: str = ""
    special: bool = False
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_document(cls, doc: dict) -> "Prediction":
        data = {k: v for k, v in doc.items() if k != "_id"}
        data["id"] = str(doc["_id"])
        data.setdefault("updatedAt", data.get("createdAt"))
        return cls.model_validate(data)


class PredictionCreatedResponse(CamelModel):
    ok: bool = True
    id: str = Field(..., description="Identifier of the new prediction")
    created_at: datetime = Field(..., description="Creation time, UTC")


class PredictionListResponse(CamelModel):
    ok: bool = True
    results: list[Prediction]


class PredictionsDeletedResponse(CamelModel):
    ok: bool = True
    deleted: bool = True
    deleted_count: int = Field(0, description="Number of removed predictions")


class HealthResponse(CamelModel):
    ok: bool = True
    time: datetime
