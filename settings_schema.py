from typing import Literal, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


class SettingsSchema(BaseModel):
    db_path: str = "workout.db"
    in_memory: bool = False
    first_weekday: int = Field(0, ge=0, le=6)
    timezone: Optional[str] = None
    summary_max_lines: int = Field(3, ge=1)
    stats_default_range: Literal["4W", "3M", "6M", "1Y", "All"] = "3M"
    weight_unit: Literal["kg", "lb"] = "kg"

    @field_validator("timezone")
    @classmethod
    def _known_timezone(cls, value: Optional[str]) -> Optional[str]:
        if value in (None, ""):
            return None
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"unknown timezone {value!r}") from e
        return value


def validate_settings(data: dict) -> SettingsSchema:
    try:
        return SettingsSchema(**data)
    except ValidationError as e:
        raise ValueError(str(e))
