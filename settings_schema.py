import datetime
from pydantic import BaseModel, ValidationError, field_validator


class SettingsSchema(BaseModel):
    default_cycle_anchor: str = "2026-01-05"
    language: str = "de"
    chart_window: int = 10
    weigh_in_limit: int = 3000
    event_limit: int = 5000
    training_limit: int = 2000
    group_code_length: int = 6
    api_token: str = ""

    @field_validator("default_cycle_anchor", mode="before")
    @classmethod
    def _iso_date(cls, value):
        if isinstance(value, datetime.date):
            value = value.isoformat()
        datetime.date.fromisoformat(str(value))
        return str(value)

    @field_validator("api_token", mode="before")
    @classmethod
    def _token_text(cls, value):
        return "" if value is None else str(value)

    @field_validator("language")
    @classmethod
    def _language(cls, value: str) -> str:
        if value not in {"de", "en"}:
            raise ValueError("language must be 'de' or 'en'")
        return value

    @field_validator("chart_window", "weigh_in_limit", "event_limit", "training_limit")
    @classmethod
    def _positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be positive")
        return value

    @field_validator("group_code_length")
    @classmethod
    def _code_length(cls, value: int) -> int:
        if value < 4:
            raise ValueError("group codes need at least 4 characters")
        return value


def validate_settings(data: dict) -> None:
    try:
        SettingsSchema(**data)
    except ValidationError as e:
        raise ValueError(str(e))
