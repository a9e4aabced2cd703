import logging

from pydantic import BaseModel, ValidationError, field_validator

class SettingsSchema(BaseModel):
    db_path: str = "fitnessrpg.db"
    default_user_id: str = "demo-user"
    log_level: str = "INFO"
    recent_foods_limit: int = 10
    seed_catalog: bool = True

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        value = value.upper()
        if not isinstance(logging.getLevelName(value), int):
            raise ValueError(f"unknown log level {value}")
        return value

    @field_validator("recent_foods_limit")
    @classmethod
    def _positive_limit(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("recent_foods_limit must be positive")
        return value

def validate_settings(data: dict) -> SettingsSchema:
    try:
        return SettingsSchema(**data)
    except ValidationError as e:
        raise ValueError(str(e))
