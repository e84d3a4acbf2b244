from pydantic import BaseModel, Field, field_validator
from datetime import datetime
from typing import Optional

from vigil.schemas.alert import Severity
from vigil.services.rules_engine import check_dedup_template


def _validate_template(value: Optional[str]) -> Optional[str]:
    if value is not None:
        error = check_dedup_template(value)
        if error:
            raise ValueError(error)
    return value


class RuleSchedule(BaseModel):
    days: Optional[list[str]] = None
    start_time: Optional[str] = Field(None, pattern=r"^\d{1,2}:\d{2}$")
    end_time: Optional[str] = Field(None, pattern=r"^\d{1,2}:\d{2}$")
    timezone: Optional[str] = None


class RuleBase(BaseModel):
    description: Optional[str] = None
    enabled: bool = True
    severity: Severity = "medium"
    priority: int = 0
    camera_ids: Optional[list[str]] = None
    object_types: Optional[list[str]] = None
    zone_ids: Optional[list[str]] = None
    min_confidence: Optional[float] = Field(None, ge=0.0, le=1.0)
    min_objects: Optional[int] = Field(None, ge=1)
    schedule: Optional[RuleSchedule] = None
    cooldown_seconds: Optional[int] = Field(None, ge=0)
    dedup_key_template: Optional[str] = None


class RuleCreate(RuleBase):
    name: str = Field(..., min_length=1, max_length=200)

    @field_validator("dedup_key_template")
    @classmethod
    def valid_template(cls, value):
        return _validate_template(value)


class RuleUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    enabled: Optional[bool] = None
    severity: Optional[Severity] = None
    priority: Optional[int] = None
    camera_ids: Optional[list[str]] = None
    object_types: Optional[list[str]] = None
    zone_ids: Optional[list[str]] = None
    min_confidence: Optional[float] = Field(None, ge=0.0, le=1.0)
    min_objects: Optional[int] = Field(None, ge=1)
    schedule: Optional[RuleSchedule] = None
    cooldown_seconds: Optional[int] = Field(None, ge=0)
    dedup_key_template: Optional[str] = None

    @field_validator("dedup_key_template")
    @classmethod
    def valid_template(cls, value):
        return _validate_template(value)

    @field_validator("name", "enabled", "severity", "priority")
    @classmethod
    def not_null(cls, value):
        if value is None:
            raise ValueError("may be omitted but not null")
        return value


class RuleOut(RuleBase):
    id: int
    name: str
    schedule: Optional[dict] = None
    created_at: datetime
    updated_at: Optional[datetime]

    class Config:
        from_attributes = True


class RuleTestMatch(BaseModel):
    event_id: int
    camera_id: str
    matched_conditions: list[str]


class RuleTestOut(BaseModel):
    rule_id: int
    events_tested: int
    matches: list[RuleTestMatch]
