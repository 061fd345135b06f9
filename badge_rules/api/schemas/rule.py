from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base for wire models: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _check_time_window(start_time: datetime | None, end_time: datetime | None) -> None:
    if start_time is not None and end_time is not None and start_time > end_time:
        raise ValueError("startTime must not be after endTime")


class RuleEnvelope(CamelModel):
    """A rule as sent to the persistence API: the tree plus its metadata."""

    rule_code: str = Field(min_length=1, max_length=100)
    event_type: str = Field(min_length=1, max_length=100)
    name: str = Field(min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=2000)
    rule_json: dict[str, Any]
    start_time: datetime | None = None
    end_time: datetime | None = None
    max_count_per_user: int | None = Field(default=None, ge=1)
    global_quota: int | None = Field(default=None, ge=1)
    enabled: bool | None = None

    @model_validator(mode="after")
    def validate_time_window(self) -> RuleEnvelope:
        _check_time_window(self.start_time, self.end_time)
        return self


class RuleUpdate(CamelModel):
    """Partial update; omitted fields are left unchanged by the persistence API."""

    name: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=2000)
    rule_json: dict[str, Any] | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    max_count_per_user: int | None = Field(default=None, ge=1)
    global_quota: int | None = Field(default=None, ge=1)
    enabled: bool | None = None

    @model_validator(mode="after")
    def validate_time_window(self) -> RuleUpdate:
        _check_time_window(self.start_time, self.end_time)
        return self


class ValidateRuleRequest(CamelModel):
    rule_json: dict[str, Any]


class RuleViolation(CamelModel):
    code: str
    message: str
    path: str
    details: dict[str, Any] = Field(default_factory=dict)


class ValidateRuleResponse(CamelModel):
    valid: bool
    depth: int | None = None
    condition_count: int | None = None
    canonical_json: str | None = None
    checksum: str | None = None
    error: RuleViolation | None = None


class FieldResponse(CamelModel):
    field: str
    type: str
    label: str
    category: str | None = None
    operators: list[str]
    is_active: bool
