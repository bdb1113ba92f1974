"""Request payload schemas.

Payloads arrive with camelCase keys from the HTTP API and snake_case keys
from Python callers; both are accepted. Update payloads carry partial-patch
semantics: only the fields actually supplied (``changes()``) are applied.
"""

import re
from datetime import date
from typing import Annotated, Any, ClassVar

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from wbs_tracker.core.passwords import validate_password_policy
from wbs_tracker.db.models import ProjectStatus, TaskStatus

_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def _parse_calendar_date(value: Any) -> Any:
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not _DATE_PATTERN.match(value):
        raise ValueError("date must be in YYYY-MM-DD format")
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise ValueError("date does not exist") from None


CalendarDate = Annotated[date, BeforeValidator(_parse_calendar_date)]
PositiveId = Annotated[int, Field(gt=0)]


class _Payload(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class _Patch(_Payload):
    # fields that may be omitted but never explicitly set to null
    non_nullable_fields: ClassVar[tuple[str, ...]] = ()

    @model_validator(mode="after")
    def _reject_nulls(self):
        for name in self.non_nullable_fields:
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self

    def changes(self) -> dict[str, Any]:
        """Only the fields the caller supplied, keyed by snake_case name."""
        return self.model_dump(include=self.model_fields_set)


# ── Users ─────────────────────────────────────────────────────────────────────


class ChangePasswordRequest(_Payload):
    current_password: str = Field(min_length=1)
    new_password: str

    @field_validator("new_password")
    @classmethod
    def _check_policy(cls, v: str) -> str:
        if not validate_password_policy(v):
            raise ValueError(
                "password must be at least 8 characters and contain a letter and a digit"
            )
        return v


# ── Projects ──────────────────────────────────────────────────────────────────


class CreateProjectRequest(_Payload):
    name: str = Field(min_length=1)
    start_date: CalendarDate
    end_date: CalendarDate | None = None
    description: str | None = None
    pm_id: PositiveId


class UpdateProjectRequest(_Patch):
    non_nullable_fields: ClassVar[tuple[str, ...]] = ("name", "status", "start_date")

    name: str | None = Field(default=None, min_length=1)
    status: ProjectStatus | None = None
    start_date: CalendarDate | None = None
    end_date: CalendarDate | None = None
    description: str | None = None


class FavoriteRequest(_Payload):
    is_favorite: bool


class AddMemberRequest(_Payload):
    user_id: PositiveId


# ── Tasks ─────────────────────────────────────────────────────────────────────


class CreateTaskRequest(_Payload):
    parent_task_id: PositiveId | None = None
    name: str = Field(min_length=1)
    assignee_id: PositiveId | None = None
    start_date: CalendarDate | None = None
    end_date: CalendarDate | None = None
    status: TaskStatus | None = None
    planned_hours: float | None = Field(default=None, ge=0)
    display_order: int | None = Field(default=None, ge=0)


class UpdateTaskRequest(_Patch):
    non_nullable_fields: ClassVar[tuple[str, ...]] = ("name", "status", "display_order")

    name: str | None = Field(default=None, min_length=1)
    assignee_id: PositiveId | None = None
    start_date: CalendarDate | None = None
    end_date: CalendarDate | None = None
    status: TaskStatus | None = None
    planned_hours: float | None = Field(default=None, ge=0)
    display_order: int | None = Field(default=None, ge=0)
