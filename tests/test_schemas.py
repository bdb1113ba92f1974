"""Tests for request payload validation."""

from datetime import date

import pydantic
import pytest

from wbs_tracker.db.models import ProjectStatus, TaskStatus
from wbs_tracker.schemas import (
    ChangePasswordRequest,
    CreateProjectRequest,
    CreateTaskRequest,
    UpdateProjectRequest,
    UpdateTaskRequest,
)


class TestDates:
    def test_camel_case_keys(self):
        data = CreateProjectRequest.model_validate(
            {"name": "Alpha", "startDate": "2025-01-01", "endDate": "2025-12-31", "pmId": 3}
        )
        assert data.start_date == date(2025, 1, 1)
        assert data.end_date == date(2025, 12, 31)
        assert data.pm_id == 3

    @pytest.mark.parametrize("value", ["2025/01/01", "20250101", "2025-1-1", "tomorrow"])
    def test_bad_format(self, value):
        with pytest.raises(pydantic.ValidationError):
            CreateProjectRequest(name="Alpha", start_date=value, pm_id=1)

    @pytest.mark.parametrize("value", ["2025-02-30", "2025-13-01", "2023-02-29"])
    def test_nonexistent_date(self, value):
        with pytest.raises(pydantic.ValidationError, match="date does not exist"):
            CreateProjectRequest(name="Alpha", start_date=value, pm_id=1)

    def test_leap_day(self):
        data = CreateProjectRequest(name="Alpha", start_date="2024-02-29", pm_id=1)
        assert data.start_date == date(2024, 2, 29)


class TestProjectPayloads:
    def test_name_required(self):
        with pytest.raises(pydantic.ValidationError):
            CreateProjectRequest(name="", start_date="2025-01-01", pm_id=1)

    def test_pm_id_must_be_positive(self):
        with pytest.raises(pydantic.ValidationError):
            CreateProjectRequest(name="Alpha", start_date="2025-01-01", pm_id=0)

    def test_update_tracks_supplied_fields(self):
        data = UpdateProjectRequest.model_validate({"status": "archived", "endDate": None})
        assert data.changes() == {"status": ProjectStatus.ARCHIVED, "end_date": None}

    def test_update_rejects_null_name(self):
        with pytest.raises(pydantic.ValidationError, match="name cannot be null"):
            UpdateProjectRequest.model_validate({"name": None})

    def test_update_rejects_unknown_status(self):
        with pytest.raises(pydantic.ValidationError):
            UpdateProjectRequest(status="deleted")


class TestTaskPayloads:
    def test_status_values(self):
        assert CreateTaskRequest(name="x", status="保留").status == TaskStatus.ON_HOLD
        with pytest.raises(pydantic.ValidationError):
            CreateTaskRequest(name="x", status="done")

    def test_planned_hours_not_negative(self):
        with pytest.raises(pydantic.ValidationError):
            CreateTaskRequest(name="x", planned_hours=-1)
        assert CreateTaskRequest(name="x", planned_hours=0).planned_hours == 0

    def test_update_clears_nullable_fields(self):
        data = UpdateTaskRequest.model_validate({"assigneeId": None, "plannedHours": None})
        assert data.changes() == {"assignee_id": None, "planned_hours": None}

    @pytest.mark.parametrize("field", ["name", "status", "displayOrder"])
    def test_update_rejects_null_required_fields(self, field):
        with pytest.raises(pydantic.ValidationError):
            UpdateTaskRequest.model_validate({field: None})

    def test_empty_update(self):
        assert UpdateTaskRequest().changes() == {}


class TestChangePassword:
    def test_policy_enforced(self):
        with pytest.raises(pydantic.ValidationError, match="at least 8 characters"):
            ChangePasswordRequest(current_password="whatever", new_password="short1")

    def test_camel_case(self):
        data = ChangePasswordRequest.model_validate(
            {"currentPassword": "Old12345", "newPassword": "New12345"}
        )
        assert data.new_password == "New12345"
