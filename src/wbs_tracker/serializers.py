"""JSON-ready dictionaries for domain objects, shared by the API surfaces."""

from datetime import date, datetime

from wbs_tracker.db.models import Member, ProjectDetail, ProjectSummary, ReviewCategory, Task


def _iso(value: date | datetime | None) -> str | None:
    return value.isoformat() if value else None


def project_summary_dict(p: ProjectSummary) -> dict:
    return {
        "id": p.id,
        "name": p.name,
        "status": p.status.value,
        "startDate": _iso(p.start_date),
        "endDate": _iso(p.end_date),
        "pmName": p.pm_name,
        "isFavorite": p.is_favorite,
    }


def project_detail_dict(p: ProjectDetail) -> dict:
    return {
        "id": p.id,
        "name": p.name,
        "status": p.status.value,
        "startDate": _iso(p.start_date),
        "endDate": _iso(p.end_date),
        "description": p.description,
        "pmId": p.pm_id,
        "pmName": p.pm_name,
        "bugSequence": p.bug_sequence,
        "createdAt": _iso(p.created_at),
        "updatedAt": _iso(p.updated_at),
    }


def member_dict(m: Member) -> dict:
    return {
        "userId": m.user_id,
        "name": m.name,
        "email": m.email,
        "role": m.role.value,
        "isFavorite": m.is_favorite,
    }


def review_category_dict(c: ReviewCategory) -> dict:
    return {"id": c.id, "name": c.name, "sortOrder": c.sort_order}


def task_dict(t: Task) -> dict:
    return {
        "id": t.id,
        "projectId": t.project_id,
        "parentTaskId": t.parent_task_id,
        "level": t.level,
        "name": t.name,
        "assigneeId": t.assignee_id,
        "assigneeName": t.assignee_name,
        "startDate": _iso(t.start_date),
        "endDate": _iso(t.end_date),
        "status": t.status.value,
        "plannedHours": t.planned_hours,
        "actualHours": t.actual_hours,
        "displayOrder": t.display_order,
    }
