"""Persistence contracts the services depend on.

The SQLite implementations live in ``wbs_tracker.db.repositories``; unit
tests substitute in-memory stubs.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any, Protocol

from wbs_tracker.db.models import Member, Project, ProjectStatus, ReviewCategory, Task, User


@dataclass
class ProjectCriteria:
    status: ProjectStatus | None = None
    # restrict to projects this user is a member of (non-admin callers)
    member_user_id: int | None = None


@dataclass
class NewProject:
    name: str
    start_date: date
    created_by: int
    end_date: date | None = None
    description: str | None = None


@dataclass
class NewTask:
    project_id: int
    name: str
    level: int
    display_order: int
    status: str
    parent_task_id: int | None = None
    assignee_id: int | None = None
    start_date: date | None = None
    end_date: date | None = None
    planned_hours: float | None = None


class UserRepository(Protocol):
    def find_by_id(self, user_id: int) -> User | None: ...

    def find_by_email(self, email: str) -> User | None: ...

    def create(
        self,
        name: str,
        email: str,
        role: str,
        password_hash: str,
        must_change_password: bool = True,
    ) -> User: ...

    def update(self, user_id: int, **fields: Any) -> User: ...


class ProjectRepository(Protocol):
    def find_all(self, criteria: ProjectCriteria) -> list[Project]: ...

    def find_by_id(self, project_id: int) -> Project | None: ...

    def create_full(
        self,
        project: NewProject,
        member_ids: list[int],
        categories: list[tuple[str, int]],
    ) -> Project:
        """Insert project, members and review categories in one transaction."""
        ...

    def update(self, project_id: int, **fields: Any) -> Project: ...

    def find_members(self, project_id: int) -> list[Member]: ...

    def is_member(self, project_id: int, user_id: int) -> bool: ...

    def add_member(self, project_id: int, user_id: int) -> None: ...

    def remove_member(self, project_id: int, user_id: int) -> None: ...

    def set_favorite(self, project_id: int, user_id: int, is_favorite: bool) -> None: ...

    def find_review_categories(self, project_id: int) -> list[ReviewCategory]: ...


class TaskRepository(Protocol):
    def find_by_project(self, project_id: int) -> list[Task]:
        """All tasks of a project with actual hours, ordered by level then display order."""
        ...

    def find_by_id(self, task_id: int) -> Task | None: ...

    def find_by_id_and_project(self, task_id: int, project_id: int) -> Task | None: ...

    def find_children(self, task_id: int) -> list[Task]: ...

    def max_display_order(self, project_id: int, parent_task_id: int | None) -> int:
        """Largest sibling display order, or -1 when there are no siblings."""
        ...

    def create(self, task: NewTask) -> Task: ...

    def update(self, task_id: int, **fields: Any) -> Task: ...

    def delete(self, task_id: int) -> None: ...

    def has_report_entries(self, task_id: int) -> bool: ...
