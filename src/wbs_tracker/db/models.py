"""Data models for the WBS tracker."""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum


class Role(str, Enum):
    ADMIN = "admin"
    PMO = "pmo"
    PM = "pm"
    DEVELOPER = "developer"


class ProjectStatus(str, Enum):
    ACTIVE = "active"
    ARCHIVED = "archived"


class TaskStatus(str, Enum):
    NOT_STARTED = "未着手"
    IN_PROGRESS = "進行中"
    DONE = "完了"
    ON_HOLD = "保留"


MAX_TASK_LEVEL = 3
PASSWORD_HISTORY_MAX = 3

# (name, sort_order) pairs created with every project
DEFAULT_REVIEW_CATEGORIES = [
    ("設計漏れ", 1),
    ("実装誤り", 2),
    ("テスト不足", 3),
    ("スタイル", 4),
    ("その他", 5),
]


@dataclass
class User:
    id: int
    name: str
    email: str
    role: Role
    password_hash: str
    password_history: list[str] = field(default_factory=list)
    must_change_password: bool = True
    is_active: bool = True
    deleted_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class Member:
    """A project membership row joined with its user."""

    project_id: int
    user_id: int
    name: str
    email: str
    role: Role
    is_favorite: bool = False
    is_active: bool = True


@dataclass
class Project:
    id: int
    name: str
    start_date: date
    created_by: int
    status: ProjectStatus = ProjectStatus.ACTIVE
    end_date: date | None = None
    description: str | None = None
    bug_sequence: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None
    members: list[Member] = field(default_factory=list)

    def resolve_pm(self) -> Member | None:
        """First member holding the ``pm`` role, else the creator's membership."""
        for m in self.members:
            if m.role == Role.PM:
                return m
        for m in self.members:
            if m.user_id == self.created_by:
                return m
        return None

    def member(self, user_id: int | None) -> Member | None:
        if user_id is None:
            return None
        return next((m for m in self.members if m.user_id == user_id), None)


@dataclass
class ReviewCategory:
    id: int
    project_id: int
    name: str
    sort_order: int


@dataclass
class Task:
    id: int
    project_id: int
    name: str
    level: int = 1
    parent_task_id: int | None = None
    assignee_id: int | None = None
    assignee_name: str | None = None
    start_date: date | None = None
    end_date: date | None = None
    status: TaskStatus = TaskStatus.NOT_STARTED
    planned_hours: float | None = None
    display_order: int = 0
    actual_hours: float = 0.0
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class ProjectSummary:
    id: int
    name: str
    status: ProjectStatus
    start_date: date
    end_date: date | None
    pm_name: str
    is_favorite: bool


@dataclass
class ProjectDetail:
    id: int
    name: str
    status: ProjectStatus
    start_date: date
    end_date: date | None
    description: str | None
    pm_id: int
    pm_name: str
    bug_sequence: int
    created_at: datetime | None = None
    updated_at: datetime | None = None
