"""Wiring of services to their SQLite repositories."""

import sqlite3
from dataclasses import dataclass

from wbs_tracker.config import DEFAULT_BCRYPT_ROUNDS
from wbs_tracker.core.auth import AuthService
from wbs_tracker.core.projects import ProjectService
from wbs_tracker.core.tasks import TaskService
from wbs_tracker.db.repositories import (
    SqliteProjectRepository,
    SqliteTaskRepository,
    SqliteUserRepository,
)


@dataclass
class Services:
    users: SqliteUserRepository
    auth: AuthService
    projects: ProjectService
    tasks: TaskService


def build_services(db: sqlite3.Connection, bcrypt_rounds: int = DEFAULT_BCRYPT_ROUNDS) -> Services:
    users = SqliteUserRepository(db)
    return Services(
        users=users,
        auth=AuthService(users, rounds=bcrypt_rounds),
        projects=ProjectService(SqliteProjectRepository(db), users),
        tasks=TaskService(SqliteTaskRepository(db)),
    )
