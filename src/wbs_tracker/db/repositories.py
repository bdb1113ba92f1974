"""SQLite implementations of the repository contracts."""

import json
import sqlite3
from datetime import date, datetime
from enum import Enum
from typing import Any

from wbs_tracker.core.repositories import NewProject, NewTask, ProjectCriteria
from wbs_tracker.db.models import (
    Member,
    Project,
    ProjectStatus,
    ReviewCategory,
    Role,
    Task,
    TaskStatus,
    User,
)


class SqliteUserRepository:
    _UPDATABLE = {
        "name",
        "role",
        "is_active",
        "password_hash",
        "password_history",
        "must_change_password",
    }

    def __init__(self, db: sqlite3.Connection):
        self._db = db

    def find_by_id(self, user_id: int) -> User | None:
        row = self._db.execute(
            "SELECT * FROM users WHERE id = ? AND deleted_at IS NULL", (user_id,)
        ).fetchone()
        return _row_to_user(row) if row else None

    def find_by_email(self, email: str) -> User | None:
        row = self._db.execute(
            "SELECT * FROM users WHERE email = ? AND deleted_at IS NULL", (email,)
        ).fetchone()
        return _row_to_user(row) if row else None

    def create(
        self,
        name: str,
        email: str,
        role: str,
        password_hash: str,
        must_change_password: bool = True,
    ) -> User:
        cur = self._db.execute(
            """INSERT INTO users (name, email, role, password_hash, must_change_password)
               VALUES (?, ?, ?, ?, ?)""",
            (name, email, Role(role).value, password_hash, int(must_change_password)),
        )
        self._db.commit()
        return self.find_by_id(cur.lastrowid)

    def update(self, user_id: int, **fields: Any) -> User:
        updates = {k: v for k, v in fields.items() if k in self._UPDATABLE}
        if "password_history" in updates:
            updates["password_history"] = json.dumps(updates["password_history"])
        _update_row(self._db, "users", user_id, updates)
        self._db.commit()
        return self.find_by_id(user_id)


class SqliteProjectRepository:
    _UPDATABLE = {"name", "status", "start_date", "end_date", "description"}

    def __init__(self, db: sqlite3.Connection):
        self._db = db

    def find_all(self, criteria: ProjectCriteria) -> list[Project]:
        query = "SELECT * FROM projects WHERE 1 = 1"
        params: list = []

        if criteria.status is not None:
            query += " AND status = ?"
            params.append(ProjectStatus(criteria.status).value)

        if criteria.member_user_id is not None:
            query += " AND id IN (SELECT project_id FROM project_members WHERE user_id = ?)"
            params.append(criteria.member_user_id)

        query += " ORDER BY created_at DESC, id DESC"
        rows = self._db.execute(query, params).fetchall()
        return [self._with_members(_row_to_project(r)) for r in rows]

    def find_by_id(self, project_id: int) -> Project | None:
        row = self._db.execute("SELECT * FROM projects WHERE id = ?", (project_id,)).fetchone()
        if not row:
            return None
        return self._with_members(_row_to_project(row))

    def create_full(
        self,
        project: NewProject,
        member_ids: list[int],
        categories: list[tuple[str, int]],
    ) -> Project:
        # commits on success, rolls everything back if any insert fails
        with self._db:
            cur = self._db.execute(
                """INSERT INTO projects (name, start_date, end_date, description, created_by)
                   VALUES (?, ?, ?, ?, ?)""",
                (
                    project.name,
                    _to_db(project.start_date),
                    _to_db(project.end_date),
                    project.description,
                    project.created_by,
                ),
            )
            project_id = cur.lastrowid
            self._db.executemany(
                "INSERT INTO project_members (project_id, user_id) VALUES (?, ?)",
                [(project_id, user_id) for user_id in member_ids],
            )
            self._db.executemany(
                "INSERT INTO review_categories (project_id, name, sort_order) VALUES (?, ?, ?)",
                [(project_id, name, sort_order) for name, sort_order in categories],
            )
        return self.find_by_id(project_id)

    def update(self, project_id: int, **fields: Any) -> Project:
        updates = {k: v for k, v in fields.items() if k in self._UPDATABLE}
        _update_row(self._db, "projects", project_id, updates)
        self._db.commit()
        return self.find_by_id(project_id)

    def find_members(self, project_id: int) -> list[Member]:
        rows = self._db.execute(
            """SELECT pm.project_id, pm.user_id, pm.is_favorite,
                      u.name, u.email, u.role, u.is_active
               FROM project_members pm
               JOIN users u ON u.id = pm.user_id
               WHERE pm.project_id = ?
               ORDER BY pm.id""",
            (project_id,),
        ).fetchall()
        return [_row_to_member(r) for r in rows]

    def is_member(self, project_id: int, user_id: int) -> bool:
        row = self._db.execute(
            "SELECT 1 FROM project_members WHERE project_id = ? AND user_id = ?",
            (project_id, user_id),
        ).fetchone()
        return row is not None

    def add_member(self, project_id: int, user_id: int) -> None:
        self._db.execute(
            "INSERT INTO project_members (project_id, user_id) VALUES (?, ?)",
            (project_id, user_id),
        )
        self._db.commit()

    def remove_member(self, project_id: int, user_id: int) -> None:
        self._db.execute(
            "DELETE FROM project_members WHERE project_id = ? AND user_id = ?",
            (project_id, user_id),
        )
        self._db.commit()

    def set_favorite(self, project_id: int, user_id: int, is_favorite: bool) -> None:
        self._db.execute(
            "UPDATE project_members SET is_favorite = ? WHERE project_id = ? AND user_id = ?",
            (int(is_favorite), project_id, user_id),
        )
        self._db.commit()

    def find_review_categories(self, project_id: int) -> list[ReviewCategory]:
        rows = self._db.execute(
            "SELECT * FROM review_categories WHERE project_id = ? ORDER BY sort_order",
            (project_id,),
        ).fetchall()
        return [
            ReviewCategory(
                id=r["id"],
                project_id=r["project_id"],
                name=r["name"],
                sort_order=r["sort_order"],
            )
            for r in rows
        ]

    def _with_members(self, project: Project) -> Project:
        project.members = self.find_members(project.id)
        return project


class SqliteTaskRepository:
    _UPDATABLE = {
        "name",
        "assignee_id",
        "start_date",
        "end_date",
        "status",
        "planned_hours",
        "display_order",
    }

    # actual hours are summed from the task's own report entries only
    _SELECT = """
        SELECT t.*, u.name AS assignee_name,
               COALESCE(
                   (SELECT SUM(e.work_hours) FROM daily_report_entries e WHERE e.task_id = t.id),
                   0
               ) AS actual_hours
        FROM tasks t
        LEFT JOIN users u ON u.id = t.assignee_id
    """

    def __init__(self, db: sqlite3.Connection):
        self._db = db

    def find_by_project(self, project_id: int) -> list[Task]:
        rows = self._db.execute(
            self._SELECT + " WHERE t.project_id = ? ORDER BY t.level, t.display_order, t.id",
            (project_id,),
        ).fetchall()
        return [_row_to_task(r) for r in rows]

    def find_by_id(self, task_id: int) -> Task | None:
        row = self._db.execute(self._SELECT + " WHERE t.id = ?", (task_id,)).fetchone()
        return _row_to_task(row) if row else None

    def find_by_id_and_project(self, task_id: int, project_id: int) -> Task | None:
        row = self._db.execute(
            self._SELECT + " WHERE t.id = ? AND t.project_id = ?", (task_id, project_id)
        ).fetchone()
        return _row_to_task(row) if row else None

    def find_children(self, task_id: int) -> list[Task]:
        rows = self._db.execute(
            self._SELECT + " WHERE t.parent_task_id = ? ORDER BY t.display_order, t.id",
            (task_id,),
        ).fetchall()
        return [_row_to_task(r) for r in rows]

    def max_display_order(self, project_id: int, parent_task_id: int | None) -> int:
        row = self._db.execute(
            "SELECT MAX(display_order) FROM tasks WHERE project_id = ? AND parent_task_id IS ?",
            (project_id, parent_task_id),
        ).fetchone()
        return row[0] if row[0] is not None else -1

    def create(self, task: NewTask) -> Task:
        cur = self._db.execute(
            """INSERT INTO tasks (project_id, parent_task_id, level, name, assignee_id,
                                  start_date, end_date, status, planned_hours, display_order)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                task.project_id,
                task.parent_task_id,
                task.level,
                task.name,
                task.assignee_id,
                _to_db(task.start_date),
                _to_db(task.end_date),
                _to_db(task.status),
                task.planned_hours,
                task.display_order,
            ),
        )
        self._db.commit()
        return self.find_by_id(cur.lastrowid)

    def update(self, task_id: int, **fields: Any) -> Task:
        updates = {k: v for k, v in fields.items() if k in self._UPDATABLE}
        _update_row(self._db, "tasks", task_id, updates)
        self._db.commit()
        return self.find_by_id(task_id)

    def delete(self, task_id: int) -> None:
        self._db.execute("DELETE FROM tasks WHERE id = ?", (task_id,))
        self._db.commit()

    def has_report_entries(self, task_id: int) -> bool:
        row = self._db.execute(
            "SELECT 1 FROM daily_report_entries WHERE task_id = ? LIMIT 1", (task_id,)
        ).fetchone()
        return row is not None


# ── Row mapping ───────────────────────────────────────────────────────────────


def _update_row(db: sqlite3.Connection, table: str, row_id: int, updates: dict) -> None:
    if not updates:
        return
    set_parts = [f"{k} = ?" for k in updates]
    set_parts.append("updated_at = datetime('now')")
    values = [_to_db(v) for v in updates.values()] + [row_id]
    db.execute(f"UPDATE {table} SET {', '.join(set_parts)} WHERE id = ?", values)


def _to_db(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, date):
        return value.isoformat()
    return value


def _row_to_user(row: sqlite3.Row) -> User:
    return User(
        id=row["id"],
        name=row["name"],
        email=row["email"],
        role=Role(row["role"]),
        password_hash=row["password_hash"],
        password_history=json.loads(row["password_history"] or "[]"),
        must_change_password=bool(row["must_change_password"]),
        is_active=bool(row["is_active"]),
        deleted_at=_parse_dt(row["deleted_at"]),
        created_at=_parse_dt(row["created_at"]),
        updated_at=_parse_dt(row["updated_at"]),
    )


def _row_to_member(row: sqlite3.Row) -> Member:
    return Member(
        project_id=row["project_id"],
        user_id=row["user_id"],
        name=row["name"],
        email=row["email"],
        role=Role(row["role"]),
        is_favorite=bool(row["is_favorite"]),
        is_active=bool(row["is_active"]),
    )


def _row_to_project(row: sqlite3.Row) -> Project:
    return Project(
        id=row["id"],
        name=row["name"],
        status=ProjectStatus(row["status"]),
        start_date=_parse_date(row["start_date"]),
        end_date=_parse_date(row["end_date"]),
        description=row["description"],
        created_by=row["created_by"],
        bug_sequence=row["bug_sequence"],
        created_at=_parse_dt(row["created_at"]),
        updated_at=_parse_dt(row["updated_at"]),
    )


def _row_to_task(row: sqlite3.Row) -> Task:
    return Task(
        id=row["id"],
        project_id=row["project_id"],
        parent_task_id=row["parent_task_id"],
        level=row["level"],
        name=row["name"],
        assignee_id=row["assignee_id"],
        assignee_name=row["assignee_name"],
        start_date=_parse_date(row["start_date"]),
        end_date=_parse_date(row["end_date"]),
        status=TaskStatus(row["status"]),
        planned_hours=row["planned_hours"],
        display_order=row["display_order"],
        actual_hours=float(row["actual_hours"]),
        created_at=_parse_dt(row["created_at"]),
        updated_at=_parse_dt(row["updated_at"]),
    )


def _parse_date(val: str | None) -> date | None:
    if val is None:
        return None
    return date.fromisoformat(val)


def _parse_dt(val: str | None) -> datetime | None:
    if val is None:
        return None
    return datetime.fromisoformat(val)
