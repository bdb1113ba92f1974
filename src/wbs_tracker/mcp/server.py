"""MCP server exposing WBS project and task tools."""

from __future__ import annotations

import sqlite3
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

import pydantic
from mcp.server.fastmcp import Context, FastMCP

from wbs_tracker.config import Config, get_config
from wbs_tracker.core import access
from wbs_tracker.core.errors import AppError, UnauthorizedError
from wbs_tracker.core.services import Services, build_services
from wbs_tracker.db.engine import init_db
from wbs_tracker.db.models import User
from wbs_tracker.logging_config import setup_logging
from wbs_tracker.schemas import CreateTaskRequest, UpdateTaskRequest
from wbs_tracker.serializers import (
    member_dict,
    project_detail_dict,
    project_summary_dict,
    task_dict,
)


@dataclass
class AppContext:
    db: sqlite3.Connection
    config: Config
    services: Services


@asynccontextmanager
async def app_lifespan(server: FastMCP) -> AsyncIterator[AppContext]:
    """Initialize DB connection on startup, close on shutdown."""
    config = get_config()
    setup_logging(config.log_level, config.log_file)
    db = init_db(config.db_path)
    try:
        yield AppContext(db=db, config=config, services=build_services(db, config.bcrypt_rounds))
    finally:
        db.close()


mcp = FastMCP("wbs-tracker", lifespan=app_lifespan)


def _ctx(ctx: Context) -> AppContext:
    """Extract AppContext from MCP Context."""
    return ctx.request_context.lifespan_context


def _acting_user(app: AppContext) -> User:
    user_id = app.config.acting_user_id
    user = app.services.users.find_by_id(user_id) if user_id is not None else None
    if not user:
        raise UnauthorizedError("No acting user configured (set WBS_USER_ID)")
    return user


def _require_member(app: AppContext, project_id: int) -> User:
    user = _acting_user(app)
    access.require_project_member(app.services.projects, user.id, user.role, project_id)
    return user


def _require_manager(app: AppContext, project_id: int) -> User:
    """Writes to the WBS need the admin or pm role as well as membership."""
    user = _acting_user(app)
    access.require_role(user.role)
    access.require_project_member(app.services.projects, user.id, user.role, project_id)
    return user


def _error(e: Exception) -> dict:
    if isinstance(e, AppError):
        return {"error": e.message, "code": e.code}
    return {"error": str(e), "code": "VALIDATION_ERROR"}


# ── Project Tools ─────────────────────────────────────────────────────────────


@mcp.tool()
def list_projects(ctx: Context, status: str = "active") -> list[dict] | dict:
    """List projects visible to the acting user. Status: active, archived or all."""
    app = _ctx(ctx)
    try:
        user = _acting_user(app)
        projects = app.services.projects.get_projects(user.id, user.role, status)
    except AppError as e:
        return _error(e)
    return [project_summary_dict(p) for p in projects]


@mcp.tool()
def get_project(ctx: Context, project_id: int) -> dict:
    """Get project details including the resolved PM."""
    app = _ctx(ctx)
    try:
        _require_member(app, project_id)
        return project_detail_dict(app.services.projects.get_project_by_id(project_id))
    except AppError as e:
        return _error(e)


@mcp.tool()
def list_members(ctx: Context, project_id: int) -> list[dict] | dict:
    """List the members of a project."""
    app = _ctx(ctx)
    try:
        _require_member(app, project_id)
        members = app.services.projects.get_members(project_id)
    except AppError as e:
        return _error(e)
    return [member_dict(m) for m in members]


# ── Task Tools ────────────────────────────────────────────────────────────────


@mcp.tool()
def list_tasks(ctx: Context, project_id: int) -> list[dict] | dict:
    """List all WBS tasks of a project, ordered by level then display order."""
    app = _ctx(ctx)
    try:
        _require_member(app, project_id)
        tasks = app.services.tasks.find_by_project(project_id)
    except AppError as e:
        return _error(e)
    return [task_dict(t) for t in tasks]


@mcp.tool()
def create_task(
    ctx: Context,
    project_id: int,
    name: str,
    parent_task_id: int | None = None,
    assignee_id: int | None = None,
    start_date: str | None = None,
    end_date: str | None = None,
    status: str | None = None,
    planned_hours: float | None = None,
) -> dict:
    """Create a task. Give parent_task_id to nest it (at most 3 levels deep).

    Dates are YYYY-MM-DD. Status is one of 未着手, 進行中, 完了, 保留.
    """
    app = _ctx(ctx)
    try:
        _require_manager(app, project_id)
        data = CreateTaskRequest(
            name=name,
            parent_task_id=parent_task_id,
            assignee_id=assignee_id,
            start_date=start_date,
            end_date=end_date,
            status=status,
            planned_hours=planned_hours,
        )
        return task_dict(app.services.tasks.create(project_id, data))
    except (AppError, pydantic.ValidationError) as e:
        return _error(e)


@mcp.tool()
def update_task(ctx: Context, project_id: int, task_id: int, changes: dict) -> dict:
    """Update a task. `changes` holds only the fields to change, e.g.
    {"status": "進行中", "endDate": "2025-01-31"}. A null value clears an
    optional field.
    """
    app = _ctx(ctx)
    try:
        _require_manager(app, project_id)
        data = UpdateTaskRequest.model_validate(changes)
        return task_dict(app.services.tasks.update(project_id, task_id, data))
    except (AppError, pydantic.ValidationError) as e:
        return _error(e)


@mcp.tool()
def delete_task(ctx: Context, project_id: int, task_id: int) -> dict:
    """Delete a task that has no child tasks and no linked daily report entries."""
    app = _ctx(ctx)
    try:
        _require_manager(app, project_id)
        app.services.tasks.delete(project_id, task_id)
    except AppError as e:
        return _error(e)
    return {"deleted": task_id}
