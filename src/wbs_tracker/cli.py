"""CLI entry point for the WBS tracker."""

import json
import sys
from contextlib import contextmanager

import click
import pydantic

from wbs_tracker.config import get_config
from wbs_tracker.core import access
from wbs_tracker.core.errors import AppError
from wbs_tracker.core.passwords import hash_password, validate_password_policy
from wbs_tracker.core.services import build_services
from wbs_tracker.db.engine import get_db
from wbs_tracker.db.models import Role, TaskStatus
from wbs_tracker.logging_config import setup_logging
from wbs_tracker.schemas import (
    CreateProjectRequest,
    CreateTaskRequest,
    UpdateProjectRequest,
    UpdateTaskRequest,
)
from wbs_tracker.serializers import task_dict


@contextmanager
def _services():
    """Open the configured database and yield wired services.

    Typed failures end the command with ``Error: <message>`` and exit code 1.
    """
    config = get_config()
    with get_db(config.db_path) as db:
        try:
            yield build_services(db, config.bcrypt_rounds)
        except AppError as e:
            click.echo(f"Error: {e.message}", err=True)
            sys.exit(1)
        except pydantic.ValidationError as e:
            for err in e.errors():
                click.echo(f"Error: {'.'.join(str(p) for p in err['loc'])}: {err['msg']}", err=True)
            sys.exit(1)


def _acting_user(services, as_user: int | None):
    user_id = as_user or get_config().acting_user_id
    if user_id is None:
        click.echo("No acting user: pass --as-user or set WBS_USER_ID.", err=True)
        sys.exit(1)
    user = services.users.find_by_id(user_id)
    if not user:
        click.echo(f"User not found: {user_id}", err=True)
        sys.exit(1)
    return user


def _member(services, as_user: int | None, project_id: int):
    """The acting user, who must belong to the project unless an admin."""
    user = _acting_user(services, as_user)
    access.require_project_member(services.projects, user.id, user.role, project_id)
    return user


def _manager(services, as_user: int | None, project_id: int | None = None):
    """The acting user, who must hold the admin or pm role.

    With a ``project_id`` the user must also belong to that project.
    """
    user = _acting_user(services, as_user)
    access.require_role(user.role)
    if project_id is not None:
        access.require_project_member(services.projects, user.id, user.role, project_id)
    return user


def _patch(**options) -> dict:
    """Drop options the user did not pass; the literal ``none`` clears a field."""
    return {
        k: (None if v == "none" else v)
        for k, v in options.items()
        if v is not None
    }


as_user_option = click.option(
    "--as-user", type=int, default=None, help="Acting user ID (defaults to WBS_USER_ID)"
)


@click.group()
def main():
    """wbs - WBS project tracker CLI"""
    config = get_config()
    setup_logging(config.log_level, config.log_file)


@main.command("init-db")
def init_db_command():
    """Create the database schema."""
    config = get_config()
    with get_db(config.db_path):
        click.echo(f"Database ready at {config.db_path}")


# ── User Commands ─────────────────────────────────────────────────────────────


@main.group("user")
def user_group():
    """Manage users."""
    pass


@user_group.command("add")
@click.argument("name")
@click.argument("email")
@click.option("--role", type=click.Choice([r.value for r in Role]), default=Role.DEVELOPER.value)
@click.option("--password", prompt=True, hide_input=True, help="Initial password")
def user_add(name, email, role, password):
    """Provision a user with an initial password that must be changed on first login."""
    if not validate_password_policy(password):
        click.echo("Error: password must be at least 8 characters with a letter and a digit", err=True)
        sys.exit(1)
    config = get_config()
    with _services() as services:
        if services.users.find_by_email(email):
            click.echo(f"Error: email already registered: {email}", err=True)
            sys.exit(1)
        user = services.users.create(
            name, email, role, hash_password(password, rounds=config.bcrypt_rounds)
        )
        click.echo(f"Created user {user.id}: {user.name} <{user.email}> ({user.role.value})")


@user_group.command("passwd")
@as_user_option
@click.option("--current", prompt=True, hide_input=True, help="Current password")
@click.option("--new", "new_password", prompt=True, hide_input=True, confirmation_prompt=True)
def user_passwd(as_user, current, new_password):
    """Change the acting user's password."""
    with _services() as services:
        user = _acting_user(services, as_user)
        services.auth.change_password(user.id, current, new_password)
        click.echo("Password changed.")


# ── Project Commands ──────────────────────────────────────────────────────────


@main.group("project")
def project_group():
    """Manage projects."""
    pass


@project_group.command("list")
@as_user_option
@click.option("--status", type=click.Choice(["active", "archived", "all"]), default="active")
@click.option("--json-output", "--json", is_flag=True, help="Output as JSON")
def project_list(as_user, status, json_output):
    """List projects visible to the acting user."""
    with _services() as services:
        user = _acting_user(services, as_user)
        projects = services.projects.get_projects(user.id, user.role, status)

        if json_output:
            click.echo(json.dumps([
                {"id": p.id, "name": p.name, "status": p.status.value, "pm": p.pm_name,
                 "favorite": p.is_favorite}
                for p in projects
            ], indent=2, ensure_ascii=False))
            return

        if not projects:
            click.echo("No projects found.")
            return

        for p in projects:
            star = "★" if p.is_favorite else " "
            end = p.end_date.isoformat() if p.end_date else "-"
            click.echo(f"  {star} {p.id}: {p.name} [{p.status.value}] {p.start_date} .. {end} PM: {p.pm_name}")


@project_group.command("create")
@click.argument("name")
@as_user_option
@click.option("--start", "start_date", required=True, help="Start date (YYYY-MM-DD)")
@click.option("--end", "end_date", default=None, help="End date (YYYY-MM-DD)")
@click.option("--description", "-d", default=None)
@click.option("--pm", "pm_id", type=int, default=None, help="PM user ID (defaults to acting user)")
def project_create(name, as_user, start_date, end_date, description, pm_id):
    """Create a project with its default review categories."""
    with _services() as services:
        user = _manager(services, as_user)
        data = CreateProjectRequest(
            name=name,
            start_date=start_date,
            end_date=end_date,
            description=description,
            pm_id=pm_id or user.id,
        )
        project = services.projects.create_project(user.id, data)
        click.echo(f"Project created: {project.id} ({project.name})")
        click.echo(f"  PM: {project.pm_name}")


@project_group.command("show")
@click.argument("project_id", type=int)
@as_user_option
def project_show(project_id, as_user):
    """Show project details, members and review categories."""
    with _services() as services:
        _member(services, as_user, project_id)
        project = services.projects.get_project_by_id(project_id)
        click.echo(f"Project: {project.id}")
        click.echo(f"  Name: {project.name}")
        click.echo(f"  Status: {project.status.value}")
        click.echo(f"  Period: {project.start_date} .. {project.end_date or '-'}")
        click.echo(f"  PM: {project.pm_name} ({project.pm_id})")
        if project.description:
            click.echo(f"  Description: {project.description}")

        click.echo("  Members:")
        for m in services.projects.get_members(project_id):
            click.echo(f"    - {m.user_id}: {m.name} <{m.email}> ({m.role.value})")

        click.echo("  Review categories:")
        for c in services.projects.get_review_categories(project_id):
            click.echo(f"    {c.sort_order}. {c.name}")


@project_group.command("update")
@click.argument("project_id", type=int)
@click.option("--name", default=None)
@click.option("--status", type=click.Choice(["active", "archived"]), default=None)
@click.option("--start", "start_date", default=None)
@click.option("--end", "end_date", default=None, help="YYYY-MM-DD, or 'none' to clear")
@click.option("--description", "-d", default=None, help="Text, or 'none' to clear")
@as_user_option
def project_update(project_id, as_user, name, status, start_date, end_date, description):
    """Update project fields. Only the options given are changed."""
    with _services() as services:
        _manager(services, as_user, project_id)
        data = UpdateProjectRequest(**_patch(
            name=name, status=status, start_date=start_date,
            end_date=end_date, description=description,
        ))
        project = services.projects.update_project(project_id, data)
        click.echo(f"Updated project {project.id} ({project.name}) [{project.status.value}]")


@project_group.command("favorite")
@click.argument("project_id", type=int)
@as_user_option
@click.option("--off", is_flag=True, help="Remove from favorites")
def project_favorite(project_id, as_user, off):
    """Mark a project as a favorite of the acting user."""
    with _services() as services:
        user = _acting_user(services, as_user)
        services.projects.toggle_favorite(project_id, user.id, not off)
        click.echo(f"Project {project_id} {'removed from' if off else 'added to'} favorites")


# ── Member Commands ───────────────────────────────────────────────────────────


@main.group("member")
def member_group():
    """Manage project members."""
    pass


@member_group.command("list")
@click.argument("project_id", type=int)
@as_user_option
def member_list(project_id, as_user):
    with _services() as services:
        _member(services, as_user, project_id)
        for m in services.projects.get_members(project_id):
            star = "★" if m.is_favorite else " "
            click.echo(f"  {star} {m.user_id}: {m.name} <{m.email}> ({m.role.value})")


@member_group.command("add")
@click.argument("project_id", type=int)
@click.argument("user_id", type=int)
@as_user_option
def member_add(project_id, user_id, as_user):
    with _services() as services:
        _manager(services, as_user)
        services.projects.add_member(project_id, user_id)
        click.echo(f"Added user {user_id} to project {project_id}")


@member_group.command("remove")
@click.argument("project_id", type=int)
@click.argument("user_id", type=int)
@as_user_option
def member_remove(project_id, user_id, as_user):
    with _services() as services:
        _manager(services, as_user)
        services.projects.remove_member(project_id, user_id)
        click.echo(f"Removed user {user_id} from project {project_id}")


# ── Task Commands ─────────────────────────────────────────────────────────────


@main.group("task")
def task_group():
    """Manage WBS tasks."""
    pass


@task_group.command("add")
@click.argument("project_id", type=int)
@click.argument("name")
@click.option("--parent", "parent_task_id", type=int, default=None, help="Parent task ID")
@click.option("--assignee", "assignee_id", type=int, default=None)
@click.option("--start", "start_date", default=None)
@click.option("--end", "end_date", default=None)
@click.option("--status", type=click.Choice([s.value for s in TaskStatus]), default=None)
@click.option("--hours", "planned_hours", type=float, default=None, help="Planned hours")
@click.option("--order", "display_order", type=int, default=None)
@as_user_option
def task_add(project_id, name, as_user, **options):
    """Create a task, optionally under a parent task."""
    with _services() as services:
        _manager(services, as_user, project_id)
        data = CreateTaskRequest(name=name, **options)
        task = services.tasks.create(project_id, data)
        click.echo(f"Created task: {task.id}")
        click.echo(f"  Name: {task.name}")
        click.echo(f"  Level: {task.level}")
        click.echo(f"  Status: {task.status.value}")


@task_group.command("list")
@click.argument("project_id", type=int)
@click.option("--json-output", "--json", is_flag=True, help="Output as JSON")
@as_user_option
def task_list(project_id, as_user, json_output):
    """List tasks as a WBS outline."""
    with _services() as services:
        _member(services, as_user, project_id)
        tasks = services.tasks.find_by_project(project_id)

        if json_output:
            click.echo(json.dumps([task_dict(t) for t in tasks], indent=2, ensure_ascii=False))
            return

        if not tasks:
            click.echo("No tasks found.")
            return

        children: dict[int | None, list] = {}
        for t in tasks:
            children.setdefault(t.parent_task_id, []).append(t)

        def show(parent_id, depth):
            for t in sorted(children.get(parent_id, []), key=lambda x: x.display_order):
                hours = f"{t.actual_hours:g}/{t.planned_hours:g}h" if t.planned_hours is not None else f"{t.actual_hours:g}h"
                click.echo(f"{'  ' * depth}- {t.id}: {t.name} ({t.status.value}) {hours}")
                show(t.id, depth + 1)

        show(None, 1)


@task_group.command("update")
@click.argument("project_id", type=int)
@click.argument("task_id", type=int)
@click.option("--name", default=None)
@click.option("--assignee", "assignee_id", default=None, help="User ID, or 'none' to clear")
@click.option("--start", "start_date", default=None, help="YYYY-MM-DD, or 'none' to clear")
@click.option("--end", "end_date", default=None, help="YYYY-MM-DD, or 'none' to clear")
@click.option("--status", type=click.Choice([s.value for s in TaskStatus]), default=None)
@click.option("--hours", "planned_hours", default=None, help="Planned hours, or 'none' to clear")
@click.option("--order", "display_order", type=int, default=None)
@as_user_option
def task_update(project_id, task_id, as_user, **options):
    """Update task fields. Only the options given are changed."""
    with _services() as services:
        _manager(services, as_user, project_id)
        data = UpdateTaskRequest(**_patch(**options))
        task = services.tasks.update(project_id, task_id, data)
        click.echo(f"Updated task {task.id}: {task.name} ({task.status.value})")


@task_group.command("delete")
@click.argument("project_id", type=int)
@click.argument("task_id", type=int)
@as_user_option
def task_delete(project_id, task_id, as_user):
    with _services() as services:
        _manager(services, as_user, project_id)
        services.tasks.delete(project_id, task_id)
        click.echo(f"Deleted task {task_id}")


# ── Server Commands ───────────────────────────────────────────────────────────


@main.command("serve")
@click.option("--host", default="127.0.0.1", help="Host to bind to")
@click.option("--port", default=8787, type=int, help="Port to listen on")
def serve_command(host, port):
    """Run the HTTP API."""
    from wbs_tracker.web.app import run_server

    click.echo(f"Serving API at http://{host}:{port}")
    run_server(host=host, port=port)


@main.group("mcp")
def mcp_group():
    """MCP server commands."""
    pass


@mcp_group.command("serve")
def mcp_serve():
    """Start the MCP server (stdio transport)."""
    from wbs_tracker.mcp import prompts  # noqa: F401 - registers prompts
    from wbs_tracker.mcp.server import mcp

    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
