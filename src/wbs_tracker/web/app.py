"""HTTP API for the WBS tracker.

The caller principal is supplied by a trusted upstream (reverse proxy or
session gateway) in the ``X-User-Id`` and ``X-User-Role`` headers.
"""

import functools
import json
import logging
from dataclasses import dataclass

import pydantic
import uvicorn
from starlette.applications import Starlette
from starlette.concurrency import run_in_threadpool
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from wbs_tracker.config import Config, get_config
from wbs_tracker.core import access
from wbs_tracker.core.errors import AppError, UnauthorizedError
from wbs_tracker.core.services import Services, build_services
from wbs_tracker.db.engine import get_db, init_db
from wbs_tracker.db.models import Role
from wbs_tracker.logging_config import setup_logging
from wbs_tracker.schemas import (
    AddMemberRequest,
    ChangePasswordRequest,
    CreateProjectRequest,
    CreateTaskRequest,
    FavoriteRequest,
    UpdateProjectRequest,
    UpdateTaskRequest,
)
from wbs_tracker.serializers import (
    member_dict,
    project_detail_dict,
    project_summary_dict,
    review_category_dict,
    task_dict,
)

logger = logging.getLogger(__name__)


# ── Principal & guards ────────────────────────────────────────────────────────


@dataclass
class Principal:
    user_id: int
    role: Role


def require_auth(request: Request) -> Principal:
    raw_id = request.headers.get("x-user-id")
    raw_role = request.headers.get("x-user-role")
    if not raw_id or not raw_role:
        raise UnauthorizedError()
    try:
        return Principal(user_id=int(raw_id), role=Role(raw_role))
    except ValueError:
        raise UnauthorizedError() from None


def require_manager(request: Request) -> Principal:
    principal = require_auth(request)
    access.require_role(principal.role)
    return principal


def require_member(services: Services, principal: Principal, project_id: int) -> None:
    access.require_project_member(
        services.projects, principal.user_id, principal.role, project_id
    )


async def _run(request: Request, operation):
    """Call ``operation(services)`` on a fresh connection in the threadpool.

    SQLite I/O and bcrypt hashing block, so neither runs on the event loop.
    """
    config: Config = request.app.state.config

    def call():
        with get_db(config.db_path) as db:
            return operation(build_services(db, config.bcrypt_rounds))

    return await run_in_threadpool(call)


# ── Error mapping ─────────────────────────────────────────────────────────────


def _error(code: str, message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"error": {"code": code, "message": message}}, status_code=status_code)


def handle_api_errors(handler):
    @functools.wraps(handler)
    async def wrapper(request: Request):
        try:
            return await handler(request)
        except AppError as e:
            return _error(e.code, e.message, e.status_code)
        except pydantic.ValidationError as e:
            message = ", ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
            )
            return _error("VALIDATION_ERROR", message, 400)
        except json.JSONDecodeError:
            return _error("VALIDATION_ERROR", "Request body is not valid JSON", 400)
        except Exception:
            logger.exception("Unexpected error handling %s %s", request.method, request.url.path)
            return _error("INTERNAL_ERROR", "Internal server error", 500)

    return wrapper


def _ok(data, status_code: int = 200) -> JSONResponse:
    return JSONResponse({"data": data}, status_code=status_code)


# ── Handlers: projects ────────────────────────────────────────────────────────


@handle_api_errors
async def api_list_projects(request: Request):
    principal = require_auth(request)
    status = request.query_params.get("status", "active")

    def op(services: Services):
        projects = services.projects.get_projects(principal.user_id, principal.role, status)
        return [project_summary_dict(p) for p in projects]

    return _ok(await _run(request, op))


@handle_api_errors
async def api_create_project(request: Request):
    principal = require_manager(request)
    data = CreateProjectRequest.model_validate(await request.json())

    def op(services: Services):
        return project_detail_dict(services.projects.create_project(principal.user_id, data))

    return _ok(await _run(request, op), status_code=201)


@handle_api_errors
async def api_get_project(request: Request):
    project_id = request.path_params["project_id"]
    principal = require_auth(request)

    def op(services: Services):
        require_member(services, principal, project_id)
        return project_detail_dict(services.projects.get_project_by_id(project_id))

    return _ok(await _run(request, op))


@handle_api_errors
async def api_update_project(request: Request):
    project_id = request.path_params["project_id"]
    principal = require_manager(request)
    data = UpdateProjectRequest.model_validate(await request.json())

    def op(services: Services):
        require_member(services, principal, project_id)
        return project_detail_dict(services.projects.update_project(project_id, data))

    return _ok(await _run(request, op))


@handle_api_errors
async def api_toggle_favorite(request: Request):
    project_id = request.path_params["project_id"]
    principal = require_auth(request)
    data = FavoriteRequest.model_validate(await request.json())

    await _run(
        request,
        lambda services: services.projects.toggle_favorite(
            project_id, principal.user_id, data.is_favorite
        ),
    )
    return Response(status_code=204)


@handle_api_errors
async def api_list_members(request: Request):
    project_id = request.path_params["project_id"]
    principal = require_auth(request)

    def op(services: Services):
        require_member(services, principal, project_id)
        return [member_dict(m) for m in services.projects.get_members(project_id)]

    return _ok(await _run(request, op))


@handle_api_errors
async def api_add_member(request: Request):
    project_id = request.path_params["project_id"]
    require_manager(request)
    data = AddMemberRequest.model_validate(await request.json())

    await _run(request, lambda services: services.projects.add_member(project_id, data.user_id))
    return Response(status_code=204)


@handle_api_errors
async def api_remove_member(request: Request):
    project_id = request.path_params["project_id"]
    user_id = request.path_params["user_id"]
    require_manager(request)

    await _run(request, lambda services: services.projects.remove_member(project_id, user_id))
    return Response(status_code=204)


@handle_api_errors
async def api_review_categories(request: Request):
    project_id = request.path_params["project_id"]
    principal = require_auth(request)

    def op(services: Services):
        require_member(services, principal, project_id)
        categories = services.projects.get_review_categories(project_id)
        return [review_category_dict(c) for c in categories]

    return _ok(await _run(request, op))


# ── Handlers: tasks ───────────────────────────────────────────────────────────


@handle_api_errors
async def api_list_tasks(request: Request):
    project_id = request.path_params["project_id"]
    principal = require_auth(request)

    def op(services: Services):
        require_member(services, principal, project_id)
        return [task_dict(t) for t in services.tasks.find_by_project(project_id)]

    return _ok(await _run(request, op))


@handle_api_errors
async def api_create_task(request: Request):
    project_id = request.path_params["project_id"]
    principal = require_manager(request)
    data = CreateTaskRequest.model_validate(await request.json())

    def op(services: Services):
        require_member(services, principal, project_id)
        return task_dict(services.tasks.create(project_id, data))

    return _ok(await _run(request, op), status_code=201)


@handle_api_errors
async def api_update_task(request: Request):
    project_id = request.path_params["project_id"]
    task_id = request.path_params["task_id"]
    principal = require_manager(request)
    data = UpdateTaskRequest.model_validate(await request.json())

    def op(services: Services):
        require_member(services, principal, project_id)
        return task_dict(services.tasks.update(project_id, task_id, data))

    return _ok(await _run(request, op))


@handle_api_errors
async def api_delete_task(request: Request):
    project_id = request.path_params["project_id"]
    task_id = request.path_params["task_id"]
    principal = require_manager(request)

    def op(services: Services):
        require_member(services, principal, project_id)
        services.tasks.delete(project_id, task_id)

    await _run(request, op)
    return Response(status_code=204)


# ── Handlers: current user ────────────────────────────────────────────────────


@handle_api_errors
async def api_change_password(request: Request):
    principal = require_auth(request)
    data = ChangePasswordRequest.model_validate(await request.json())

    await _run(
        request,
        lambda services: services.auth.change_password(
            principal.user_id, data.current_password, data.new_password
        ),
    )
    return Response(status_code=204)


@handle_api_errors
async def api_first_login(request: Request):
    principal = require_auth(request)
    must_change = await _run(
        request, lambda services: services.auth.validate_first_login(principal.user_id)
    )
    return _ok({"mustChangePassword": must_change})


# ── App ───────────────────────────────────────────────────────────────────────


def create_app(config: Config | None = None) -> Starlette:
    config = config or get_config()
    setup_logging(config.log_level, config.log_file)

    # create the schema up front; each request then opens its own connection
    init_db(config.db_path).close()

    routes = [
        Route("/api/projects", api_list_projects, methods=["GET"]),
        Route("/api/projects", api_create_project, methods=["POST"]),
        Route("/api/projects/{project_id:int}", api_get_project, methods=["GET"]),
        Route("/api/projects/{project_id:int}", api_update_project, methods=["PUT"]),
        Route("/api/projects/{project_id:int}/favorite", api_toggle_favorite, methods=["PUT"]),
        Route("/api/projects/{project_id:int}/members", api_list_members, methods=["GET"]),
        Route("/api/projects/{project_id:int}/members", api_add_member, methods=["POST"]),
        Route(
            "/api/projects/{project_id:int}/members/{user_id:int}",
            api_remove_member,
            methods=["DELETE"],
        ),
        Route(
            "/api/projects/{project_id:int}/review-categories",
            api_review_categories,
            methods=["GET"],
        ),
        Route("/api/projects/{project_id:int}/tasks", api_list_tasks, methods=["GET"]),
        Route("/api/projects/{project_id:int}/tasks", api_create_task, methods=["POST"]),
        Route(
            "/api/projects/{project_id:int}/tasks/{task_id:int}",
            api_update_task,
            methods=["PUT"],
        ),
        Route(
            "/api/projects/{project_id:int}/tasks/{task_id:int}",
            api_delete_task,
            methods=["DELETE"],
        ),
        Route("/api/users/me/password", api_change_password, methods=["PUT"]),
        Route("/api/users/me/first-login", api_first_login, methods=["GET"]),
    ]
    app = Starlette(routes=routes)
    app.state.config = config
    return app


def run_server(host: str = "127.0.0.1", port: int = 8787):
    app = create_app()
    uvicorn.run(app, host=host, port=port)
