"""Role and project-membership checks shared by every surface."""

from wbs_tracker.core.errors import ForbiddenError, NotFoundError, ValidationError
from wbs_tracker.db.models import Role

# roles allowed to create projects, manage members and edit the WBS
MANAGERS = (Role.ADMIN, Role.PM)


def parse_role(role: Role | str) -> Role:
    try:
        return Role(role)
    except ValueError:
        raise ValidationError(f"Unknown role: {role}") from None


def require_role(role: Role | str, roles=MANAGERS) -> None:
    if parse_role(role) not in roles:
        raise ForbiddenError()


def require_project_member(
    projects, user_id: int, role: Role | str, project_id: int
) -> None:
    """Non-members get a 404 so project existence is not leaked. Admins pass."""
    if parse_role(role) == Role.ADMIN:
        return
    if not projects.is_member(project_id, user_id):
        raise NotFoundError("Project not found")
