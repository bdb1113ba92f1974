"""Project operations: listing, lifecycle, membership and favorites."""

import logging

from wbs_tracker.core.access import parse_role
from wbs_tracker.core.errors import ConflictError, NotFoundError, ValidationError
from wbs_tracker.core.repositories import (
    NewProject,
    ProjectCriteria,
    ProjectRepository,
    UserRepository,
)
from wbs_tracker.db.models import (
    DEFAULT_REVIEW_CATEGORIES,
    Member,
    Project,
    ProjectDetail,
    ProjectStatus,
    ProjectSummary,
    ReviewCategory,
    Role,
)
from wbs_tracker.schemas import CreateProjectRequest, UpdateProjectRequest

logger = logging.getLogger(__name__)

STATUS_ALL = "all"


class ProjectService:
    def __init__(
        self,
        project_repository: ProjectRepository,
        user_repository: UserRepository | None = None,
    ):
        self._projects = project_repository
        self._users = user_repository

    def get_projects(
        self,
        user_id: int | None,
        role: Role | str,
        status: ProjectStatus | str = ProjectStatus.ACTIVE,
    ) -> list[ProjectSummary]:
        """List projects visible to the caller.

        Admins see every project; everyone else only the projects they are a
        member of. ``status`` may be ``"all"`` to disable the status filter.
        """
        status_filter = _status_filter(status)
        if parse_role(role) == Role.ADMIN:
            member_user_id = None
        elif user_id is None:
            # an anonymous non-admin is a member of nothing
            return []
        else:
            member_user_id = user_id

        criteria = ProjectCriteria(status=status_filter, member_user_id=member_user_id)
        projects = self._projects.find_all(criteria)
        return [_to_summary(p, user_id) for p in projects]

    def get_project_by_id(self, project_id: int) -> ProjectDetail:
        project = self._projects.find_by_id(project_id)
        if not project:
            raise NotFoundError("Project not found")
        return _to_detail(project)

    def create_project(self, creator_id: int, data: CreateProjectRequest) -> ProjectDetail:
        """Create a project with its PM, creator and default review categories.

        The creator is only added as a separate member when they are not the
        PM. All inserts happen in a single transaction.
        """
        member_ids = [data.pm_id]
        if creator_id != data.pm_id:
            member_ids.append(creator_id)

        project = self._projects.create_full(
            NewProject(
                name=data.name,
                start_date=data.start_date,
                end_date=data.end_date,
                description=data.description,
                created_by=creator_id,
            ),
            member_ids,
            list(DEFAULT_REVIEW_CATEGORIES),
        )
        logger.info("Created project %s (%s) with members %s", project.id, project.name, member_ids)
        return self.get_project_by_id(project.id)

    def update_project(self, project_id: int, data: UpdateProjectRequest) -> ProjectDetail:
        if not self._projects.find_by_id(project_id):
            raise NotFoundError("Project not found")

        changes = data.changes()
        if changes:
            self._projects.update(project_id, **changes)
            logger.info("Updated project %s: %s", project_id, ", ".join(sorted(changes)))
        return self.get_project_by_id(project_id)

    def toggle_favorite(self, project_id: int, user_id: int, is_favorite: bool) -> None:
        # favorites live on the membership row, so non-members see the project as missing
        if not self._projects.is_member(project_id, user_id):
            raise NotFoundError("Project not found")
        self._projects.set_favorite(project_id, user_id, is_favorite)

    def get_members(self, project_id: int) -> list[Member]:
        if not self._projects.find_by_id(project_id):
            raise NotFoundError("Project not found")
        return self._projects.find_members(project_id)

    def is_member(self, project_id: int, user_id: int) -> bool:
        return self._projects.is_member(project_id, user_id)

    def add_member(self, project_id: int, user_id: int) -> None:
        if not self._projects.find_by_id(project_id):
            raise NotFoundError("Project not found")
        if self._users is not None and not self._users.find_by_id(user_id):
            raise NotFoundError("User not found")
        if self._projects.is_member(project_id, user_id):
            raise ConflictError("User is already a member of this project")
        self._projects.add_member(project_id, user_id)
        logger.info("Added user %s to project %s", user_id, project_id)

    def remove_member(self, project_id: int, user_id: int) -> None:
        if not self._projects.is_member(project_id, user_id):
            raise NotFoundError("Project membership not found")
        self._projects.remove_member(project_id, user_id)
        logger.info("Removed user %s from project %s", user_id, project_id)

    def get_review_categories(self, project_id: int) -> list[ReviewCategory]:
        if not self._projects.find_by_id(project_id):
            raise NotFoundError("Project not found")
        return self._projects.find_review_categories(project_id)


def _status_filter(status: ProjectStatus | str) -> ProjectStatus | None:
    if status == STATUS_ALL:
        return None
    try:
        return ProjectStatus(status)
    except ValueError:
        raise ValidationError(f"Unknown project status: {status}") from None


def _to_summary(project: Project, user_id: int | None) -> ProjectSummary:
    pm = project.resolve_pm()
    own = project.member(user_id)
    return ProjectSummary(
        id=project.id,
        name=project.name,
        status=project.status,
        start_date=project.start_date,
        end_date=project.end_date,
        pm_name=pm.name if pm else "",
        is_favorite=own.is_favorite if own else False,
    )


def _to_detail(project: Project) -> ProjectDetail:
    pm = project.resolve_pm()
    return ProjectDetail(
        id=project.id,
        name=project.name,
        status=project.status,
        start_date=project.start_date,
        end_date=project.end_date,
        description=project.description,
        pm_id=pm.user_id if pm else project.created_by,
        pm_name=pm.name if pm else "",
        bug_sequence=project.bug_sequence,
        created_at=project.created_at,
        updated_at=project.updated_at,
    )
