"""WBS task operations with hierarchy and date rules."""

import logging
from datetime import date

from wbs_tracker.core.errors import InvalidHierarchyError, NotFoundError, ValidationError
from wbs_tracker.core.repositories import NewTask, TaskRepository
from wbs_tracker.db.models import MAX_TASK_LEVEL, Task, TaskStatus
from wbs_tracker.schemas import CreateTaskRequest, UpdateTaskRequest

logger = logging.getLogger(__name__)


class TaskService:
    def __init__(self, task_repository: TaskRepository):
        self._tasks = task_repository

    def find_by_project(self, project_id: int) -> list[Task]:
        """All tasks of a project, ordered by level then display order.

        ``actual_hours`` on each task covers only its own report entries;
        children are not rolled up into their parents.
        """
        return self._tasks.find_by_project(project_id)

    def find_children(self, task_id: int) -> list[Task]:
        return self._tasks.find_children(task_id)

    def create(self, project_id: int, data: CreateTaskRequest) -> Task:
        """Create a task, deriving its level from the parent.

        Tasks without a parent are level 1. A parent at the maximum level
        cannot take children. A missing ``display_order`` places the task
        after its current siblings.
        """
        _check_dates(data.start_date, data.end_date)

        level = 1
        parent_task_id = data.parent_task_id
        if parent_task_id is not None:
            parent = self._tasks.find_by_id_and_project(parent_task_id, project_id)
            if not parent:
                raise NotFoundError("Parent task not found")
            if parent.level >= MAX_TASK_LEVEL:
                raise InvalidHierarchyError(f"Tasks may not exceed {MAX_TASK_LEVEL} levels")
            level = parent.level + 1

        display_order = data.display_order
        if display_order is None:
            display_order = self._tasks.max_display_order(project_id, parent_task_id) + 1

        task = self._tasks.create(
            NewTask(
                project_id=project_id,
                parent_task_id=parent_task_id,
                level=level,
                name=data.name,
                assignee_id=data.assignee_id,
                start_date=data.start_date,
                end_date=data.end_date,
                status=TaskStatus(data.status or TaskStatus.NOT_STARTED).value,
                planned_hours=data.planned_hours,
                display_order=display_order,
            )
        )
        logger.info("Created task %s (level %s) in project %s", task.id, level, project_id)
        return task

    def update(self, project_id: int, task_id: int, data: UpdateTaskRequest) -> Task:
        existing = self._tasks.find_by_id_and_project(task_id, project_id)
        if not existing:
            raise NotFoundError("Task not found")

        changes = data.changes()
        start_date = changes.get("start_date", existing.start_date)
        end_date = changes.get("end_date", existing.end_date)
        _check_dates(start_date, end_date)

        if "status" in changes:
            changes["status"] = TaskStatus(changes["status"]).value

        if not changes:
            return existing
        task = self._tasks.update(task_id, **changes)
        logger.info("Updated task %s: %s", task_id, ", ".join(sorted(changes)))
        return task

    def delete(self, project_id: int, task_id: int) -> None:
        existing = self._tasks.find_by_id_and_project(task_id, project_id)
        if not existing:
            raise NotFoundError("Task not found")

        if self._tasks.has_report_entries(task_id):
            raise ValidationError("Cannot delete a task with linked report entries")

        if self._tasks.find_children(task_id):
            raise ValidationError("Cannot delete a task that has child tasks")

        self._tasks.delete(task_id)
        logger.info("Deleted task %s from project %s", task_id, project_id)


def _check_dates(start_date: date | None, end_date: date | None) -> None:
    if start_date and end_date and end_date < start_date:
        raise ValidationError("End date must be on or after the start date")
