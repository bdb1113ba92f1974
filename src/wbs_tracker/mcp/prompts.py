"""MCP prompt templates for common WBS workflows."""

from wbs_tracker.mcp.server import mcp


@mcp.prompt()
def plan_wbs(project_id: int, goal: str) -> str:
    """Generate a prompt to break a goal down into a WBS."""
    return (
        f"I need to plan the following work in project {project_id}:\n\n"
        f"{goal}\n\n"
        f"Please break this down into a work breakdown structure of at most 3 levels:\n"
        f"1. Level 1: major phases or deliverables\n"
        f"2. Level 2: work packages under each phase\n"
        f"3. Level 3: concrete tasks with planned hours\n\n"
        f"Use list_members to pick assignees, then create_task (with parent_task_id "
        f"for nested items) to register the structure."
    )


@mcp.prompt()
def progress_report(project_id: int) -> str:
    """Generate a prompt for a project progress report."""
    return (
        f"Please write a progress report for project {project_id}.\n\n"
        f"Use get_project and list_tasks, then provide:\n"
        f"1. Overall progress, comparing planned and actual hours\n"
        f"2. Tasks in progress (進行中) and who owns them\n"
        f"3. Tasks on hold (保留) or past their end date\n"
        f"4. Recommended next tasks"
    )
