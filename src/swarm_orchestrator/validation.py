"""Input validation for tasks, projects and worker rosters."""

import logging
from typing import Iterable, List

from .errors import ValidationError
from .models.task_models import ProjectContext, Task
from .models.worker_models import WorkerDefinition

logger = logging.getLogger(__name__)


def validate_task(task: Task) -> Task:
    """
    Validate a task before it enters the core.

    Args:
        task: Task to validate

    Returns:
        The same task, for chaining

    Raises:
        ValidationError: Missing title/description, self-dependency,
            duplicate dependencies or negative effort
    """
    if not task.id or not task.id.strip():
        raise ValidationError("Task id must not be empty")

    if not task.title or not task.title.strip():
        raise ValidationError("Task title is required", entity_id=task.id)

    if not task.description.strip() and task.effort.estimated_hours <= 0:
        raise ValidationError(
            "Task description is required when no effort is estimated",
            entity_id=task.id,
        )

    if task.id in task.dependencies:
        raise ValidationError("Task cannot depend on itself", entity_id=task.id)

    if len(set(task.dependencies)) != len(task.dependencies):
        raise ValidationError("Task lists a dependency twice", entity_id=task.id)

    if task.effort.estimated_hours < 0:
        raise ValidationError("Estimated hours cannot be negative", entity_id=task.id)

    return task


def validate_tasks(tasks: Iterable[Task]) -> List[Task]:
    """Validate a batch of tasks and check for duplicate ids."""
    seen = set()
    validated = []
    for task in tasks:
        validate_task(task)
        if task.id in seen:
            raise ValidationError("Duplicate task id", entity_id=task.id)
        seen.add(task.id)
        validated.append(task)
    return validated


def validate_project(project: ProjectContext) -> ProjectContext:
    """
    Validate a project before a pipeline run.

    Raises:
        ValidationError: Empty id or name, or malformed functional requirements
    """
    if not project.id or not project.id.strip():
        raise ValidationError("Project id must not be empty")
    if not project.name or not project.name.strip():
        raise ValidationError("Project name is required", entity_id=project.id)

    functional = project.requirements.get("functional", [])
    if not isinstance(functional, list) or not all(isinstance(r, dict) for r in functional):
        raise ValidationError(
            "requirements.functional must be a list of requirement mappings",
            entity_id=project.id,
        )
    return project


def validate_worker_definitions(
    definitions: Iterable[WorkerDefinition],
) -> List[WorkerDefinition]:
    """
    Validate a worker roster.

    Raises:
        ValidationError: Empty roster, empty ids/names or duplicate ids
    """
    roster = list(definitions)
    if not roster:
        raise ValidationError("Worker roster must not be empty")

    seen = set()
    for definition in roster:
        if not definition.id.strip():
            raise ValidationError("Worker id must not be empty")
        if not definition.name.strip():
            raise ValidationError("Worker name is required", entity_id=definition.id)
        if definition.id in seen:
            raise ValidationError("Duplicate worker id", entity_id=definition.id)
        seen.add(definition.id)

    logger.debug(f"Validated roster of {len(roster)} workers")
    return roster
