"""Planning phase: requirements analysis followed by architecture design."""

import json
import logging
import time
from typing import Any, Dict, List

from .base import BasePhase
from ..models.coordination_models import ExecutionResult
from ..models.pipeline_models import PhaseResult
from ..models.task_models import (
    ProjectContext,
    RiskLevel,
    Task,
    TaskComplexity,
    TaskEffort,
    TaskPriority,
    TaskStatus,
    TaskType,
)

logger = logging.getLogger(__name__)

# Result keys folded back into the project, keyed by the task type producing them
REQUIREMENT_KEYS = {
    "functional_requirements": "functional",
    "non_functional_requirements": "non_functional",
    "constraints": "constraints",
}
ARCHITECTURE_KEYS = {
    "components": "components",
    "patterns": "patterns",
    "technologies": "technologies",
}


def _identity(item: Any) -> str:
    if isinstance(item, dict):
        for key in ("id", "name"):
            if key in item:
                return f"{key}:{item[key]}"
    return json.dumps(item, default=str, sort_keys=True)


def merge_unique(existing: List[Any], incoming: List[Any]) -> List[Any]:
    """Append items not already present, matching dicts by id or name."""
    merged = list(existing)
    seen = {_identity(item) for item in merged}
    for item in incoming:
        identity = _identity(item)
        if identity not in seen:
            seen.add(identity)
            merged.append(item)
    return merged


def merged_output(execution: ExecutionResult) -> Dict[str, Any]:
    """Synthesised output if present, otherwise worker outputs merged in order."""
    if execution.synthesis is not None:
        return dict(execution.synthesis.merged_output)

    merged: Dict[str, Any] = {}
    outputs = [execution.leader_plan.output] if execution.leader_plan else []
    outputs += [result.output for result in execution.results]
    for output in outputs:
        for key, value in output.items():
            if isinstance(value, list) and isinstance(merged.get(key), list):
                merged[key] = merge_unique(merged[key], value)
            else:
                merged[key] = value
    return merged


class PlanningPhase(BasePhase):
    """
    Phase 1: requirements analysis and architecture design.

    PATTERN: Two assignments in order, each folding its output into the
        project context before the next one runs
    GOTCHA: A failed requirements analysis blocks the architecture design
    """

    name = "planning"

    def build_tasks(self, project: ProjectContext) -> List[Task]:
        """The planning tasks for a project, in execution order."""
        requirements = Task(
            id=f"req_analysis_{project.id}",
            title="Requirements Analysis",
            description=f"Analyze project requirements for: {project.name}\n\n{project.description}",
            type=TaskType.REQUIREMENTS_ANALYSIS,
            priority=TaskPriority.CRITICAL,
            status=TaskStatus.IN_PROGRESS,
            effort=TaskEffort(
                estimated_hours=4,
                complexity=TaskComplexity.MEDIUM,
                risk_level=RiskLevel.MEDIUM,
            ),
            acceptance_criteria=[
                "Functional requirements identified with acceptance criteria",
                "Non-functional requirements stated with measurable targets",
                "Constraints documented",
            ],
        )
        architecture = Task(
            id=f"arch_design_{project.id}",
            title="Architecture Design",
            description=(
                f"Design the system architecture for: {project.name}\n\n{project.description}"
            ),
            type=TaskType.ARCHITECTURE_DESIGN,
            priority=TaskPriority.HIGH,
            status=TaskStatus.BACKLOG,
            dependencies=[requirements.id],
            effort=TaskEffort(
                estimated_hours=6,
                complexity=TaskComplexity.MEDIUM,
                risk_level=RiskLevel.MEDIUM,
            ),
            acceptance_criteria=[
                "Components and their responsibilities defined",
                "Technology choices justified",
            ],
        )
        return [requirements, architecture]

    async def execute(self, project: ProjectContext) -> PhaseResult:
        """
        Run the planning phase.

        Args:
            project: Project to plan

        Returns:
            PhaseResult whose `project` carries the absorbed requirements
            and architecture
        """
        start = time.monotonic()
        self.logger.info(f"Planning phase started for project {project.name}")

        project = project.model_copy(deep=True)
        result = PhaseResult(phase=self.name)
        result.context_ids.append(await self.context_store.create_project_context(project))

        tasks = self.build_tasks(project)
        result.tasks = tasks
        workers_used: List[str] = []

        for task in tasks:
            await self.gate()

            unfinished = set(result.failed_tasks) | set(result.blocked_tasks)
            if unfinished.intersection(task.dependencies):
                task.mark_status(TaskStatus.BLOCKED)
                result.blocked_tasks.append(task.id)
                self.logger.warning(f"Planning task {task.id} blocked by a failed prerequisite")
                continue

            task.mark_status(TaskStatus.IN_PROGRESS)
            run = await self.attempt_task(task, project_id=project.id)
            if not run.succeeded:
                task.mark_status(TaskStatus.BLOCKED)
                result.failed_tasks[task.id] = run.error.to_dict()
                continue

            task.mark_status(TaskStatus.DONE)
            result.executions[task.id] = run.result
            result.raw_usage += run.raw_usage
            result.optimized_usage += run.optimized_usage
            workers_used += [w for w in run.result.worker_ids if w not in workers_used]

            self.absorb(project, task, run.result)
            await self.context_store.create_project_context(project)

        result.success = not result.failed_tasks and not result.blocked_tasks
        result.duration_ms = (time.monotonic() - start) * 1000
        result.project = project
        result.metrics = {
            "functional_requirements": len(project.functional_requirements),
            "components": len(project.architecture.get("components", [])),
            "artifacts": sum(len(e.artifacts) for e in result.executions.values()),
        }

        if result.executions:
            self.cost_tracker.record(
                "planning",
                result.duration_ms,
                result.raw_usage,
                result.optimized_usage,
                workers_used,
            )

        self.logger.info(
            f"Planning phase {'completed' if result.success else 'failed'} in "
            f"{result.duration_ms:.0f}ms with {len(result.executions)} assignments"
        )
        return result

    def absorb(self, project: ProjectContext, task: Task, execution: ExecutionResult) -> None:
        """
        Fold an assignment's output into the project.

        Requirements analysis may contribute functional_requirements,
        non_functional_requirements and constraints; architecture design may
        contribute an `architecture` mapping plus components, patterns and
        technologies. List values are merged, never replaced.
        """
        output = merged_output(execution)

        if task.type == TaskType.REQUIREMENTS_ANALYSIS:
            for key, target in REQUIREMENT_KEYS.items():
                if isinstance(output.get(key), list):
                    project.requirements[target] = merge_unique(
                        project.requirements.get(target, []), output[key]
                    )

        elif task.type == TaskType.ARCHITECTURE_DESIGN:
            if isinstance(output.get("architecture"), dict):
                project.architecture.update(output["architecture"])
            for key, target in ARCHITECTURE_KEYS.items():
                if isinstance(output.get(key), list):
                    project.architecture[target] = merge_unique(
                        project.architecture.get(target, []), output[key]
                    )
