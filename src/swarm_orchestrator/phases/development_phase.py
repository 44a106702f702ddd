"""Development phase: stories, sharding and dependency-ordered execution."""

import logging
import time
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

from .base import BasePhase, TaskRun, gather_or_cancel
from ..context.compression import serialize
from ..decomposition.complexity_scorer import complexity_distribution
from ..decomposition.dependency_graph import DependencyGraph
from ..errors import ValidationError
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
from ..validation import validate_tasks

logger = logging.getLogger(__name__)

PERSONAS = [
    "registered user",
    "system administrator",
    "business analyst",
    "end user",
    "team member",
]
DEFAULT_BENEFIT = "I can accomplish my tasks more efficiently"
HIGH_RISK_TERMS = ("integration", "external", "migration")
MEDIUM_RISK_TERMS = ("auth", "security", "performance")
MAX_STORY_HOURS = 21


def story_id(requirement_id: str) -> str:
    return f"US_{requirement_id}"


def estimate_story_hours(requirement: Dict[str, Any]) -> float:
    """Explicit estimate, else 5h plus keyword and dependency bumps, capped at 21."""
    if requirement.get("estimated_hours") is not None:
        return float(requirement["estimated_hours"])

    title = str(requirement.get("title", "")).lower()
    hours = 5
    if "auth" in title:
        hours += 3
    if "report" in title:
        hours += 5
    if "integration" in title:
        hours += 8
    if len(requirement.get("dependencies", [])) > 2:
        hours += 2
    return float(min(hours, MAX_STORY_HOURS))


def story_complexity(hours: float, dependency_count: int) -> TaskComplexity:
    if hours > 13 or dependency_count > 3:
        return TaskComplexity.COMPLEX
    if hours > 8 or dependency_count > 1:
        return TaskComplexity.MEDIUM
    return TaskComplexity.SIMPLE


def story_risk(title: str) -> RiskLevel:
    title = title.lower()
    if any(term in title for term in HIGH_RISK_TERMS):
        return RiskLevel.HIGH
    if any(term in title for term in MEDIUM_RISK_TERMS):
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def _priority(value: Any) -> TaskPriority:
    try:
        return TaskPriority(value)
    except ValueError:
        return TaskPriority.MEDIUM


class DevelopmentPhase(BasePhase):
    """
    Phase 2: turn requirements into stories and execute the work graph.

    PATTERN: Stories + caller tasks -> shard -> dependency batches, each
        batch executed concurrently
    CRITICAL: A failed task blocks all of its dependents, transitively
    GOTCHA: Dependencies on unknown task ids are dropped with a warning
    """

    name = "development"

    def build_stories(self, project: ProjectContext) -> List[Task]:
        """
        One development story per functional requirement.

        Args:
            project: Project whose requirements["functional"] is read

        Returns:
            Story tasks with ids US_<requirement id>
        """
        stories = []
        for index, requirement in enumerate(project.functional_requirements):
            requirement_id = str(requirement.get("id") or f"{index + 1:03d}")
            title = str(requirement.get("title") or f"User Story {index + 1}")
            dependencies = [story_id(str(dep)) for dep in requirement.get("dependencies", [])]
            hours = estimate_story_hours(requirement)
            persona = PERSONAS[index % len(PERSONAS)]

            want = str(requirement.get("description") or f"to {title.lower()}")
            want = want.replace("System shall", "to").replace("system shall", "to")
            benefit = requirement.get("benefit") or DEFAULT_BENEFIT

            stories.append(
                Task(
                    id=story_id(requirement_id),
                    title=f"Implement: {title}",
                    description=f"As a {persona}, I want {want}, so that {benefit}.",
                    type=TaskType.DEVELOPMENT,
                    priority=_priority(requirement.get("priority", "medium")),
                    status=TaskStatus.BACKLOG,
                    dependencies=dependencies,
                    effort=TaskEffort(
                        estimated_hours=hours,
                        complexity=story_complexity(hours, len(dependencies)),
                        risk_level=story_risk(title),
                    ),
                    acceptance_criteria=list(requirement.get("acceptance_criteria", [])),
                    metadata={
                        "requirement_id": requirement_id,
                        "persona": persona,
                        "technical": {"architecture": project.architecture},
                    },
                )
            )

        self.logger.info(f"Generated {len(stories)} stories for project {project.name}")
        return stories

    def shard_tasks(self, tasks: Sequence[Task]) -> Tuple[List[Task], Dict[str, List[str]]]:
        """
        Replace tasks that need sharding with their sub-tasks.

        Dependencies on a sharded task are rewritten to depend on all of its
        sub-tasks.

        Returns:
            (executable tasks, parent id -> sub-task ids)
        """
        expanded: List[Task] = []
        shards: Dict[str, List[str]] = {}

        for task in tasks:
            if self.sharder.should_shard(task):
                subtasks = self.sharder.shard(task)
                shards[task.id] = [subtask.id for subtask in subtasks]
                expanded.extend(subtasks)
            else:
                expanded.append(task)

        if not shards:
            return expanded, shards

        remapped = []
        for task in expanded:
            dependencies: List[str] = []
            for dependency in task.dependencies:
                for target in shards.get(dependency, [dependency]):
                    if target not in dependencies and target != task.id:
                        dependencies.append(target)
            remapped.append(task.model_copy(update={"dependencies": dependencies}))
        return remapped, shards

    def build_graph(self, tasks: Sequence[Task]) -> DependencyGraph:
        """
        Dependency graph over the executable tasks.

        Raises:
            ValidationError: The tasks contain a dependency cycle
        """
        graph = DependencyGraph()
        known = {task.id for task in tasks}
        for task in tasks:
            graph.add_node(task.id)

        for task in tasks:
            missing = [dep for dep in task.dependencies if dep not in known]
            if missing:
                self.logger.warning(
                    f"Task {task.id} depends on unknown tasks: {', '.join(missing)}"
                )
            graph.set_dependencies(task.id, [dep for dep in task.dependencies if dep in known])

        validation = graph.validate()
        if validation.has_cycles:
            raise ValidationError(
                "Dependency cycle between tasks: " + " -> ".join(validation.cycles[0]),
                entity_id=validation.cycles[0][0],
            )
        self.logger.debug(graph.visualize())
        return graph

    async def execute(
        self,
        project: ProjectContext,
        tasks: Optional[Sequence[Task]] = None,
    ) -> PhaseResult:
        """
        Run the development phase.

        Args:
            project: Project as produced by planning
            tasks: Additional caller tasks

        Returns:
            PhaseResult with executions, failures and blocked tasks

        Raises:
            ValidationError: Duplicate task ids or a dependency cycle
        """
        start = time.monotonic()
        self.logger.info(f"Development phase started for project {project.name}")
        result = PhaseResult(phase=self.name, project=project)

        if f"project_{project.id}" not in self.context_store:
            await self.context_store.create_project_context(project)

        stories = self.build_stories(project)
        planned = validate_tasks([*stories, *(tasks or [])])

        for story in stories:
            result.context_ids.append(
                await self.context_store.create_story_context(story, project.id)
            )

        work, shards = self.shard_tasks(planned)
        graph = self.build_graph(work)
        by_id = {task.id: task for task in work}
        result.tasks = work

        failed: Set[str] = set()
        blocked: Set[str] = set()
        doomed: Set[str] = set()
        workers_used: List[str] = []

        batches = graph.get_execution_batches()
        for batch in batches:
            await self.gate()

            runnable: List[Task] = []
            for task_id in batch:
                task = by_id[task_id]
                if task_id in doomed:
                    task.mark_status(TaskStatus.BLOCKED)
                    blocked.add(task_id)
                    self.logger.warning(f"Task {task_id} blocked by a failed prerequisite")
                    continue
                task.mark_status(TaskStatus.IN_PROGRESS)
                runnable.append(task)

            runs: List[TaskRun] = await gather_or_cancel(
                self.attempt_task(task, project_id=project.id) for task in runnable
            )

            for run in runs:
                if not run.succeeded:
                    run.task.mark_status(TaskStatus.BLOCKED)
                    failed.add(run.task.id)
                    doomed |= graph.get_transitive_dependents(run.task.id)
                    result.failed_tasks[run.task.id] = run.error.to_dict()
                    continue

                run.task.mark_status(TaskStatus.DONE)
                result.executions[run.task.id] = run.result
                result.raw_usage += run.raw_usage
                result.optimized_usage += run.optimized_usage
                workers_used += [w for w in run.result.worker_ids if w not in workers_used]

        result.blocked_tasks = sorted(blocked)
        result.context_ids += [
            f"task_{task.id}" for task in work if f"task_{task.id}" in self.context_store
        ]
        result.success = not failed and not blocked
        result.duration_ms = (time.monotonic() - start) * 1000
        result.metrics = {
            "stories": len(stories),
            "tasks": len(work),
            "sharded_tasks": len(shards),
            "subtasks": sum(len(ids) for ids in shards.values()),
            "batches": len(batches),
            "complexity_distribution": complexity_distribution(work),
            "context_preservation": await self.context_preservation(project, stories, work),
        }

        if result.executions:
            self.cost_tracker.record(
                "development",
                result.duration_ms,
                result.raw_usage,
                result.optimized_usage,
                workers_used,
            )

        self.logger.info(
            f"Development phase {'completed' if result.success else 'finished with failures'}: "
            f"{len(result.executions)} done, {len(failed)} failed, {len(blocked)} blocked, "
            f"context preservation {result.metrics['context_preservation']}%"
        )
        return result

    async def context_preservation(
        self,
        project: ProjectContext,
        stories: Sequence[Task],
        tasks: Sequence[Task],
    ) -> int:
        """
        Percentage of project context elements that reach the workers.

        Elements are requirement titles (looked up in their story context),
        architecture component names and constraints (looked up in any task
        context retrieved with its dependencies). 100 when there are none.
        """
        total = 0
        preserved = 0

        for story in stories:
            total += 1
            payload = await self.context_store.retrieve(f"story_{story.id}", depth=0)
            title = story.title.replace("Implement: ", "", 1).lower()
            if payload is not None and title in serialize(payload).lower():
                preserved += 1

        components = project.architecture.get("components", [])
        constraints = project.requirements.get("constraints", [])
        elements = [
            str(item.get("name", "")) if isinstance(item, dict) else str(item)
            for item in [*components, *constraints]
        ]
        elements = [element.lower() for element in elements if element]
        if elements:
            haystack = ""
            for task in tasks:
                if f"task_{task.id}" not in self.context_store:
                    continue
                context = await self.context_store.retrieve(f"task_{task.id}", depth=1)
                if context is not None:
                    haystack += serialize(context).lower()
            total += len(elements)
            preserved += sum(1 for element in elements if element in haystack)

        return round(preserved / total * 100) if total else 100
