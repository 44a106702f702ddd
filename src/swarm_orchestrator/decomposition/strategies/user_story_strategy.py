"""User-story breakdown for requirements analysis."""

import logging
import re
from typing import Dict, List

from ..base import BaseShardingStrategy, extract_statements, short_name
from ...models.sharding_models import ShardingStrategyName
from ...models.task_models import Task, TaskType


logger = logging.getLogger(__name__)

DEFAULT_STORY_HOURS = 4.0

_STORY = re.compile(
    r"as an?\s+(?P<persona>[^,]+?),?\s+i\s+want\s+(?:to\s+)?(?P<want>.+?)"
    r"(?:,?\s+so\s+that\s+(?P<benefit>.+?))?(?:[.\n]|$)",
    re.IGNORECASE,
)


class UserStoryStrategy(BaseShardingStrategy):
    """
    Split requirements analysis into persona-oriented stories.

    PATTERN: "As a <persona>, I want <want> so that <benefit>" sentences first
    GOTCHA: Free-form requirements become one generic-persona story per statement
    """

    name = ShardingStrategyName.USER_STORY_BREAKDOWN

    def applies_to(self, task: Task, score: int) -> bool:
        return task.type == TaskType.REQUIREMENTS_ANALYSIS

    def split(self, task: Task) -> List[Task]:
        stories = self.extract_stories(task)
        total = task.effort.estimated_hours
        hours = total / len(stories) if total > 0 else DEFAULT_STORY_HOURS

        return [
            self._create_subtask(
                parent_task=task,
                index=index,
                title=f"User Story: {short_name(story['want'])}",
                description=(
                    f"As a {story['persona']}, I want {story['want']} "
                    f"so that {story['benefit']}"
                ),
                estimated_hours=hours,
                task_type=TaskType.STORY_CREATION,
                persona=story["persona"],
                want=story["want"],
                benefit=story["benefit"],
                story_hours=hours,
            )
            for index, story in enumerate(stories)
        ]

    def extract_stories(self, task: Task) -> List[Dict[str, str]]:
        """
        Extract persona stories from the description.

        Args:
            task: Requirements task

        Returns:
            Story dicts with persona, want and benefit
        """
        stories = []
        for match in _STORY.finditer(task.description):
            stories.append(
                {
                    "persona": match.group("persona").strip(),
                    "want": match.group("want").strip(" ."),
                    "benefit": (match.group("benefit") or "the requirement is met").strip(" ."),
                }
            )

        if stories:
            return stories

        statements = extract_statements(task.description) or [task.title]
        return [
            {
                "persona": "user",
                "want": statement[:1].lower() + statement[1:],
                "benefit": "the requirement is met",
            }
            for statement in statements
        ]
