"""
Type definitions for Agentic Copilot.

Provides typed dataclasses for goals, tasks and the web context they are
planned against. Goals own their tasks; a task only refers back to its goal
by id.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional


def new_id() -> str:
    """Create an opaque unique identifier."""
    return str(uuid.uuid4())


class GoalPriority(str, Enum):
    """Priority of a goal, derived from the objective text."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class GoalStatus(str, Enum):
    """Lifecycle state of a goal."""
    PLANNING = "planning"
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"
    PAUSED = "paused"


class TaskStatus(str, Enum):
    """Lifecycle state of a planned task."""
    PENDING = "pending"
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class WebContext:
    """Snapshot of the page the user is looking at.

    Attributes:
        url: Current page URL
        title: Page title
        content: Visible text content (optional)
        elements: Interesting elements as {tag, text, attributes} dicts
    """
    url: str = ""
    title: str = ""
    content: str = ""
    elements: list[dict[str, Any]] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "WebContext":
        """Create from a loosely-shaped dict (camelCase keys accepted)."""
        return cls(
            url=data.get("url", "") or "",
            title=data.get("title", "") or "",
            content=data.get("content", "") or "",
            elements=list(data.get("elements", []) or []),
        )

    @classmethod
    def from_context(cls, context: Optional[dict[str, Any]]) -> Optional["WebContext"]:
        """Pull the web context out of a planning context, if any."""
        if not context:
            return None
        raw = context.get("web_context", context.get("webContext"))
        if raw is None:
            return None
        if isinstance(raw, WebContext):
            return raw
        if isinstance(raw, dict):
            return cls.from_dict(raw)
        return None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "url": self.url,
            "title": self.title,
            "content": self.content,
            "elements": self.elements,
        }


@dataclass
class Task:
    """One planner-generated unit of work.

    Attributes:
        goal_id: Id of the owning goal (back-reference only)
        description: Human-readable description, also used as the next LLM turn
        tool_calls: Names of tools eligible for this task
        dependencies: Ids of tasks that should complete first (advisory)
        result: Outcome on success
        error: Outcome on failure
        max_retries: Derived from plan confidence
        metadata: intent, entities, confidence, web_aware
    """
    goal_id: str
    description: str
    status: TaskStatus = TaskStatus.PENDING
    tool_calls: list[str] = field(default_factory=list)
    dependencies: list[str] = field(default_factory=list)
    result: Any = None
    error: Optional[str] = None
    retry_count: int = 0
    max_retries: int = 3
    metadata: dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=new_id)

    @property
    def is_open(self) -> bool:
        """True while the task can still receive a tool result."""
        return self.status in (TaskStatus.PENDING, TaskStatus.EXECUTING)

    def complete(self, result: Any) -> None:
        self.status = TaskStatus.COMPLETED
        self.result = result
        self.error = None

    def fail(self, error: str) -> None:
        self.status = TaskStatus.FAILED
        self.error = error
        self.result = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging and progress callbacks."""
        return {
            "id": self.id,
            "goal_id": self.goal_id,
            "description": self.description,
            "status": self.status.value,
            "tool_calls": list(self.tool_calls),
            "dependencies": list(self.dependencies),
            "result": self.result,
            "error": self.error,
            "retry_count": self.retry_count,
            "max_retries": self.max_retries,
            "metadata": self.metadata,
        }


@dataclass
class Goal:
    """A user objective decomposed into ordered tasks.

    `progress` is derived from the tasks and only changes through
    `refresh_progress()`; `completed_at` is set once, when the goal reaches 100%.
    """
    objective: str
    priority: GoalPriority = GoalPriority.MEDIUM
    status: GoalStatus = GoalStatus.PLANNING
    sub_tasks: list[Task] = field(default_factory=list)
    progress: int = 0
    created_at: datetime = field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None
    context: Optional[dict[str, Any]] = None
    id: str = field(default_factory=new_id)

    def calculate_progress(self) -> int:
        """round(100 * completed / total), 0 without tasks."""
        if not self.sub_tasks:
            return 0
        completed = sum(1 for t in self.sub_tasks if t.status == TaskStatus.COMPLETED)
        # Half-up rounding; Python's round() would send 50.5 to 50
        return int(completed * 100 / len(self.sub_tasks) + 0.5)

    def refresh_progress(self, now: Optional[datetime] = None) -> int:
        """Recompute progress and complete the goal when it reaches 100."""
        self.progress = self.calculate_progress()
        if self.progress == 100 and self.status != GoalStatus.COMPLETED:
            self.status = GoalStatus.COMPLETED
            self.completed_at = now or datetime.now()
        return self.progress

    def find_open_task_for_tool(self, tool_name: str) -> Optional[Task]:
        """First pending or executing task that lists the tool."""
        for task in self.sub_tasks:
            if task.is_open and tool_name in task.tool_calls:
                return task
        return None

    def next_pending_task(self) -> Optional[Task]:
        """Next pending task, preferring ones whose dependencies are done."""
        completed = {t.id for t in self.sub_tasks if t.status == TaskStatus.COMPLETED}
        pending = [t for t in self.sub_tasks if t.status == TaskStatus.PENDING]
        for task in pending:
            if all(dep in completed for dep in task.dependencies):
                return task
        return pending[0] if pending else None

    def has_open_tasks(self) -> bool:
        return any(t.is_open for t in self.sub_tasks)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging and progress callbacks."""
        return {
            "id": self.id,
            "objective": self.objective,
            "priority": self.priority.value,
            "status": self.status.value,
            "progress": self.progress,
            "sub_tasks": [t.to_dict() for t in self.sub_tasks],
            "created_at": self.created_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }
