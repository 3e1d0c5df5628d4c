"""
Priority task queue for Agentic Copilot automation jobs.

Runs workflow, action, scrape and monitor jobs on the event loop with bounded
concurrency, a per-task timeout, retries and cancellation.

Ordering: the pending list is kept sorted by priority (urgent first) with
arrival order preserved among equals. A retried task goes back ahead of
every pending task of equal or lower priority.
"""

import asyncio
import inspect
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from .page_executor import PageExecutionError, PageExecutor, action_message, workflow_message
from .schemas import PageMessage
from .types import new_id

logger = logging.getLogger("agentic_copilot.task_queue")


class TaskType(str, Enum):
    """Kind of automation job."""
    WORKFLOW = "workflow"
    ACTION = "action"
    SCRAPE = "scrape"
    MONITOR = "monitor"


class QueuePriority(str, Enum):
    """Dequeue priority of a job."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


PRIORITY_RANK = {
    QueuePriority.URGENT: 0,
    QueuePriority.HIGH: 1,
    QueuePriority.MEDIUM: 2,
    QueuePriority.LOW: 3,
}


class QueuedTaskStatus(str, Enum):
    """Lifecycle state of a queued job."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class TaskTimeoutError(TimeoutError):
    """A job did not settle within its timeout."""


@dataclass
class QueuedTask:
    """An automation job tracked by the queue."""
    type: TaskType
    priority: QueuePriority = QueuePriority.MEDIUM
    payload: Any = None
    max_retries: int = 3
    timeout: int = 30000
    scheduled_for: Optional[datetime] = None
    on_complete: Optional[Callable[[Any], Any]] = None
    on_error: Optional[Callable[[Exception], Any]] = None
    id: str = field(default_factory=new_id)
    status: QueuedTaskStatus = QueuedTaskStatus.PENDING
    created_at: datetime = field(default_factory=datetime.now)
    retry_count: int = 0
    attempts: int = 0

    @property
    def rank(self) -> int:
        return PRIORITY_RANK[self.priority]


@dataclass
class TaskResult:
    """Outcome of one execution attempt."""
    task_id: str
    success: bool
    result: Any = None
    error: Optional[str] = None
    duration: float = 0.0  # milliseconds


TaskListener = Callable[[QueuedTask, Optional[TaskResult]], Any]
TaskHandler = Callable[[Any], Awaitable[Any]]


class TaskQueue:
    """Bounded-concurrency, priority-ordered, retrying job executor.

    Must be used from a running event loop: enqueueing schedules a processing
    pass with `call_soon`, so several synchronous `add_task` calls are all
    ordered before anything starts.
    """

    def __init__(
        self,
        max_concurrent: int = 3,
        page_executor: Optional[PageExecutor] = None,
        workflow_timeout: int = 30000,
        action_timeout: int = 10000,
        refill_delay: int = 100,
        default_timeout: int = 30000,
        default_max_retries: int = 3,
        clock: Callable[[], datetime] = datetime.now,
    ):
        """Initialize the queue.

        Args:
            max_concurrent: Maximum jobs running at once
            page_executor: Bridge used by workflow and action jobs
            workflow_timeout: Handler timeout for workflow jobs (ms)
            action_timeout: Handler timeout for action jobs (ms)
            refill_delay: Pause after a job settles before refilling (ms)
            default_timeout: Job timeout when `add_task` is given none (ms)
            default_max_retries: Retry budget when `add_task` is given none
            clock: Source of "now" for scheduling
        """
        self.max_concurrent = max_concurrent
        self.page_executor = page_executor
        self.workflow_timeout = workflow_timeout
        self.action_timeout = action_timeout
        self.refill_delay = refill_delay
        self.default_timeout = default_timeout
        self.default_max_retries = default_max_retries
        self._clock = clock

        self._queue: list[QueuedTask] = []
        self._running: dict[str, QueuedTask] = {}
        self._jobs: dict[str, asyncio.Task] = {}
        self._listeners: list[TaskListener] = []
        self._process_scheduled = False
        self._wakeup: Optional[asyncio.TimerHandle] = None
        self._callback_tasks: set[asyncio.Task] = set()

        self._handlers: dict[TaskType, TaskHandler] = {
            TaskType.WORKFLOW: self._execute_workflow,
            TaskType.ACTION: self._execute_action,
            TaskType.SCRAPE: self._execute_scrape,
            TaskType.MONITOR: self._execute_monitor,
        }

    # =========================================================================
    # Public API
    # =========================================================================

    def add_task(
        self,
        type: TaskType | str,
        payload: Any = None,
        priority: QueuePriority | str = QueuePriority.MEDIUM,
        max_retries: Optional[int] = None,
        timeout: Optional[int] = None,
        scheduled_for: Optional[datetime] = None,
        on_complete: Optional[Callable[[Any], Any]] = None,
        on_error: Optional[Callable[[Exception], Any]] = None,
    ) -> str:
        """Enqueue a job and return its id.

        Raises:
            ValueError: If the type or priority is unknown
        """
        task = QueuedTask(
            type=TaskType(type),
            priority=QueuePriority(priority),
            payload=payload,
            max_retries=self.default_max_retries if max_retries is None else max_retries,
            timeout=self.default_timeout if timeout is None else timeout,
            scheduled_for=scheduled_for,
            on_complete=on_complete,
            on_error=on_error,
            created_at=self._clock(),
        )
        self._insert(task)
        self._notify(task)
        self._schedule_processing()
        return task.id

    def cancel_task(self, task_id: str) -> bool:
        """Cancel a pending or running job.

        A running job's coroutine is cancelled and whatever it still produces
        is discarded; no completion or error callback fires for it.

        Returns:
            True if the job was found
        """
        for index, task in enumerate(self._queue):
            if task.id == task_id:
                task.status = QueuedTaskStatus.CANCELLED
                del self._queue[index]
                self._notify(task)
                return True

        task = self._running.pop(task_id, None)
        if task is None:
            return False

        task.status = QueuedTaskStatus.CANCELLED
        job = self._jobs.pop(task_id, None)
        if job is not None and not job.done():
            job.cancel()
        self._notify(task)
        self._schedule_processing()
        return True

    def get_queue_status(self) -> dict[str, int]:
        """Counts of pending and running jobs."""
        return {
            "pending": len(self._queue),
            "running": len(self._running),
            "total": len(self._queue) + len(self._running),
        }

    def get_task(self, task_id: str) -> Optional[QueuedTask]:
        """Look up a pending or running job."""
        if task_id in self._running:
            return self._running[task_id]
        return next((t for t in self._queue if t.id == task_id), None)

    def pending_tasks(self) -> list[QueuedTask]:
        """Snapshot of the pending list in dequeue order."""
        return list(self._queue)

    def on_task_update(self, listener: TaskListener) -> None:
        """Register a listener called with (task, result) on every change."""
        self._listeners.append(listener)

    def register_handler(self, task_type: TaskType | str, handler: TaskHandler) -> None:
        """Replace the handler for a job type."""
        self._handlers[TaskType(task_type)] = handler

    def clear(self) -> None:
        """Cancel every pending and running job."""
        dropped = self._queue + list(self._running.values())
        self._queue = []
        for job in self._jobs.values():
            if not job.done():
                job.cancel()
        self._jobs.clear()
        self._running.clear()
        for task in dropped:
            task.status = QueuedTaskStatus.CANCELLED
            self._notify(task)
        if self._wakeup is not None:
            self._wakeup.cancel()
            self._wakeup = None

    async def drain(self, poll_interval: float = 0.01) -> None:
        """Wait until nothing is pending or running."""
        while self._queue or self._running:
            await asyncio.sleep(poll_interval)

    async def shutdown(self) -> None:
        """Cancel everything and wait for running coroutines to unwind."""
        jobs = list(self._jobs.values())
        self.clear()
        if jobs:
            await asyncio.gather(*jobs, return_exceptions=True)

    # =========================================================================
    # Processing
    # =========================================================================

    def _insert(self, task: QueuedTask) -> None:
        """Insert before the first task with strictly lower priority."""
        index = next(
            (i for i, queued in enumerate(self._queue) if queued.rank > task.rank),
            len(self._queue),
        )
        self._queue.insert(index, task)

    def _requeue_front(self, task: QueuedTask) -> None:
        """Insert before the first task with equal or lower priority."""
        index = next(
            (i for i, queued in enumerate(self._queue) if queued.rank >= task.rank),
            len(self._queue),
        )
        self._queue.insert(index, task)

    def _schedule_processing(self) -> None:
        if self._process_scheduled:
            return
        loop = asyncio.get_running_loop()
        self._process_scheduled = True
        loop.call_soon(self._process_queue)

    def _process_queue(self) -> None:
        self._process_scheduled = False

        while self._queue and len(self._running) < self.max_concurrent:
            task = self._queue.pop(0)

            if task.scheduled_for is not None and task.scheduled_for > self._clock():
                # Coarse scheduling: a future head blocks this pass
                self._queue.insert(0, task)
                self._arm_wakeup(task.scheduled_for)
                break

            self._start(task)

    def _arm_wakeup(self, when: datetime) -> None:
        if self._wakeup is not None:
            self._wakeup.cancel()
        delay = max(0.0, (when - self._clock()).total_seconds())
        loop = asyncio.get_running_loop()
        self._wakeup = loop.call_later(delay, self._on_wakeup)

    def _on_wakeup(self) -> None:
        self._wakeup = None
        self._schedule_processing()

    def _start(self, task: QueuedTask) -> None:
        task.status = QueuedTaskStatus.RUNNING
        self._running[task.id] = task
        self._notify(task)
        self._jobs[task.id] = asyncio.ensure_future(self._execute(task))

    async def _execute(self, task: QueuedTask) -> None:
        started = time.monotonic()
        task.attempts += 1

        try:
            value = await asyncio.wait_for(self._run(task), timeout=task.timeout / 1000)
        except asyncio.CancelledError:
            self._forget(task)
            raise
        except Exception as e:
            if isinstance(e, asyncio.TimeoutError) and not isinstance(e, TaskTimeoutError):
                e = TaskTimeoutError("Task timeout")
            if task.status == QueuedTaskStatus.CANCELLED:
                self._forget(task)
                return
            self._handle_failure(task, e, self._elapsed_ms(started))
        else:
            if task.status == QueuedTaskStatus.CANCELLED:
                self._forget(task)
                return
            self._handle_success(task, value, self._elapsed_ms(started))

        if self.refill_delay > 0:
            await asyncio.sleep(self.refill_delay / 1000)
        self._schedule_processing()

    async def _run(self, task: QueuedTask) -> Any:
        handler = self._handlers.get(task.type)
        if handler is None:
            raise ValueError(f"Unknown task type: {task.type}")
        try:
            return await handler(task.payload)
        except Exception as e:
            logger.error(f"Task execution failed for {task.id}: {e}")
            raise

    def _handle_success(self, task: QueuedTask, value: Any, duration: float) -> None:
        task.status = QueuedTaskStatus.COMPLETED
        self._forget(task)
        result = TaskResult(task_id=task.id, success=True, result=value, duration=duration)
        self._safe_call(task.on_complete, value)
        self._notify(task, result)

    def _handle_failure(self, task: QueuedTask, error: Exception, duration: float) -> None:
        self._forget(task)
        result = TaskResult(task_id=task.id, success=False, error=str(error), duration=duration)

        if task.retry_count < task.max_retries:
            task.retry_count += 1
            task.status = QueuedTaskStatus.PENDING
            self._requeue_front(task)
            logger.info(f"Retrying task {task.id[:8]} ({task.retry_count}/{task.max_retries}): {error}")
        else:
            task.status = QueuedTaskStatus.FAILED
            logger.warning(f"Task {task.id[:8]} failed after {task.attempts} attempt(s): {error}")
            self._safe_call(task.on_error, error)

        self._notify(task, result)

    def _forget(self, task: QueuedTask) -> None:
        self._running.pop(task.id, None)
        self._jobs.pop(task.id, None)

    @staticmethod
    def _elapsed_ms(started: float) -> float:
        return (time.monotonic() - started) * 1000

    def _safe_call(self, callback: Optional[Callable], *args: Any) -> None:
        if callback is None:
            return
        try:
            outcome = callback(*args)
            if inspect.isawaitable(outcome):
                pending = asyncio.ensure_future(outcome)
                self._callback_tasks.add(pending)
                pending.add_done_callback(self._callback_done)
        except Exception:
            logger.exception("Task callback raised")

    def _callback_done(self, pending: asyncio.Task) -> None:
        self._callback_tasks.discard(pending)
        if pending.cancelled():
            return
        error = pending.exception()
        if error is not None:
            logger.error("Async task callback raised", exc_info=error)

    def _notify(self, task: QueuedTask, result: Optional[TaskResult] = None) -> None:
        for listener in list(self._listeners):
            self._safe_call(listener, task, result)

    # =========================================================================
    # Handlers
    # =========================================================================

    async def _execute_workflow(self, payload: Any) -> Any:
        return await self._run_on_page(workflow_message(payload), self.workflow_timeout, "Workflow")

    async def _execute_action(self, payload: Any) -> Any:
        return await self._run_on_page(action_message(payload), self.action_timeout, "Action")

    async def _execute_scrape(self, payload: Any) -> Any:
        return {"scraped": True, "data": payload}

    async def _execute_monitor(self, payload: Any) -> Any:
        return {"monitored": True, "status": payload}

    async def _run_on_page(self, message: PageMessage, timeout: int, label: str) -> Any:
        """Send a message to the page under the handler's own timeout."""
        if self.page_executor is None:
            raise PageExecutionError("No page executor configured")
        try:
            response = await asyncio.wait_for(self.page_executor.execute(message), timeout=timeout / 1000)
        except asyncio.TimeoutError as e:
            raise TaskTimeoutError(f"{label} execution timeout") from e

        if response.success:
            return response.result
        raise PageExecutionError(response.error or f"{label} execution failed")
