"""
Agent orchestrator for Agentic Copilot.

Drives the goal-execution loop: plans a goal from the user's objective,
runs tool-calling LLM rounds, matches tool results to tasks, updates goal
progress, writes outcomes to memory and decides whether to continue
autonomously.

Tool results are matched to tasks by tool name: the first pending or
executing task listing the tool receives the result. Two open tasks sharing
a tool are both candidates and only the first one is updated.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage, ToolMessage

from .config import CopilotConfig
from .llm_round import RoundRunner, summarize_tool_results, tool_output_text
from .logger import RunLogger
from .memory import MemoryStore
from .planner import Planner
from .schemas import RoundResponse, ToolCallEntry, ToolResultEntry
from .tool_registry import ToolRegistry
from .types import Goal, GoalStatus, TaskStatus, WebContext
from .utils import parse_hostname

logger = logging.getLogger("agentic_copilot.orchestrator")

ProgressCallback = Callable[[dict[str, Any]], None]

CONTINUE_HINTS = ("next", "continue")

ERROR_NEXT_ACTIONS = [
    "Try rephrasing your request",
    "Check if the required service is accessible",
]


@dataclass
class AgenticResponse:
    """The last round's response enriched with goal state."""
    message: str
    tool_calls: list[ToolCallEntry] = field(default_factory=list)
    tool_results: list[ToolResultEntry] = field(default_factory=list)
    finished: bool = False
    planner_steps: Optional[list[Any]] = None
    current_goal: Optional[Goal] = None
    autonomous_mode: bool = False
    next_action: Optional[str] = None
    rounds: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "tool_calls": [c.model_dump() for c in self.tool_calls],
            "tool_results": [r.model_dump() for r in self.tool_results],
            "finished": self.finished,
            "planner_steps": self.planner_steps,
            "current_goal": self.current_goal.to_dict() if self.current_goal else None,
            "autonomous_mode": self.autonomous_mode,
            "next_action": self.next_action,
            "rounds": self.rounds,
        }


@dataclass
class AgentRunResult:
    """User-facing result of a run; never an exception."""
    success: bool
    message: str
    next_actions: list[str] = field(default_factory=list)
    response: Optional[AgenticResponse] = None


class AgenticAgent:
    """Goal-driven agent on top of a tool-calling round runner."""

    def __init__(
        self,
        round_runner: RoundRunner,
        tools: Optional[ToolRegistry | list[str]] = None,
        memory: Optional[MemoryStore] = None,
        planner: Optional[Planner] = None,
        config: Optional[CopilotConfig] = None,
    ):
        """Initialize the agent.

        Args:
            round_runner: Executes one tool-calling LLM round
            tools: Tool registry (or tool names) offered to the planner
            memory: Memory store (a fresh one is created if omitted)
            planner: Planner (built from the tool names if omitted)
            config: Copilot configuration
        """
        self.config = config or CopilotConfig()
        self.round_runner = round_runner

        if isinstance(tools, ToolRegistry):
            tool_names = tools.names()
        else:
            tool_names = list(tools or [])

        self.planner = planner if planner is not None else Planner(tool_names)
        if memory is None:
            memory = MemoryStore(
                max_memories=self.config.max_memories,
                max_domain_memories=self.config.max_domain_memories,
            )
        self._memory = memory

        self.current_goal: Optional[Goal] = None
        self.autonomous_mode = self.config.autonomous_mode
        self.max_autonomous_actions = self.config.max_autonomous_actions
        self.autonomous_action_count = 0
        self._stopped = False
        self._run_logger: Optional[RunLogger] = None

    @property
    def memory(self) -> MemoryStore:
        return self._memory

    # =========================================================================
    # Public API
    # =========================================================================

    async def run(
        self,
        history: list[BaseMessage],
        llm_options: Optional[dict[str, Any]] = None,
        on_progress: Optional[ProgressCallback] = None,
        context: Optional[dict[str, Any]] = None,
        autonomous_mode: Optional[bool] = None,
    ) -> AgentRunResult:
        """Run the agent and always return a result object.

        Round failures are reported as `success=False` with suggested next
        actions instead of being raised.
        """
        try:
            response = await self.run_agentic(
                history, llm_options, on_progress, context, autonomous_mode
            )
        except Exception as e:
            logger.exception("Agentic run failed")
            return AgentRunResult(
                success=False,
                message=f"Failed to process request: {e}",
                next_actions=list(ERROR_NEXT_ACTIONS),
            )

        goal = response.current_goal
        return AgentRunResult(
            success=goal is None or goal.status != GoalStatus.FAILED,
            message=response.message,
            next_actions=[response.next_action] if response.next_action else [],
            response=response,
        )

    async def run_agentic(
        self,
        history: list[BaseMessage],
        llm_options: Optional[dict[str, Any]] = None,
        on_progress: Optional[ProgressCallback] = None,
        context: Optional[dict[str, Any]] = None,
        autonomous_mode: Optional[bool] = None,
    ) -> AgenticResponse:
        """Plan (if needed) and execute the current goal.

        `history` is mutated in place: memories may be inserted at the front
        and autonomous turns are appended.

        Args:
            history: Conversation so far; the last human message is the objective
            llm_options: Passed through to the round runner
            on_progress: Receives `{message?, planner_steps?, current_goal?}`
            context: Round context; `web_context` describes the current page
            autonomous_mode: Overrides the current autonomous setting when given

        Raises:
            Exception: Whatever the round runner raises
        """
        if autonomous_mode is not None:
            self.autonomous_mode = autonomous_mode
        self.autonomous_action_count = 0
        self._stopped = False

        objective = self._last_user_message(history)
        if objective and self.current_goal is None:
            self.current_goal = await self._plan_goal(objective, context)
            if self.current_goal is not None:
                self._inject_memories(history, objective)

        self._run_logger = self._create_run_logger()
        try:
            response, rounds = await self.execute_goal(history, llm_options, on_progress, context)
        except Exception as e:
            if self._run_logger:
                self._run_logger.print_error(str(e))
            raise
        finally:
            if self._run_logger:
                self._run_logger.print_summary(
                    self.current_goal.to_dict() if self.current_goal else None
                )
            self._run_logger = None

        return AgenticResponse(
            message=response.message,
            tool_calls=response.tool_calls,
            tool_results=response.tool_results,
            finished=response.finished,
            planner_steps=response.planner_steps,
            current_goal=self.current_goal,
            autonomous_mode=self.autonomous_mode,
            next_action=self.get_next_action(),
            rounds=rounds,
        )

    async def execute_goal(
        self,
        history: list[BaseMessage],
        llm_options: Optional[dict[str, Any]] = None,
        on_progress: Optional[ProgressCallback] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> tuple[RoundResponse, int]:
        """Run rounds until the continuation heuristic says stop.

        Returns:
            The last round's response and the number of rounds run
        """
        goal = self.current_goal
        if goal is None:
            return await self._run_round(history, llm_options, on_progress, context), 1

        def report(update: dict[str, Any]) -> None:
            self._emit(on_progress, {
                **update,
                "current_goal": goal,
                "autonomous_mode": self.autonomous_mode,
            })

        self._dispatch_next_task(goal)
        rounds = 0

        while True:
            response = await self._run_round(history, llm_options, report, context)
            rounds += 1

            self._learn_from_execution(goal, response, context)
            self._update_goal_progress(goal, response)

            if self._run_logger:
                self._run_logger.log_round(response.model_dump(), goal.to_dict())
            report({"message": response.message, "planner_steps": response.planner_steps})

            if not self.should_continue_autonomously(response):
                break

            self.autonomous_action_count += 1
            history.extend(self._round_transcript(response))
            next_action = self.get_next_action()
            if next_action:
                self._dispatch_next_task(goal)
                history.append(HumanMessage(content=next_action))

            if (
                self.autonomous_action_count >= self.max_autonomous_actions
                or goal.status != GoalStatus.EXECUTING
            ):
                break
            if self._stopped:
                logger.info("Stop requested; ending autonomous loop")
                break

        return response, rounds

    def should_continue_autonomously(self, response: RoundResponse) -> bool:
        """Whether the loop should take another autonomous step."""
        if not self.autonomous_mode:
            return False
        goal = self.current_goal
        if goal is None or goal.status != GoalStatus.EXECUTING:
            return False
        if self.autonomous_action_count >= self.max_autonomous_actions:
            return False

        message = response.message.lower()
        needs_more_actions = any(hint in message for hint in CONTINUE_HINTS) or bool(response.tool_calls)
        return goal.has_open_tasks() or needs_more_actions

    def get_next_action(self) -> Optional[str]:
        """Hint for the next user turn, None when there is nothing to do."""
        goal = self.current_goal
        if goal is None:
            return None

        next_task = next((t for t in goal.sub_tasks if t.status == TaskStatus.PENDING), None)
        if next_task is not None:
            return f"Continue with: {next_task.description}"

        if goal.progress < 100:
            return f"Analyze progress and determine next steps for: {goal.objective}"
        return None

    def set_autonomous_mode(self, enabled: bool, max_actions: int = 10) -> None:
        self.autonomous_mode = enabled
        self.max_autonomous_actions = max_actions
        self.autonomous_action_count = 0

    def get_current_goal(self) -> Optional[Goal]:
        return self.current_goal

    def set_current_goal(self, goal: Goal) -> None:
        self.current_goal = goal
        self.autonomous_action_count = 0

    def clear_current_goal(self) -> None:
        self.current_goal = None
        self.autonomous_action_count = 0

    def stop(self) -> None:
        """Ask the loop to stop before its next round."""
        self._stopped = True

    # =========================================================================
    # Internals
    # =========================================================================

    @staticmethod
    def _last_user_message(history: list[BaseMessage]) -> Optional[str]:
        for message in reversed(history):
            if isinstance(message, HumanMessage):
                content = message.content
                return content if isinstance(content, str) else str(content)
        return None

    async def _plan_goal(self, objective: str, context: Optional[dict[str, Any]]) -> Optional[Goal]:
        try:
            web_context = WebContext.from_context(context)
            if web_context is not None:
                self.planner.adapt_planning_to_web_context(web_context)
            return await self.planner.create_goal(objective, context)
        except Exception:
            logger.exception("Planning failed; continuing without a goal")
            return None

    def _inject_memories(self, history: list[BaseMessage], objective: str) -> None:
        try:
            memories = self._memory.get_relevant_memories(objective, self.config.memory_limit)
        except Exception:
            logger.exception("Memory lookup failed")
            return
        if memories:
            joined = "\n".join(m.content for m in memories)
            history.insert(0, SystemMessage(content=f"Relevant past experiences:\n{joined}"))

    def _create_run_logger(self) -> Optional[RunLogger]:
        if not self.config.log_runs or self.current_goal is None:
            return None
        run_logger = RunLogger(
            self.current_goal.objective,
            runs_dir=self.config.runs_dir,
            enable_console=self.config.console_output,
        )
        run_logger.print_header()
        return run_logger

    async def _run_round(
        self,
        history: list[BaseMessage],
        llm_options: Optional[dict[str, Any]],
        on_progress: Optional[ProgressCallback],
        context: Optional[dict[str, Any]],
    ) -> RoundResponse:
        raw = await self.round_runner.run(history, llm_options, on_progress, context)
        if isinstance(raw, RoundResponse):
            return raw
        return RoundResponse.model_validate(raw)

    def _round_transcript(self, response: RoundResponse) -> list[BaseMessage]:
        """Messages recording a finished round, tool outputs included.

        Calls and results are paired by position when every call has a
        result; otherwise the results are summarized in the assistant turn.
        """
        if not response.tool_results:
            return [AIMessage(content=response.message)]

        if len(response.tool_calls) != len(response.tool_results):
            summary = summarize_tool_results(response.tool_results)
            text = f"{response.message}\n\nTool results:\n{summary}" if response.message else summary
            return [AIMessage(content=text)]

        calls = [
            {"name": call.name, "args": call.args, "id": call.id or f"call_{self.autonomous_action_count}_{index}"}
            for index, call in enumerate(response.tool_calls)
        ]
        messages: list[BaseMessage] = [AIMessage(content="", tool_calls=calls)]
        for call, result in zip(calls, response.tool_results):
            messages.append(ToolMessage(
                content=tool_output_text(result),
                tool_call_id=call["id"],
                name=result.name,
            ))
        if response.message:
            messages.append(AIMessage(content=response.message))
        return messages

    @staticmethod
    def _dispatch_next_task(goal: Goal) -> None:
        task = goal.next_pending_task()
        if task is not None:
            task.status = TaskStatus.EXECUTING

    def _learn_from_execution(
        self,
        goal: Goal,
        response: RoundResponse,
        context: Optional[dict[str, Any]],
    ) -> None:
        learn_context = f"Goal: {goal.objective}"
        failed = [r for r in response.tool_results if r.failed]

        try:
            if response.finished and not failed:
                actions = ", ".join(c.name for c in response.tool_calls) or "conversation"
                self._memory.learn_from_success(actions, learn_context, response.message)
            elif failed:
                self._memory.learn_from_failure(
                    ", ".join(r.name for r in failed),
                    learn_context,
                    "; ".join(r.error for r in failed),
                )

            web_context = WebContext.from_context(context)
            hostname = parse_hostname(web_context.url) if web_context and web_context.url else ""
            if hostname:
                for result in response.tool_results:
                    self._memory.add_web_context_memory(
                        hostname, result.name, goal.objective,
                        success=not result.failed, error=result.error,
                    )
        except Exception:
            logger.exception("Failed to record execution in memory")

    def _update_goal_progress(self, goal: Goal, response: RoundResponse) -> None:
        for result in response.tool_results:
            task = goal.find_open_task_for_tool(result.name)
            if task is None:
                continue

            if result.failed:
                task.fail(result.error)
            else:
                task.complete(result.result)

            try:
                self.planner.update_task_status(task.id, task.status, task.result, task.error)
            except Exception:
                logger.exception("Planner failed to record task status")

        goal.refresh_progress()

        if (
            goal.status == GoalStatus.EXECUTING
            and goal.progress < 100
            and not goal.has_open_tasks()
            and any(t.status == TaskStatus.FAILED for t in goal.sub_tasks)
        ):
            goal.status = GoalStatus.FAILED
            logger.info(f"Goal {goal.id[:8]} failed at {goal.progress}%")

    @staticmethod
    def _emit(on_progress: Optional[ProgressCallback], update: dict[str, Any]) -> None:
        if on_progress is None:
            return
        try:
            on_progress(update)
        except Exception:
            logger.exception("Progress callback raised")
