"""
Application context for Agentic Copilot.

Owns the object graph of one copilot instance (storage, memory, tool
registry, planner, task queue and agent) with an explicit create/destroy
lifecycle.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

from .config import CopilotConfig
from .llm_round import RoundRunner, ToolCallingRound, create_chat_model
from .memory import MemoryStore
from .orchestrator import AgenticAgent
from .page_executor import HttpPageExecutor, PageExecutor
from .planner import Planner
from .storage import InMemoryStorage, JsonFileStorage, Storage
from .task_queue import TaskQueue
from .tool_registry import ToolHandler, ToolRegistry

logger = logging.getLogger("agentic_copilot.app")


@dataclass
class CopilotApp:
    """A fully wired copilot."""
    config: CopilotConfig
    storage: Storage
    memory: MemoryStore
    tools: ToolRegistry
    planner: Planner
    queue: TaskQueue
    agent: AgenticAgent
    page_executor: Optional[PageExecutor] = None

    @classmethod
    async def create(
        cls,
        config: Optional[CopilotConfig] = None,
        llm: Any = None,
        round_runner: Optional[RoundRunner] = None,
        tool_handlers: Optional[dict[str, ToolHandler]] = None,
        storage: Optional[Storage] = None,
        page_executor: Optional[PageExecutor] = None,
    ) -> "CopilotApp":
        """Build the copilot and load persisted memory.

        Must be called from a running event loop.

        Args:
            config: Configuration (defaults from the environment)
            llm: LangChain chat model for the default round runner
            round_runner: Custom round runner (takes precedence over `llm`)
            tool_handlers: Tool name -> handler performing the browser action
            storage: Storage backend (a JSON file under data_dir by default)
            page_executor: Page bridge for workflow/action jobs
        """
        config = config or CopilotConfig()
        config.ensure_directories()

        if storage is None:
            storage = JsonFileStorage(config.memory_path) if config.persist_memory else InMemoryStorage()

        memory = MemoryStore(
            max_memories=config.max_memories,
            max_domain_memories=config.max_domain_memories,
        )
        await memory.load(storage)

        tools = ToolRegistry.for_browser(tool_handlers or {})
        planner = Planner(tools.names())

        if page_executor is None and config.page_executor_endpoint:
            page_executor = HttpPageExecutor(
                config.page_executor_endpoint,
                timeout_s=config.workflow_timeout / 1000,
            )

        queue = TaskQueue(
            max_concurrent=config.max_concurrent,
            page_executor=page_executor,
            workflow_timeout=config.workflow_timeout,
            action_timeout=config.action_timeout,
            refill_delay=config.refill_delay,
            default_timeout=config.task_timeout,
            default_max_retries=config.default_max_retries,
        )

        if round_runner is None:
            round_runner = ToolCallingRound(
                llm or create_chat_model(config),
                tools,
                max_steps=config.max_tool_steps,
            )

        agent = AgenticAgent(
            round_runner,
            tools=tools,
            memory=memory,
            planner=planner,
            config=config,
        )

        logger.info(f"Copilot ready with {len(tools)} tool(s) and {len(memory)} memories")
        return cls(
            config=config,
            storage=storage,
            memory=memory,
            tools=tools,
            planner=planner,
            queue=queue,
            agent=agent,
            page_executor=page_executor,
        )

    async def destroy(self) -> None:
        """Persist memory and release resources."""
        try:
            await self.memory.save(self.storage)
        finally:
            await self.queue.shutdown()
            close = getattr(self.page_executor, "aclose", None)
            if close is not None:
                await close()
