"""
Tests for the application context lifecycle.
"""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

from agentic_copilot.app import CopilotApp
from agentic_copilot.config import CopilotConfig
from agentic_copilot.llm_round import ToolCallingRound
from agentic_copilot.memory import MEMORY_STORAGE_KEY
from agentic_copilot.storage import InMemoryStorage


def make_config(tmp_path, **overrides) -> CopilotConfig:
    values = {"data_dir": tmp_path, "log_runs": False, "page_executor_endpoint": None}
    values.update(overrides)
    return CopilotConfig(**values)


class TestCopilotApp:
    """Tests for create/destroy."""

    def test_wires_components(self, tmp_path):
        runner = MagicMock()

        async def scenario():
            app = await CopilotApp.create(
                config=make_config(tmp_path, max_concurrent=5, task_timeout=5000, default_max_retries=1),
                round_runner=runner,
                tool_handlers={"clickElement": lambda args: None, "fillInput": lambda args: None},
            )
            await app.destroy()
            return app

        app = asyncio.run(scenario())

        assert app.tools.names() == ["clickElement", "fillInput"]
        assert app.planner.tools == ["clickElement", "fillInput"]
        assert app.agent.round_runner is runner
        assert app.agent.memory is app.memory
        assert app.agent.planner is app.planner
        assert app.queue.max_concurrent == 5
        assert app.queue.default_timeout == 5000
        assert app.queue.default_max_retries == 1

    def test_default_round_runner_uses_llm(self, tmp_path):
        llm = MagicMock()

        async def scenario():
            app = await CopilotApp.create(config=make_config(tmp_path, max_tool_steps=4), llm=llm)
            await app.destroy()
            return app

        app = asyncio.run(scenario())

        assert isinstance(app.agent.round_runner, ToolCallingRound)
        assert app.agent.round_runner.llm is llm
        assert app.agent.round_runner.max_steps == 4

    def test_memory_persists_between_instances(self, tmp_path):
        config = make_config(tmp_path)

        async def first_session():
            app = await CopilotApp.create(config=config, round_runner=MagicMock())
            app.memory.add_memory("fact", "User works with TypeScript projects")
            await app.destroy()

        async def second_session():
            app = await CopilotApp.create(config=config, round_runner=MagicMock())
            hits = app.memory.get_relevant_memories("TypeScript")
            await app.destroy()
            return hits

        asyncio.run(first_session())
        hits = asyncio.run(second_session())

        assert [h.content for h in hits] == ["User works with TypeScript projects"]
        saved = json.loads((tmp_path / "memory.json").read_text())
        assert MEMORY_STORAGE_KEY in saved

    def test_custom_storage_and_executor_closed(self, tmp_path):
        storage = InMemoryStorage()
        executor = MagicMock()
        executor.aclose = AsyncMock()

        async def scenario():
            app = await CopilotApp.create(
                config=make_config(tmp_path),
                round_runner=MagicMock(),
                storage=storage,
                page_executor=executor,
            )
            await app.destroy()
            return app

        app = asyncio.run(scenario())

        assert app.queue.page_executor is executor
        executor.aclose.assert_awaited_once()
        assert storage.keys() == [MEMORY_STORAGE_KEY]
        assert not (tmp_path / "memory.json").exists()
