"""
Tests for the agent orchestrator.
"""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage, ToolMessage

from agentic_copilot.config import CopilotConfig
from agentic_copilot.llm_round import ToolCallingRound
from agentic_copilot.memory import MemoryStore
from agentic_copilot.orchestrator import ERROR_NEXT_ACTIONS, AgenticAgent
from agentic_copilot.schemas import BROWSER_TOOL_SCHEMAS, RoundResponse
from agentic_copilot.tool_registry import ToolRegistry
from agentic_copilot.types import Goal, GoalStatus, Task, TaskStatus


SEARCH_OBJECTIVE = "Search for TypeScript tutorials on Google and summarize the first result"
VAGUE_OBJECTIVE = "fix the login bug"


@pytest.fixture
def config(tmp_path):
    return CopilotConfig(data_dir=tmp_path, log_runs=False, page_executor_endpoint=None)


def make_runner(*responses) -> MagicMock:
    runner = MagicMock()
    runner.run = AsyncMock(side_effect=list(responses))
    return runner


def make_agent(runner, config, **kwargs) -> AgenticAgent:
    return AgenticAgent(runner, tools=list(BROWSER_TOOL_SCHEMAS), config=config, **kwargs)


def ask(objective):
    return [HumanMessage(content=objective)]


class TestGoalExecution:
    """Tests for a single non-autonomous run."""

    def test_successful_round_completes_goal(self, config):
        runner = make_runner({
            "message": "Searched",
            "tool_calls": [{"name": "fillInput", "args": {"selector": "q", "value": "ts"}}],
            "tool_results": [{"name": "fillInput", "result": "typed"}],
            "finished": True,
        })
        agent = make_agent(runner, config)

        response = asyncio.run(agent.run_agentic(ask(SEARCH_OBJECTIVE)))

        goal = response.current_goal
        assert goal.status == GoalStatus.COMPLETED
        assert goal.progress == 100
        assert goal.completed_at is not None
        assert goal.sub_tasks[0].result == "typed"
        assert response.next_action is None
        assert response.rounds == 1
        assert runner.run.await_count == 1
        assert agent.memory.stats()["by_type"]["pattern"] == 1

    def test_first_task_dispatched(self, config):
        runner = make_runner({"message": "Thinking", "finished": False})
        agent = make_agent(runner, config)

        response = asyncio.run(agent.run_agentic(ask(SEARCH_OBJECTIVE)))

        assert response.current_goal.sub_tasks[0].status == TaskStatus.EXECUTING
        assert response.next_action == (
            f"Analyze progress and determine next steps for: {SEARCH_OBJECTIVE}"
        )

    def test_goal_reused_across_runs(self, config):
        runner = make_runner({"message": "one"}, {"message": "two"})
        agent = make_agent(runner, config)

        asyncio.run(agent.run_agentic(ask(SEARCH_OBJECTIVE)))
        first_goal = agent.get_current_goal()
        asyncio.run(agent.run_agentic(ask("something else entirely")))

        assert agent.get_current_goal() is first_goal

    def test_relevant_memories_injected(self, config):
        memory = MemoryStore()
        memory.add_memory("fact", "User works with TypeScript projects")
        runner = make_runner({"message": "ok", "finished": True})
        agent = make_agent(runner, config, memory=memory)
        history = ask(SEARCH_OBJECTIVE)

        asyncio.run(agent.run_agentic(history))

        assert isinstance(history[0], SystemMessage)
        assert history[0].content == "Relevant past experiences:\nUser works with TypeScript projects"

    def test_no_memories_no_system_message(self, config):
        runner = make_runner({"message": "ok", "finished": True})
        agent = make_agent(runner, config)
        history = ask(SEARCH_OBJECTIVE)

        asyncio.run(agent.run_agentic(history))

        assert len(history) == 1

    def test_round_response_object_accepted(self, config):
        runner = make_runner(RoundResponse(message="done", finished=True))
        agent = make_agent(runner, config)

        response = asyncio.run(agent.run_agentic(ask(SEARCH_OBJECTIVE)))

        assert response.message == "done"

    def test_progress_callback_receives_goal(self, config):
        runner = make_runner({"message": "ok", "finished": True})
        agent = make_agent(runner, config)
        updates = []

        asyncio.run(agent.run_agentic(ask(SEARCH_OBJECTIVE), on_progress=updates.append))

        assert updates[-1]["message"] == "ok"
        assert updates[-1]["current_goal"] is agent.get_current_goal()
        assert updates[-1]["autonomous_mode"] is False

    def test_without_user_message_runs_plain_round(self, config):
        runner = make_runner({"message": "hello"})
        agent = make_agent(runner, config)

        response = asyncio.run(agent.run_agentic([SystemMessage(content="system only")]))

        assert response.current_goal is None
        assert response.message == "hello"


class TestTaskMatching:
    """Tests for applying tool results to tasks."""

    def make_goal(self):
        goal = Goal(objective="two clicks", status=GoalStatus.EXECUTING)
        goal.sub_tasks = [
            Task(goal_id=goal.id, description="first click", tool_calls=["clickElement"]),
            Task(goal_id=goal.id, description="second click", tool_calls=["clickElement"]),
        ]
        return goal

    def test_first_open_task_receives_result(self, config):
        runner = make_runner(
            {"message": "clicked", "tool_calls": [{"name": "clickElement"}],
             "tool_results": [{"name": "clickElement", "result": "one"}]},
            {"message": "clicked", "tool_calls": [{"name": "clickElement"}],
             "tool_results": [{"name": "clickElement", "result": "two"}]},
        )
        agent = make_agent(runner, config)
        goal = self.make_goal()
        agent.set_current_goal(goal)

        asyncio.run(agent.run_agentic(ask("go")))
        assert [t.status for t in goal.sub_tasks] == [TaskStatus.COMPLETED, TaskStatus.PENDING]
        assert goal.progress == 50

        asyncio.run(agent.run_agentic(ask("go")))
        assert [t.result for t in goal.sub_tasks] == ["one", "two"]
        assert goal.progress == 100
        assert goal.status == GoalStatus.COMPLETED

    def test_unmatched_tool_result_is_ignored(self, config):
        runner = make_runner({
            "message": "navigated",
            "tool_results": [{"name": "navigateToUrl", "result": "ok"}],
        })
        agent = make_agent(runner, config)
        goal = self.make_goal()
        agent.set_current_goal(goal)

        asyncio.run(agent.run_agentic(ask("go")))

        assert goal.progress == 0
        assert all(t.result is None for t in goal.sub_tasks)

    def test_tool_error_fails_task_and_records_memory(self, config):
        runner = make_runner({
            "message": "could not click",
            "tool_calls": [{"name": "clickElement"}],
            "tool_results": [{"name": "clickElement", "error": "element not found"}],
            "finished": True,
        })
        agent = make_agent(runner, config)
        goal = self.make_goal()
        agent.set_current_goal(goal)

        asyncio.run(agent.run_agentic(ask("go")))

        assert goal.sub_tasks[0].status == TaskStatus.FAILED
        assert goal.sub_tasks[0].error == "element not found"
        assert goal.status == GoalStatus.EXECUTING
        hits = agent.memory.get_relevant_memories("element not found")
        assert hits[0].metadata["type"] == "failure_pattern"
        assert hits[0].content == (
            "Action: clickElement in context: Goal: two clicks failed with: element not found"
        )

    def test_goal_fails_when_nothing_left_to_try(self, config):
        runner = make_runner({
            "message": "could not read page",
            "tool_results": [{"name": "getPageContent", "error": "timeout"}],
            "finished": True,
        })
        agent = make_agent(runner, config)

        result = asyncio.run(agent.run(ask(VAGUE_OBJECTIVE)))

        goal = agent.get_current_goal()
        assert goal.status == GoalStatus.FAILED
        assert goal.completed_at is None
        assert result.success is False
        assert result.message == "could not read page"

    def test_domain_memory_recorded(self, config):
        runner = make_runner({
            "message": "read it",
            "tool_results": [{"name": "getPageContent", "result": "text"}],
            "finished": True,
        })
        agent = make_agent(runner, config)
        context = {"web_context": {"url": "https://www.example.com/page", "title": "Example"}}

        asyncio.run(agent.run_agentic(ask(VAGUE_OBJECTIVE), context=context))

        domain = agent.memory.get_web_context_memory("example.com")
        assert [a.action for a in domain.successful_actions] == ["getPageContent"]


class TestAutonomousLoop:
    """Tests for autonomous continuation."""

    def test_loop_bounded_by_action_budget(self, config):
        runner = MagicMock()
        runner.run = AsyncMock(return_value={"message": "continue", "finished": False})
        agent = make_agent(runner, config)
        agent.set_autonomous_mode(True, max_actions=3)
        history = ask(VAGUE_OBJECTIVE)

        response = asyncio.run(agent.run_agentic(history))

        assert runner.run.await_count == 3
        assert agent.autonomous_action_count == 3
        assert response.rounds == 3
        assert len(history) == 7
        assert isinstance(history[1], AIMessage)
        assert history[2].content == f"Analyze progress and determine next steps for: {VAGUE_OBJECTIVE}"

    def test_continues_with_next_pending_task(self, config):
        runner = make_runner(
            {"message": "step", "tool_calls": [{"name": "clickElement"}],
             "tool_results": [{"name": "clickElement", "result": "ok"}]},
            {"message": "all good", "tool_calls": [{"name": "getPageContent"}],
             "tool_results": [{"name": "getPageContent", "result": "text"}], "finished": True},
        )
        agent = make_agent(runner, config)
        goal = Goal(objective="two steps", status=GoalStatus.EXECUTING)
        goal.sub_tasks = [
            Task(goal_id=goal.id, description="click it", tool_calls=["clickElement"]),
            Task(goal_id=goal.id, description="read it", tool_calls=["getPageContent"]),
        ]
        agent.set_current_goal(goal)
        history = ask("go")

        asyncio.run(agent.run_agentic(history, autonomous_mode=True))

        assert runner.run.await_count == 2
        assert history[-1].content == "Continue with: read it"
        assert goal.sub_tasks[1].result == "text"
        assert goal.status == GoalStatus.COMPLETED

    def two_task_goal(self, first_tool, second_tool):
        goal = Goal(objective="two steps", status=GoalStatus.EXECUTING)
        goal.sub_tasks = [
            Task(goal_id=goal.id, description="do it", tool_calls=[first_tool]),
            Task(goal_id=goal.id, description="read it", tool_calls=[second_tool]),
        ]
        return goal

    def recording_runner(self, *responses):
        seen = []
        scripted = iter(responses)

        def run(history, *args):
            seen.append(list(history))
            return next(scripted)

        runner = MagicMock()
        runner.run = AsyncMock(side_effect=run)
        return runner, seen

    def test_tool_outputs_reach_next_round(self, config):
        runner, seen = self.recording_runner(
            {"message": "Clicked it", "tool_calls": [{"name": "clickElement", "id": "c1"}],
             "tool_results": [{"name": "clickElement", "result": "order #42 confirmed"}]},
            {"message": "all good", "tool_calls": [{"name": "getPageContent", "id": "c2"}],
             "tool_results": [{"name": "getPageContent", "result": "text"}], "finished": True},
        )
        agent = make_agent(runner, config)
        agent.set_current_goal(self.two_task_goal("clickElement", "getPageContent"))

        asyncio.run(agent.run_agentic(ask("go"), autonomous_mode=True))

        assistant, tool_output, reply, next_turn = seen[1][1:]
        assert assistant.tool_calls[0]["name"] == "clickElement"
        assert assistant.tool_calls[0]["id"] == "c1"
        assert isinstance(tool_output, ToolMessage)
        assert tool_output.tool_call_id == "c1"
        assert tool_output.content == "order #42 confirmed"
        assert reply.content == "Clicked it"
        assert next_turn.content == "Continue with: read it"

    def test_unpaired_results_are_summarized(self, config):
        runner, seen = self.recording_runner(
            {"message": "Looked around",
             "tool_results": [{"name": "getPageContent", "result": "page text"}]},
            {"message": "done", "tool_results": [{"name": "clickElement", "result": "ok"}], "finished": True},
        )
        agent = make_agent(runner, config)
        agent.set_current_goal(self.two_task_goal("getPageContent", "clickElement"))

        asyncio.run(agent.run_agentic(ask("go"), autonomous_mode=True))

        assert len(seen[1]) == 3
        assert seen[1][1].content == "Looked around\n\nTool results:\ngetPageContent: page text"

    def test_stops_when_goal_completes(self, config):
        runner = MagicMock()
        runner.run = AsyncMock(return_value={
            "message": "next please",
            "tool_calls": [{"name": "fillInput"}],
            "tool_results": [{"name": "fillInput", "result": "ok"}],
        })
        agent = make_agent(runner, config)

        response = asyncio.run(agent.run_agentic(ask(SEARCH_OBJECTIVE), autonomous_mode=True))

        assert response.current_goal.status == GoalStatus.COMPLETED
        assert runner.run.await_count == 1

    def test_no_continuation_without_work(self, config):
        runner = MagicMock()
        runner.run = AsyncMock(return_value={"message": "nothing more", "finished": True})
        agent = make_agent(runner, config)
        goal = Goal(objective="empty", status=GoalStatus.EXECUTING)
        agent.set_current_goal(goal)

        asyncio.run(agent.run_agentic(ask("go"), autonomous_mode=True))

        assert runner.run.await_count == 1
        assert goal.status == GoalStatus.EXECUTING
        assert goal.progress == 0

    def test_stop_ends_loop_before_next_round(self, config):
        agent = None

        def stop_after_round(*args, **kwargs):
            agent.stop()
            return {"message": "continue", "finished": False}

        runner = MagicMock()
        runner.run = AsyncMock(side_effect=stop_after_round)
        agent = make_agent(runner, config)
        agent.set_autonomous_mode(True)

        asyncio.run(agent.run_agentic(ask(VAGUE_OBJECTIVE)))

        assert runner.run.await_count == 1

    def test_goal_helpers(self, config):
        agent = make_agent(make_runner(), config)
        goal = Goal(objective="x")

        agent.set_current_goal(goal)
        assert agent.get_current_goal() is goal

        agent.clear_current_goal()
        assert agent.get_current_goal() is None
        assert agent.get_next_action() is None

    def test_continuation_heuristic(self, config):
        agent = make_agent(make_runner(), config)
        goal = Goal(objective="x", status=GoalStatus.EXECUTING)
        goal.sub_tasks = [Task(goal_id=goal.id, description="done", status=TaskStatus.COMPLETED)]
        agent.set_current_goal(goal)
        quiet = RoundResponse(message="All good")
        hinted = RoundResponse(message="Next I will open the first result")

        assert agent.should_continue_autonomously(hinted) is False

        agent.set_autonomous_mode(True, max_actions=2)
        assert agent.should_continue_autonomously(quiet) is False
        assert agent.should_continue_autonomously(hinted) is True

        agent.autonomous_action_count = 2
        assert agent.should_continue_autonomously(hinted) is False


class TestErrorHandling:
    """Tests for error propagation policy."""

    def test_round_error_propagates_from_run_agentic(self, config):
        runner = make_runner(RuntimeError("LLM down"))
        agent = make_agent(runner, config)

        with pytest.raises(RuntimeError):
            asyncio.run(agent.run_agentic(ask(SEARCH_OBJECTIVE)))

    def test_run_returns_error_shaped_result(self, config):
        runner = make_runner(RuntimeError("LLM down"))
        agent = make_agent(runner, config)

        result = asyncio.run(agent.run(ask(SEARCH_OBJECTIVE)))

        assert result.success is False
        assert "LLM down" in result.message
        assert result.next_actions == ERROR_NEXT_ACTIONS

    def test_planner_error_is_contained(self, config):
        planner = MagicMock()
        planner.create_goal = AsyncMock(side_effect=ValueError("bad plan"))
        runner = make_runner({"message": "answered"})
        agent = make_agent(runner, config, planner=planner)

        response = asyncio.run(agent.run_agentic(ask(SEARCH_OBJECTIVE)))

        assert response.current_goal is None
        assert response.message == "answered"

    def test_memory_error_is_contained(self, config):
        memory = MagicMock()
        memory.get_relevant_memories.side_effect = RuntimeError("memory offline")
        memory.learn_from_success.side_effect = RuntimeError("memory offline")
        runner = make_runner({"message": "ok", "finished": True})
        agent = make_agent(runner, config, memory=memory)

        response = asyncio.run(agent.run_agentic(ask(SEARCH_OBJECTIVE)))

        assert response.current_goal.status == GoalStatus.EXECUTING
        assert response.message == "ok"


class TestRunLogging:
    """Tests for per-run round logs."""

    def test_rounds_written_to_jsonl(self, tmp_path):
        config = CopilotConfig(data_dir=tmp_path, log_runs=True, console_output=False)
        runner = make_runner({"message": "ok", "finished": True})
        agent = make_agent(runner, config)

        asyncio.run(agent.run_agentic(ask(SEARCH_OBJECTIVE)))

        [log_file] = list((tmp_path / "runs").glob("*/rounds.jsonl"))
        records = [json.loads(line) for line in log_file.read_text().splitlines()]
        assert len(records) == 1
        assert records[0]["response"]["message"] == "ok"
        assert records[0]["goal"]["objective"] == SEARCH_OBJECTIVE


class TestWithToolCallingRound:
    """Tests running the agent on the LangChain round runner."""

    def test_successful_tool_round_is_learned(self, config):
        bound = MagicMock()
        bound.ainvoke = AsyncMock(side_effect=[
            AIMessage(content="", tool_calls=[
                {"name": "clickElement", "args": {"selector": "#submit"}, "id": "call_1"},
            ]),
            AIMessage(content="Submitted the form"),
        ])
        llm = MagicMock()
        llm.bind_tools.return_value = bound
        registry = ToolRegistry.for_browser({"clickElement": lambda args: "clicked"})
        agent = AgenticAgent(ToolCallingRound(llm, registry), tools=registry, config=config)

        response = asyncio.run(agent.run_agentic(ask("click the submit button"), autonomous_mode=True))

        assert response.finished is True
        assert response.current_goal.status == GoalStatus.COMPLETED
        assert response.current_goal.sub_tasks[0].result == "clicked"
        hits = agent.memory.get_relevant_memories("clickElement")
        assert hits[0].metadata["type"] == "success_pattern"
        assert hits[0].content == (
            "Action: clickElement in context: Goal: click the submit button "
            "resulted in: Submitted the form"
        )
