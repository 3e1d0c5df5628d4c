"""
Single tool-calling LLM round for Agentic Copilot.

One round = repeated model calls with the registry's tools bound, executing
every tool call the model requests, until the model answers without tool
calls. The orchestrator treats a round as one opaque async call and owns the
conversation history.
"""

import json
import logging
from typing import Any, Callable, Optional, Protocol, Sequence

from langchain_core.messages import AIMessage, BaseMessage, ToolMessage
from langchain_openai import ChatOpenAI

from .config import CopilotConfig
from .schemas import RoundResponse, ToolCallEntry, ToolResultEntry
from .tool_registry import ToolRegistry
from .utils import truncate_text

logger = logging.getLogger("agentic_copilot.llm_round")

ProgressCallback = Callable[[dict[str, Any]], None]


class RoundRunner(Protocol):
    """Anything that can run one tool-calling round."""

    async def run(
        self,
        history: Sequence[BaseMessage],
        llm_options: Optional[dict[str, Any]] = None,
        on_progress: Optional[ProgressCallback] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> RoundResponse | dict[str, Any]:
        ...


def create_chat_model(config: CopilotConfig) -> ChatOpenAI:
    """Create a chat model for an OpenAI-compatible endpoint."""
    return ChatOpenAI(
        base_url=config.model_endpoint,
        api_key=config.api_key or "not-required",
        model=config.model.strip(),
        max_tokens=config.max_tokens,
        temperature=0.1,
        request_timeout=120,
    )


def _content_text(content: Any) -> str:
    """Flatten message content (plain string or list of content blocks)."""
    if isinstance(content, str):
        return content
    parts = []
    for block in content or []:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(str(block.get("text", "")))
    return "".join(parts)


def tool_output_text(entry: ToolResultEntry, max_chars: int = 2000) -> str:
    """Text fed back to the model for one tool result."""
    if entry.failed:
        return f"Error: {entry.error}"
    result = entry.result
    if isinstance(result, str):
        return truncate_text(result, max_chars)
    try:
        text = json.dumps(result, default=str)
    except (TypeError, ValueError):
        text = str(result)
    return truncate_text(text, max_chars)


def summarize_tool_results(results: Sequence[ToolResultEntry]) -> str:
    """One line per tool result."""
    lines = []
    for entry in results:
        if entry.failed:
            lines.append(f"{entry.name} failed: {entry.error}")
        else:
            lines.append(f"{entry.name}: {tool_output_text(entry, 200)}")
    return "\n".join(lines)


class ToolCallingRound:
    """Default round implementation on a LangChain chat model.

    A round keeps calling the model, feeding every tool output back as a
    `ToolMessage`, until the model answers without tool calls or
    `max_steps` model calls have been made.
    """

    def __init__(self, llm: Any, tools: ToolRegistry, max_steps: int = 10):
        """Initialize the round runner.

        Args:
            llm: LangChain chat model supporting `bind_tools` and `ainvoke`
            tools: Registry whose tools are offered to the model
            max_steps: Maximum model calls per round
        """
        self.llm = llm
        self.tools = tools
        self.max_steps = max_steps

    async def run(
        self,
        history: Sequence[BaseMessage],
        llm_options: Optional[dict[str, Any]] = None,
        on_progress: Optional[ProgressCallback] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> RoundResponse:
        """Call the model and execute the tools it asks for until it stops."""
        model = self.llm
        if len(self.tools):
            model = self.llm.bind_tools(self.tools.schemas(), **(llm_options or {}))

        messages = list(history)
        tool_calls: list[ToolCallEntry] = []
        tool_results: list[ToolResultEntry] = []
        message = ""
        finished = False

        for step in range(1, self.max_steps + 1):
            ai: AIMessage = await model.ainvoke(messages)
            message = _content_text(ai.content)

            requested = getattr(ai, "tool_calls", None) or []
            if not requested:
                finished = True
                break

            step_calls = [
                ToolCallEntry(
                    name=call["name"],
                    args=call.get("args") or {},
                    id=call.get("id") or f"call_{step}_{index}",
                )
                for index, call in enumerate(requested)
            ]
            messages.append(AIMessage(
                content=ai.content,
                tool_calls=[{"name": c.name, "args": c.args, "id": c.id} for c in step_calls],
            ))

            for call in step_calls:
                entry = await self._execute(call, on_progress)
                messages.append(ToolMessage(
                    content=tool_output_text(entry),
                    tool_call_id=call.id,
                    name=call.name,
                ))
                tool_calls.append(call)
                tool_results.append(entry)
        else:
            logger.warning(f"Round stopped after {self.max_steps} model calls")

        if not message and tool_results:
            message = summarize_tool_results(tool_results)

        if on_progress:
            on_progress({"message": message})

        return RoundResponse(
            message=message,
            tool_calls=tool_calls,
            tool_results=tool_results,
            finished=finished,
        )

    async def _execute(
        self,
        call: ToolCallEntry,
        on_progress: Optional[ProgressCallback],
    ) -> ToolResultEntry:
        if on_progress:
            on_progress({"message": f"Running {call.name}..."})
        outcome = await self.tools.execute(call.name, call.args)
        logger.debug(f"{call.name} -> {'ok' if outcome.success else outcome.message}")
        if outcome.success:
            return ToolResultEntry(name=call.name, result=outcome.data)
        return ToolResultEntry(name=call.name, error=outcome.message or f"{call.name} failed")
