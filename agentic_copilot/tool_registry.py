"""
Tool registry for Agentic Copilot.

Name-indexed table of the browser actions the LLM may call. Handlers are
supplied by the host (they perform the real page actions); the registry
validates arguments, runs the handler and normalizes the outcome.
"""

import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, Union

from pydantic import BaseModel, ValidationError

from .schemas import BROWSER_TOOL_SCHEMAS

logger = logging.getLogger("agentic_copilot.tools")

ToolHandler = Callable[[dict[str, Any]], Union[Any, Awaitable[Any]]]


@dataclass
class ToolResult:
    """Result of a tool execution."""

    success: bool
    message: str
    data: Optional[Any] = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {
            "success": self.success,
            "message": self.message,
        }
        if self.data is not None:
            result["data"] = self.data
        return result


@dataclass
class ToolSpec:
    """A named, schema-described capability."""

    name: str
    handler: ToolHandler
    description: str = ""
    args_model: Optional[type[BaseModel]] = None
    parameters: dict[str, Any] = field(default_factory=dict)

    def to_openai_schema(self) -> dict[str, Any]:
        """Function-calling schema understood by OpenAI-compatible models."""
        if self.args_model is not None:
            parameters = self.args_model.model_json_schema()
        else:
            parameters = self.parameters or {"type": "object", "properties": {}}
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": parameters,
            },
        }


class ToolRegistry:
    """Registry of tool handlers.

    Usage:
        registry = ToolRegistry.for_browser({"clickElement": click_handler})
        result = await registry.execute("clickElement", {"selector": "#go"})
    """

    def __init__(self):
        self._tools: dict[str, ToolSpec] = {}

    @classmethod
    def for_browser(cls, handlers: dict[str, ToolHandler]) -> "ToolRegistry":
        """Register the built-in browser tools that have a handler.

        Args:
            handlers: Tool name -> handler; unknown names are registered schemaless
        """
        registry = cls()
        for name, handler in handlers.items():
            schema = BROWSER_TOOL_SCHEMAS.get(name)
            if schema is None:
                registry.register(name, handler)
            else:
                args_model, description = schema
                registry.register(name, handler, description=description, args_model=args_model)
        return registry

    def register(
        self,
        name: str,
        handler: ToolHandler,
        description: str = "",
        args_model: Optional[type[BaseModel]] = None,
        parameters: Optional[dict[str, Any]] = None,
    ) -> None:
        """Register (or replace) a tool.

        Args:
            name: Tool name the LLM will call
            handler: Sync or async callable taking the argument dict
            description: What the tool does
            args_model: Pydantic model validating the arguments
            parameters: Raw JSON schema when no model is given
        """
        self._tools[name] = ToolSpec(
            name=name,
            handler=handler,
            description=description,
            args_model=args_model,
            parameters=parameters or {},
        )

    def unregister(self, name: str) -> None:
        self._tools.pop(name, None)

    def get(self, name: str) -> Optional[ToolSpec]:
        return self._tools.get(name)

    def names(self) -> list[str]:
        return list(self._tools)

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def schemas(self) -> list[dict[str, Any]]:
        """OpenAI-style schemas of every registered tool."""
        return [spec.to_openai_schema() for spec in self._tools.values()]

    async def execute(self, name: str, args: Optional[dict[str, Any]] = None) -> ToolResult:
        """Execute a tool by name.

        Never raises for tool failures: unknown tools, invalid arguments,
        handler exceptions and error-shaped dicts ({"error": ...} or
        {"success": False}) all become an unsuccessful ToolResult.
        """
        spec = self._tools.get(name)
        if spec is None:
            return ToolResult(success=False, message=f"Unknown tool: {name}")

        args = dict(args or {})
        if spec.args_model is not None:
            try:
                args = spec.args_model(**args).model_dump()
            except ValidationError as e:
                return ToolResult(success=False, message=f"Invalid arguments for {name}: {e}")

        try:
            outcome = spec.handler(args)
            if inspect.isawaitable(outcome):
                outcome = await outcome
        except Exception as e:
            logger.warning(f"Tool {name} failed: {e}")
            return ToolResult(success=False, message=f"Error executing {name}: {e}")

        return self._normalize(name, outcome)

    @staticmethod
    def _normalize(name: str, outcome: Any) -> ToolResult:
        if isinstance(outcome, ToolResult):
            return outcome
        if isinstance(outcome, dict) and "error" in outcome and outcome.get("error"):
            return ToolResult(success=False, message=str(outcome["error"]), data=outcome)
        if isinstance(outcome, dict) and outcome.get("success") is False:
            return ToolResult(
                success=False,
                message=str(outcome.get("message") or f"{name} failed"),
                data=outcome,
            )
        return ToolResult(success=True, message=f"{name} completed", data=outcome)
