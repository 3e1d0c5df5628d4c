"""
Typed schemas for Agentic Copilot.

Provides Pydantic models for browser tool arguments and for the payloads
exchanged with external collaborators (LLM rounds, the page bridge).
"""

from typing import Any, Literal, Optional

from pydantic import BaseModel, Field, field_validator


# =============================================================================
# Browser Tool Schemas
# =============================================================================

class NavigateToUrlRequest(BaseModel):
    """Request to navigate the active tab."""

    url: str = Field(description="URL to navigate to")

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("URL cannot be empty")
        if not v.startswith(("http://", "https://")):
            v = "https://" + v
        return v


class ClickElementRequest(BaseModel):
    """Request to click an element."""

    selector: str = Field(description="CSS selector or visible text of the element")


class FillInputRequest(BaseModel):
    """Request to type into an input."""

    selector: str = Field(description="CSS selector of the input")
    value: str = Field(description="Text to enter")
    submit: bool = Field(default=False, description="Press Enter after typing")


class GetPageContentRequest(BaseModel):
    """Request to extract the visible page content."""

    max_chars: int = Field(default=8000, ge=100, le=50000, description="Maximum characters to return")


class GetCurrentTabRequest(BaseModel):
    """Request for the active tab's URL and title."""


class WaitForElementRequest(BaseModel):
    """Request to wait for an element to appear."""

    selector: str = Field(description="CSS selector to wait for")
    timeout_ms: int = Field(default=10000, ge=100, le=60000, description="Timeout in milliseconds")


class ScrollToElementRequest(BaseModel):
    """Request to scroll an element into view."""

    selector: str = Field(description="CSS selector of the element")


class SearchGoogleRequest(BaseModel):
    """Request to run a Google search."""

    query: str = Field(description="Search query")

    @field_validator("query")
    @classmethod
    def validate_query(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Query cannot be empty")
        return v.strip()


BROWSER_TOOL_SCHEMAS: dict[str, tuple[type[BaseModel], str]] = {
    "navigateToUrl": (NavigateToUrlRequest, "Navigate the active tab to a URL"),
    "clickElement": (ClickElementRequest, "Click an element on the page"),
    "fillInput": (FillInputRequest, "Type text into an input field"),
    "getPageContent": (GetPageContentRequest, "Read the visible text of the page"),
    "getCurrentTab": (GetCurrentTabRequest, "Get the URL and title of the active tab"),
    "waitForElement": (WaitForElementRequest, "Wait until an element appears"),
    "scrollToElement": (ScrollToElementRequest, "Scroll an element into view"),
    "searchGoogle": (SearchGoogleRequest, "Search Google for a query"),
}


# =============================================================================
# Collaborator Payloads
# =============================================================================

class ToolCallEntry(BaseModel):
    """A tool invocation requested by the LLM."""

    name: str
    args: dict[str, Any] = Field(default_factory=dict)
    id: Optional[str] = None


class ToolResultEntry(BaseModel):
    """Outcome of one tool invocation; `error` is set on failure."""

    name: str
    result: Any = None
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return bool(self.error)


class RoundResponse(BaseModel):
    """Validated output of one tool-calling LLM round."""

    message: str = ""
    tool_calls: list[ToolCallEntry] = Field(default_factory=list)
    tool_results: list[ToolResultEntry] = Field(default_factory=list)
    finished: bool = False
    planner_steps: Optional[list[Any]] = None

    @field_validator("message", mode="before")
    @classmethod
    def coerce_message(cls, v: Any) -> str:
        return "" if v is None else str(v)

    @property
    def has_errors(self) -> bool:
        return any(r.failed for r in self.tool_results)


class PageExecutionResponse(BaseModel):
    """Reply from the page-resident executor."""

    success: bool
    result: Any = None
    error: Optional[str] = None


class PageMessage(BaseModel):
    """Message sent to the page-resident executor."""

    type: Literal["EXECUTE_WORKFLOW", "EXECUTE_ACTION"]
    workflow: Any = None
    payload: Any = None
