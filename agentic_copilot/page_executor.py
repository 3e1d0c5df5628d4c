"""
Page executor client for Agentic Copilot.

Workflow and action jobs run inside the page, behind a bridge the browser
extension exposes. This module speaks to that bridge over HTTP.
"""

import logging
from typing import Any, Optional, Protocol

import httpx
from pydantic import ValidationError

from .schemas import PageExecutionResponse, PageMessage

logger = logging.getLogger("agentic_copilot.page_executor")


class PageExecutionError(Exception):
    """The page-resident executor could not run a job."""


class PageExecutor(Protocol):
    """Anything that can deliver a message to the page and return its reply."""

    async def execute(self, message: PageMessage) -> PageExecutionResponse:
        ...


def workflow_message(workflow: Any) -> PageMessage:
    return PageMessage(type="EXECUTE_WORKFLOW", workflow=workflow)


def action_message(payload: Any) -> PageMessage:
    return PageMessage(type="EXECUTE_ACTION", payload=payload)


class HttpPageExecutor:
    """Posts page messages to the extension's bridge endpoint."""

    def __init__(
        self,
        endpoint: str,
        timeout_s: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize the executor.

        Args:
            endpoint: Bridge URL accepting POSTed page messages
            timeout_s: HTTP timeout in seconds
            client: Optional pre-built client (tests inject a mock transport)
        """
        self.endpoint = endpoint
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout_s)

    async def execute(self, message: PageMessage) -> PageExecutionResponse:
        """Send a message and validate the reply.

        Raises:
            PageExecutionError: On transport errors, HTTP errors or malformed replies
        """
        try:
            response = await self._client.post(
                self.endpoint,
                json=message.model_dump(exclude_none=True),
            )
            response.raise_for_status()
            return PageExecutionResponse.model_validate(response.json())
        except httpx.HTTPStatusError as e:
            raise PageExecutionError(f"Page bridge returned {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise PageExecutionError(f"Page bridge unreachable: {e}") from e
        except (ValidationError, ValueError) as e:
            raise PageExecutionError(f"Malformed page bridge reply: {e}") from e

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
