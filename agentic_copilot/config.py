"""
Configuration management for Agentic Copilot.

Provides configuration dataclass and environment variable loading.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Load environment variables from .env file if present
load_dotenv()


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.lower() in ("1", "true", "yes")


def get_base_dir() -> Path:
    """Get the base directory for agentic copilot data."""
    override = os.getenv("AGENTIC_COPILOT_HOME")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".agentic_copilot"


def get_runs_dir() -> Path:
    """Get the directory for goal run logs."""
    return get_base_dir() / "runs"


@dataclass
class CopilotConfig:
    """Configuration for the agentic core."""

    # Autonomous execution
    autonomous_mode: bool = False
    max_autonomous_actions: int = field(
        default_factory=lambda: _env_int("AGENTIC_COPILOT_MAX_AUTONOMOUS_ACTIONS", 10)
    )

    # Memory settings
    max_memories: int = 1000
    max_domain_memories: int = 100
    memory_limit: int = 5

    # Task queue settings
    max_concurrent: int = field(
        default_factory=lambda: _env_int("AGENTIC_COPILOT_MAX_CONCURRENT", 3)
    )
    default_max_retries: int = 3

    # Timeouts (ms)
    task_timeout: int = 30000
    workflow_timeout: int = 30000
    action_timeout: int = 10000
    refill_delay: int = 100

    # LLM settings
    model_endpoint: str = field(
        default_factory=lambda: os.getenv(
            "AGENTIC_COPILOT_ENDPOINT",
            "http://127.0.0.1:1234/v1"
        )
    )
    model: str = field(
        default_factory=lambda: os.getenv(
            "AGENTIC_COPILOT_MODEL",
            "qwen2.5:7b"
        )
    )
    api_key: Optional[str] = field(
        default_factory=lambda: os.getenv("AGENTIC_COPILOT_API_KEY")
    )
    max_tokens: int = 1000
    # Model calls allowed within one tool-calling round
    max_tool_steps: int = 10

    # Page bridge (executes workflow/action jobs inside the page)
    page_executor_endpoint: Optional[str] = field(
        default_factory=lambda: os.getenv("AGENTIC_COPILOT_PAGE_ENDPOINT")
    )

    # Storage
    data_dir: Path = field(default_factory=get_base_dir)
    persist_memory: bool = True

    # Write a JSONL log for every goal run
    log_runs: bool = field(
        default_factory=lambda: _env_flag("AGENTIC_COPILOT_LOG_RUNS")
    )
    console_output: bool = False

    # Debug mode - enables verbose logging (off by default)
    debug: bool = field(
        default_factory=lambda: _env_flag("AGENTIC_COPILOT_DEBUG")
    )

    @property
    def runs_dir(self) -> Path:
        """Directory holding one sub-directory per goal run."""
        return self.data_dir / "runs"

    @property
    def memory_path(self) -> Path:
        """JSON document backing the persistent memory tier."""
        return self.data_dir / "memory.json"

    def ensure_directories(self) -> None:
        """Ensure all required directories exist."""
        self.data_dir.mkdir(parents=True, exist_ok=True)
        if self.log_runs:
            self.runs_dir.mkdir(parents=True, exist_ok=True)
