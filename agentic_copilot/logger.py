"""
Logging and run records for Agentic Copilot.

Handles process logging setup, JSONL round logging per goal run, and rich
console output.
"""

import json
import logging
import re
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from .config import get_runs_dir
from .utils import truncate_text


def configure_logging(debug: bool = False) -> None:
    """Route the package's loggers through rich."""
    handler = RichHandler(rich_tracebacks=True, show_path=False)
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))

    root = logging.getLogger("agentic_copilot")
    root.handlers = [handler]
    root.setLevel(logging.DEBUG if debug else logging.INFO)
    root.propagate = False


def slugify(text: str, max_length: int = 30) -> str:
    """Convert text to a filesystem-safe slug."""
    slug = re.sub(r'[^\w\s-]', '', text.lower())
    slug = re.sub(r'[-\s]+', '_', slug).strip('_')
    return slug[:max_length]


class RunLogger:
    """Records the rounds of one goal run."""

    def __init__(
        self,
        goal: str,
        runs_dir: Optional[Path] = None,
        enable_console: bool = True,
    ):
        """Initialize the run logger.

        Args:
            goal: The goal objective (used for directory naming)
            runs_dir: Parent directory of run directories
            enable_console: Whether to print to console
        """
        self.goal = goal
        self.console = Console() if enable_console else None

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        self.run_dir = (runs_dir or get_runs_dir()) / f"{timestamp}_{slugify(goal)}"
        self.run_dir.mkdir(parents=True, exist_ok=True)

        self.rounds_file = self.run_dir / "rounds.jsonl"
        self.rounds_file.touch()

        self.round_count = 0
        self.error_count = 0

    def log_round(
        self,
        response: dict[str, Any],
        goal_state: Optional[dict[str, Any]] = None,
        error: Optional[str] = None,
    ) -> None:
        """Append one round to the JSONL file and echo it to the console.

        Args:
            response: The round's response (message, tool calls, tool results)
            goal_state: Goal snapshot after the round was applied
            error: Optional error message
        """
        self.round_count += 1
        if error:
            self.error_count += 1

        record = {
            "round": self.round_count,
            "timestamp": datetime.now().isoformat(),
            "response": response,
            "goal": goal_state,
            "error": error,
        }
        with open(self.rounds_file, "a", encoding="utf-8") as f:
            f.write(json.dumps(record, default=str) + "\n")

        if not self.console:
            return

        tools = ", ".join(c["name"] for c in response.get("tool_calls", [])) or "no tools"
        progress = f" [dim]({goal_state['progress']}%)[/dim]" if goal_state else ""
        self.console.print(f"[bold]Round {self.round_count}:[/bold] [cyan]{tools}[/cyan]{progress}")
        for result in response.get("tool_results", []):
            if result.get("error"):
                self.console.print(f"  [red]✗[/red] {result['name']}: {result['error']}")
            else:
                self.console.print(f"  [green]✓[/green] {result['name']}")
        message = response.get("message")
        if message:
            self.console.print(f"  [dim]{truncate_text(message, 200)}[/dim]")

    def print_header(self) -> None:
        """Print the run header to console."""
        if not self.console:
            return

        self.console.print()
        self.console.print(Panel(
            f"[bold cyan]Goal:[/bold cyan] {self.goal}",
            title="Agentic Copilot",
            border_style="cyan",
        ))
        self.console.print()

    def print_error(self, error: str) -> None:
        """Print an error message to console."""
        if not self.console:
            return
        self.console.print(f"  [bold red]Error:[/bold red] {error}")

    def print_summary(self, goal_state: Optional[dict[str, Any]] = None) -> None:
        """Print the run summary to console."""
        if not self.console:
            return

        table = Table(title="Run Summary", show_header=False)
        table.add_column("Property", style="dim")
        table.add_column("Value")

        table.add_row("Rounds Executed", str(self.round_count))
        table.add_row("Rounds With Errors", str(self.error_count))
        if goal_state:
            table.add_row("Goal Status", goal_state["status"])
            table.add_row("Progress", f"{goal_state['progress']}%")
        table.add_row("Rounds Log", str(self.rounds_file))

        self.console.print()
        self.console.print(table)
