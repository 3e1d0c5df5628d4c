"""
CLI for Agentic Copilot.

Provides dry-run access to the planner using argparse.
"""

import argparse
import asyncio
import sys
from typing import Any, Optional

from rich.console import Console
from rich.table import Table

from . import __version__
from .config import CopilotConfig
from .logger import configure_logging
from .planner import Planner
from .schemas import BROWSER_TOOL_SCHEMAS
from .types import Goal


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="agentic-copilot",
        description="Agentic Copilot - plan and run web objectives with an LLM agent.",
        epilog="""
Examples:
  # Show how an objective would be decomposed
  agentic-copilot plan "Search for TypeScript tutorials and summarize the first result"

  # Plan against the current page
  agentic-copilot plan "Find software engineer jobs in New York" --url https://www.linkedin.com/jobs

  # Site-specific suggestions
  agentic-copilot suggest "find a job in new york" --url https://careers.jpmorgan.com
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"Agentic Copilot {__version__}",
    )

    parser.add_argument(
        "-d", "--debug",
        action="store_true",
        default=False,
        help="Enable debug logging (also AGENTIC_COPILOT_DEBUG=1)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    plan_parser = subparsers.add_parser("plan", help="Plan an objective without running it")
    plan_parser.add_argument("objective", type=str, help="The objective in natural language")
    _add_page_arguments(plan_parser, url_required=False)
    plan_parser.add_argument(
        "--tools",
        nargs="+",
        default=list(BROWSER_TOOL_SCHEMAS),
        help="Available tool names (default: all browser tools)",
    )

    suggest_parser = subparsers.add_parser("suggest", help="Show site-specific task suggestions")
    suggest_parser.add_argument("objective", type=str, help="The objective in natural language")
    _add_page_arguments(suggest_parser, url_required=True)

    return parser


def _add_page_arguments(parser: argparse.ArgumentParser, url_required: bool) -> None:
    parser.add_argument(
        "--url",
        type=str,
        required=url_required,
        default=None,
        help="URL of the current page",
    )
    parser.add_argument(
        "--title",
        type=str,
        default="",
        help="Title of the current page",
    )


def _page_context(args: argparse.Namespace) -> Optional[dict[str, Any]]:
    if not args.url:
        return None
    return {"web_context": {"url": args.url, "title": args.title or args.url}}


def render_goal(goal: Goal) -> Table:
    """Render a goal's tasks as a table."""
    table = Table(title=f"{goal.objective} [{goal.priority.value}]")
    table.add_column("#", style="dim", justify="right")
    table.add_column("Task")
    table.add_column("Intent", style="cyan")
    table.add_column("Tools", style="green")
    table.add_column("Confidence", justify="right")
    table.add_column("Retries", justify="right")

    for index, task in enumerate(goal.sub_tasks, start=1):
        table.add_row(
            str(index),
            task.description,
            str(task.metadata.get("intent", "")),
            ", ".join(task.tool_calls) or "-",
            f"{task.metadata.get('confidence', 0):.2f}",
            str(task.max_retries),
        )
    return table


def plan_command(args: argparse.Namespace) -> int:
    """Execute the plan command."""
    console = Console()
    planner = Planner(args.tools)
    context = _page_context(args)

    if context:
        learned = planner.adapt_planning_to_web_context(context["web_context"])
        if learned:
            console.print(f"[dim]Learned site vocabularies: {', '.join(learned)}[/dim]")

    goal = asyncio.run(planner.create_goal(args.objective, context))
    console.print(render_goal(goal))
    return 0


def suggest_command(args: argparse.Namespace) -> int:
    """Execute the suggest command."""
    console = Console()
    planner = Planner(list(BROWSER_TOOL_SCHEMAS))
    suggestions = planner.get_adaptive_task_suggestions(args.objective, _page_context(args))

    if not suggestions:
        console.print("[yellow]No suggestions for this page[/yellow]")
        return 0

    for suggestion in suggestions:
        console.print(
            f"[bold]{suggestion.confidence:.2f}[/bold] {suggestion.description} "
            f"[dim]({', '.join(suggestion.tools)})[/dim]"
        )
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point.

    Args:
        argv: Command line arguments (uses sys.argv if None)

    Returns:
        Exit code
    """
    parser = create_parser()
    args = parser.parse_args(argv)
    configure_logging(debug=args.debug or CopilotConfig().debug)

    if args.command is None:
        parser.print_help()
        return 0

    if args.command == "plan":
        return plan_command(args)

    if args.command == "suggest":
        return suggest_command(args)

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
