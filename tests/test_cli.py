"""
Tests for the command-line interface.
"""

import asyncio
import logging

import pytest

from agentic_copilot import __version__
from agentic_copilot.cli import create_parser, main, render_goal
from agentic_copilot.planner import Planner


@pytest.fixture(autouse=True)
def package_logger(monkeypatch):
    """Undo the logging setup every `main` call performs."""
    root = logging.getLogger("agentic_copilot")
    monkeypatch.setattr(root, "handlers", list(root.handlers))
    monkeypatch.setattr(root, "propagate", root.propagate)
    monkeypatch.setattr(root, "level", root.level)
    return root


class TestParser:
    """Tests for argument parsing."""

    def test_plan_defaults(self):
        args = create_parser().parse_args(["plan", "find jobs"])

        assert args.command == "plan"
        assert args.url is None
        assert "clickElement" in args.tools

    def test_debug_flag_enables_debug_logging(self, package_logger, monkeypatch):
        monkeypatch.delenv("AGENTIC_COPILOT_DEBUG", raising=False)

        assert main(["--debug", "plan", "click the button"]) == 0
        assert package_logger.level == logging.DEBUG

    def test_info_logging_by_default(self, package_logger, monkeypatch):
        monkeypatch.delenv("AGENTIC_COPILOT_DEBUG", raising=False)

        assert main(["plan", "click the button"]) == 0
        assert package_logger.level == logging.INFO

    def test_suggest_requires_url(self):
        with pytest.raises(SystemExit):
            create_parser().parse_args(["suggest", "find jobs"])

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as exc:
            main(["--version"])

        assert exc.value.code == 0
        assert __version__ in capsys.readouterr().out


class TestCommands:
    """Tests for command execution."""

    def test_no_command_prints_help(self, capsys):
        assert main([]) == 0
        assert "usage" in capsys.readouterr().out.lower()

    def test_plan_command(self, capsys):
        code = main(["plan", "Go to linkedin.com and search for software jobs"])

        assert code == 0
        assert capsys.readouterr().out.strip()

    def test_plan_command_with_page(self, capsys, monkeypatch):
        monkeypatch.setenv("COLUMNS", "300")
        code = main(["plan", "find a job in india", "--url", "https://www.linkedin.com/jobs", "--title", "Jobs"])

        assert code == 0
        assert "context_analysis" in capsys.readouterr().out

    def test_suggest_without_matches(self, capsys):
        code = main(["suggest", "find a job", "--url", "https://example.com"])

        assert code == 0
        assert "No suggestions" in capsys.readouterr().out

    def test_render_goal_has_row_per_task(self):
        goal = asyncio.run(Planner(["clickElement"]).create_goal("click the button, then read the page"))

        table = render_goal(goal)

        assert table.row_count == len(goal.sub_tasks) == 2
