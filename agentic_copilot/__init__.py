"""
Agentic Copilot - the planning and execution core of an agentic browser assistant.

Turns natural-language objectives into goals and tasks, runs them through
tool-calling LLM rounds and a bounded task queue, and learns from outcomes.
"""

__version__ = "0.1.0"
__author__ = "Agentic Copilot Contributors"
