"""Axis assistant: LLM provider adapters and the planner tool-orchestration agent."""

__version__ = "0.1.0"
