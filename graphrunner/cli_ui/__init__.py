"""CLI UI components for terminal rendering of plans and graphs."""

from graphrunner.cli_ui.plan_renderer import PlanRenderer, StatisticsTableRenderer

__all__ = [
    "PlanRenderer",
    "StatisticsTableRenderer",
]
