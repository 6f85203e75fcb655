"""Event consumers: automations, notifications, focus sessions and insights."""
from devstream.reactors.automations import AutomationEngine, matches, split_command
from devstream.reactors.focus import FocusTimer
from devstream.reactors.insights import (
    InsightsAggregator,
    InsightsData,
    generate_report,
    write_report,
)
from devstream.reactors.notifications import (
    DesktopNotifier,
    NotificationGate,
    is_high_priority,
    is_in_silent_hours,
)

__all__ = [
    "AutomationEngine",
    "DesktopNotifier",
    "FocusTimer",
    "InsightsAggregator",
    "InsightsData",
    "NotificationGate",
    "generate_report",
    "is_high_priority",
    "is_in_silent_hours",
    "matches",
    "split_command",
    "write_report",
]
