"""Tasks and reminders."""

from .manager import (
    TaskManager,
    basic_task_info,
    format_task_list,
    is_completion_message,
    is_task_list_query,
    parse_task_json,
)
from .reminders import ReminderScheduler, parse_time_expression

__all__ = [
    "ReminderScheduler",
    "TaskManager",
    "basic_task_info",
    "format_task_list",
    "is_completion_message",
    "is_task_list_query",
    "parse_task_json",
    "parse_time_expression",
]
