"""Checklist document parsing."""

from specvelocity.parsing.checklist import (
    ChecklistMatch,
    ChecklistParser,
    count_tasks,
    make_task_key,
    parse_tasks,
    toggle_task_line,
)

__all__ = [
    "ChecklistMatch",
    "ChecklistParser",
    "count_tasks",
    "make_task_key",
    "parse_tasks",
    "toggle_task_line",
]
