"""Checklist task parsing for spec task documents.

Supported line formats::

    - [ ] pending task
    - [x] completed task
    - [~] in progress (not completed)
    - [-] queued (not completed)
    - [ ]* optional pending task
    - [x]* optional completed task
"""

import re
from typing import List, NamedTuple, Optional

from specvelocity.models import TaskRecord, TaskStats

TASK_KEY_TEXT_LENGTH = 100


class ChecklistMatch(NamedTuple):
    """Parsed pieces of one checklist line."""

    indent: str
    state: str
    optional: bool
    text: str

    @property
    def completed(self) -> bool:
        return self.state == "x"


class ChecklistParser:
    """Parses checklist lines out of task documents."""

    PATTERNS = {
        "task_line": re.compile(r"^(\s*)-\s*\[([ x~-])\](\*)?\s*(.*)$"),
        "pending_box": re.compile(r"- \[ \]"),
        "done_box": re.compile(r"- \[x\]"),
    }

    def match_line(self, line: str) -> Optional[ChecklistMatch]:
        """Parse a single line, returning None when it is not a checklist item."""
        match = self.PATTERNS["task_line"].match(line.rstrip("\r"))
        if not match:
            return None
        return ChecklistMatch(
            indent=match.group(1),
            state=match.group(2),
            optional=match.group(3) == "*",
            text=match.group(4).strip(),
        )

    def parse(self, content: str, spec_id: str) -> List[TaskRecord]:
        """Parse every checklist line of a document, in document order."""
        tasks = []
        if not content:
            return tasks

        for i, line in enumerate(content.split("\n")):
            parsed = self.match_line(line)
            if parsed is None:
                continue
            tasks.append(
                TaskRecord(
                    spec_id=spec_id,
                    task_key=make_task_key(spec_id, parsed.text),
                    line=i,
                    completed=parsed.completed,
                    optional=parsed.optional,
                    state=parsed.state,
                    text=parsed.text,
                )
            )

        return tasks

    def count(self, content: str) -> TaskStats:
        """Count total, completed and optional tasks in a document."""
        if not content or not content.strip():
            return TaskStats()

        total = completed = optional = 0
        for line in content.split("\n"):
            parsed = self.match_line(line)
            if parsed is None:
                continue
            total += 1
            if parsed.completed:
                completed += 1
            if parsed.optional:
                optional += 1

        progress = int(completed * 100 / total + 0.5) if total else 0
        return TaskStats(
            total=total,
            completed=completed,
            optional=optional,
            required=total - optional,
            progress=progress,
        )

    def toggle(self, content: str, line_index: int) -> str:
        """Flip the checkbox on one line between pending and done.

        Raises:
            ValueError: If the line does not exist or is not a toggleable checkbox
        """
        lines = content.split("\n")
        if line_index < 0 or line_index >= len(lines):
            raise ValueError(
                f"Invalid task line number: {line_index} (file has {len(lines)} lines)"
            )

        line = lines[line_index]
        if self.match_line(line) is None:
            raise ValueError(f"Line {line_index} is not a task checkbox: {line.strip()!r}")

        if self.PATTERNS["done_box"].search(line):
            lines[line_index] = self.PATTERNS["done_box"].sub("- [ ]", line, count=1)
        elif self.PATTERNS["pending_box"].search(line):
            lines[line_index] = self.PATTERNS["pending_box"].sub("- [x]", line, count=1)
        else:
            raise ValueError(f"Could not parse checkbox state on line {line_index}")

        return "\n".join(lines)


def make_task_key(spec_id: str, text: str) -> str:
    """Build the stable task identity used across revisions."""
    return f"{spec_id}:{text[:TASK_KEY_TEXT_LENGTH]}"


_default_parser = ChecklistParser()


def parse_tasks(content: str, spec_id: str) -> List[TaskRecord]:
    """Parse a document with the shared parser."""
    return _default_parser.parse(content, spec_id)


def count_tasks(content: str) -> TaskStats:
    """Count tasks with the shared parser."""
    return _default_parser.count(content)


def toggle_task_line(content: str, line_index: int) -> str:
    """Toggle one checkbox with the shared parser."""
    return _default_parser.toggle(content, line_index)
