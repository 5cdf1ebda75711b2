"""Positional checklist diffing between two versions of a document.

Lines are compared by index, not by content. A task that moves to a
different line shows up as unrelated changes on both lines.
"""

from typing import List, NamedTuple, Optional

from specvelocity.models import ChangeEvent, Revision
from specvelocity.parsing.checklist import ChecklistMatch, ChecklistParser, make_task_key


class LineChange(NamedTuple):
    """Checkbox state change on one line index."""

    line: int
    was_completed: bool
    current: ChecklistMatch


def diff_checklists(
    previous: Optional[str],
    current: Optional[str],
    parser: Optional[ChecklistParser] = None,
) -> List[LineChange]:
    """Compare two document versions line by line.

    A change is reported when both lines are checklist items with a
    different completion state, or when only the current line is a
    checklist item and it is already completed (added as done).
    """
    parser = parser or ChecklistParser()
    previous_lines = (previous or "").split("\n")
    current_lines = (current or "").split("\n")

    changes = []
    for i in range(max(len(previous_lines), len(current_lines))):
        old = parser.match_line(previous_lines[i]) if i < len(previous_lines) else None
        new = parser.match_line(current_lines[i]) if i < len(current_lines) else None

        if new is None:
            continue
        if old is not None:
            if old.completed != new.completed:
                changes.append(LineChange(i, old.completed, new))
        elif new.completed:
            changes.append(LineChange(i, False, new))

    return changes


def diff_revisions(
    spec_id: str,
    previous: Optional[str],
    revision: Revision,
    parser: Optional[ChecklistParser] = None,
) -> List[ChangeEvent]:
    """Turn the line changes introduced by a revision into change events."""
    events = []
    for change in diff_checklists(previous, revision.content, parser):
        events.append(
            ChangeEvent(
                spec_id=spec_id,
                task_key=make_task_key(spec_id, change.current.text),
                line=change.line,
                was_completed=change.was_completed,
                is_completed=change.current.completed,
                optional=change.current.optional,
                text=change.current.text,
                revision_time=revision.timestamp,
                author=revision.author or "unknown",
                author_email=revision.email or None,
            )
        )
    return events
