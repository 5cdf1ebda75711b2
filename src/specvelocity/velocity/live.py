"""Velocity recording for live edits of task documents."""

from typing import List, Optional, Tuple

import structlog

from specvelocity.models import SpecDocument, TaskRecord, TaskStats
from specvelocity.parsing.checklist import ChecklistParser
from specvelocity.velocity.tracker import VelocityTracker

logger = structlog.get_logger(__name__)

Identity = Tuple[str, str]


class LiveTracker:
    """Feeds checkbox edits straight into a VelocityTracker, bypassing the miner."""

    def __init__(self, tracker: VelocityTracker, parser: Optional[ChecklistParser] = None) -> None:
        self.tracker = tracker
        self.parser = parser or ChecklistParser()

    def record_document_change(
        self,
        spec_id: str,
        previous_text: Optional[str],
        current_text: str,
        author: Optional[Identity] = None,
    ) -> List[TaskRecord]:
        """Record tasks completed between two versions of a document.

        Tasks are paired by position in the parsed task lists. A spec seen for
        the first time (no previous text) only has its progress updated.

        Returns:
            The tasks recorded as newly completed
        """
        name, email = author or (None, None)
        current_tasks = self.parser.parse(current_text, spec_id)
        recorded: List[TaskRecord] = []

        if previous_text is not None:
            previous_tasks = self.parser.parse(previous_text, spec_id)
            for before, after in zip(previous_tasks, current_tasks):
                if before.completed or not after.completed:
                    continue
                self.tracker.record_task_completion(
                    spec_id,
                    after.task_key,
                    after.is_required,
                    author=name,
                    text=after.text,
                    author_email=email,
                )
                recorded.append(after)

        stats = self.parser.count(current_text)
        self.tracker.update_spec_progress(
            spec_id, stats.total, stats.completed, author=name, author_email=email
        )

        if recorded:
            logger.info("live_completions_recorded", spec_id=spec_id, count=len(recorded))
        return recorded

    def toggle_task(
        self,
        document: SpecDocument,
        line: int,
        author: Optional[Identity] = None,
    ) -> TaskStats:
        """Flip one checkbox on disk and record the resulting transition.

        Raises:
            ValueError: If the document is missing or the line is not a checkbox
        """
        if not document.path.is_file():
            raise ValueError(f"Task document does not exist: {document.path}")

        content = document.path.read_text(encoding="utf-8")
        updated = self.parser.toggle(content, line)
        document.path.write_text(updated, encoding="utf-8")

        before = self.parser.match_line(content.split("\n")[line])
        after = self.parser.match_line(updated.split("\n")[line])
        name, email = author or (None, None)

        if after.completed and not before.completed:
            task = next(t for t in self.parser.parse(updated, document.spec_id) if t.line == line)
            self.tracker.record_task_completion(
                document.spec_id,
                task.task_key,
                task.is_required,
                author=name,
                text=task.text,
                author_email=email,
            )

        stats = self.parser.count(updated)
        self.tracker.update_spec_progress(
            document.spec_id, stats.total, stats.completed, author=name, author_email=email
        )
        logger.info(
            "task_toggled",
            spec_id=document.spec_id,
            line=line,
            completed=bool(after and after.completed),
        )
        return stats
