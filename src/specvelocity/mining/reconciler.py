"""Merging of uncommitted task completions into mined history."""

from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple

import structlog

from specvelocity.mining.diff import diff_checklists
from specvelocity.models import CompletionEvent
from specvelocity.parsing.checklist import ChecklistParser, make_task_key

logger = structlog.get_logger(__name__)

UNKNOWN_AUTHOR = "unknown"


class WorkingTreeReconciler:
    """Finds completions present only in the working copy.

    History always wins: a task key already completed in history is never
    overwritten by the working-tree occurrence.
    """

    def __init__(
        self,
        identity: Optional[Tuple[str, str]] = None,
        parser: Optional[ChecklistParser] = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        """Initialize the reconciler.

        Args:
            identity: Configured (name, email) used as author of new completions
            parser: Checklist parser (shared default when omitted)
            clock: Source of the completion time for uncommitted work
        """
        self.identity = identity
        self.parser = parser or ChecklistParser()
        self.clock = clock

    def find_uncommitted(
        self,
        spec_id: str,
        base_content: Optional[str],
        working_content: Optional[str],
    ) -> List[CompletionEvent]:
        """List tasks completed in the working copy but not in the base version."""
        if working_content is None:
            return []

        author, email = self.identity or (UNKNOWN_AUTHOR, None)
        now = self.clock()

        completions = []
        for change in diff_checklists(base_content, working_content, self.parser):
            if change.was_completed or not change.current.completed:
                continue
            completions.append(
                CompletionEvent(
                    spec_id=spec_id,
                    task_key=make_task_key(spec_id, change.current.text),
                    line=change.line,
                    completed_at=now,
                    optional=change.current.optional,
                    text=change.current.text,
                    author=author or UNKNOWN_AUTHOR,
                    author_email=email or None,
                )
            )
        return completions

    def reconcile(
        self,
        spec_id: str,
        base_content: Optional[str],
        working_content: Optional[str],
        completions: Dict[str, CompletionEvent],
    ) -> List[CompletionEvent]:
        """Add genuinely new working-tree completions to ``completions`` in place.

        Returns:
            The completions that were added
        """
        added = []
        for completion in self.find_uncommitted(spec_id, base_content, working_content):
            existing = completions.get(completion.task_key)
            if existing is not None:
                logger.debug(
                    "uncommitted_completion_in_history",
                    task_key=completion.task_key[:80],
                    author=existing.author,
                )
                continue
            completions[completion.task_key] = completion
            added.append(completion)

        if added:
            logger.info("uncommitted_completions_found", spec_id=spec_id, count=len(added))
        return added
