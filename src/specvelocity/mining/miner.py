"""Reconstruction of task completion events from document revisions."""

from typing import Dict, Iterable, List, Optional, Protocol

import structlog
from pydantic import BaseModel, Field

from specvelocity.mining.diff import diff_revisions
from specvelocity.models import (
    ChangeEvent,
    CompletionEvent,
    Revision,
    SpecCompletion,
    SpecDocument,
)
from specvelocity.parsing.checklist import ChecklistParser

logger = structlog.get_logger(__name__)


class RevisionSource(Protocol):
    """Anything able to list the revisions of a document."""

    def revisions(self, path) -> List[Revision]: ...

    def working_content(self, path) -> Optional[str]: ...


class MinedHistory(BaseModel):
    """Everything recovered from one document's history."""

    spec_id: str = Field(..., description="Spec identifier")
    change_events: List[ChangeEvent] = Field(default_factory=list)
    completions: Dict[str, CompletionEvent] = Field(
        default_factory=dict, description="Canonical completion per task key"
    )
    spec_completion: Optional[SpecCompletion] = Field(None, description="When the spec hit 100%")
    latest_content: Optional[str] = Field(None, description="Content of the newest readable revision")
    current_total: int = Field(0, description="Task count of the current document")
    revisions_seen: int = Field(0, description="Revisions listed for the document")
    revisions_skipped: int = Field(0, description="Revisions whose content could not be read")


def replay_revisions(
    spec_id: str,
    revisions: Iterable[Revision],
    parser: Optional[ChecklistParser] = None,
) -> List[ChangeEvent]:
    """Diff each revision against the previous readable one, oldest first.

    Revisions without content contribute nothing and do not become the
    base for the next comparison.
    """
    parser = parser or ChecklistParser()
    events: List[ChangeEvent] = []
    previous = ""

    for revision in revisions:
        if revision.content is None:
            continue
        events.extend(diff_revisions(spec_id, previous, revision, parser))
        previous = revision.content

    return events


def deduplicate_completions(events: Iterable[ChangeEvent]) -> Dict[str, CompletionEvent]:
    """Keep the latest completion of every task key.

    Earlier complete/uncomplete cycles of the same task are dropped. On equal
    timestamps the first occurrence wins.
    """
    completions: Dict[str, CompletionEvent] = {}

    for event in events:
        if not event.is_completion:
            continue
        existing = completions.get(event.task_key)
        if existing is not None and event.revision_time <= existing.completed_at:
            continue
        completions[event.task_key] = CompletionEvent(
            spec_id=event.spec_id,
            task_key=event.task_key,
            line=event.line,
            completed_at=event.revision_time,
            optional=event.optional,
            text=event.text,
            author=event.author,
            author_email=event.author_email,
        )

    return completions


def detect_spec_completion(
    spec_id: str,
    events: Iterable[ChangeEvent],
    total_tasks: int,
) -> Optional[SpecCompletion]:
    """Find the completion that first brought the spec to its current total.

    The running count only ever increases, so a spec whose task count
    changed over time may be credited early or never.
    """
    if total_tasks <= 0:
        return None

    completed_so_far = 0
    for event in sorted(events, key=lambda e: e.revision_time):
        if not event.is_completion:
            continue
        completed_so_far += 1
        if completed_so_far == total_tasks:
            return SpecCompletion(
                spec_id=spec_id,
                total_tasks=total_tasks,
                completed_at=event.revision_time,
                author=event.author,
                author_email=event.author_email,
            )

    return None


class HistoryMiner:
    """Mines canonical completion events from a revision source."""

    def __init__(self, source: RevisionSource, parser: Optional[ChecklistParser] = None) -> None:
        """Initialize the miner.

        Args:
            source: Revision source for the documents' repository
            parser: Checklist parser (shared default when omitted)
        """
        self.source = source
        self.parser = parser or ChecklistParser()

    def mine_document(self, document: SpecDocument) -> MinedHistory:
        """Replay one document's history.

        Errors listing the history propagate; per-revision read failures
        are skipped.
        """
        revisions = self.source.revisions(document.path)
        skipped = sum(1 for r in revisions if r.content is None)
        if skipped:
            logger.warning(
                "revisions_skipped",
                spec_id=document.spec_id,
                skipped=skipped,
                total=len(revisions),
            )

        events = replay_revisions(document.spec_id, revisions, self.parser)
        completions = deduplicate_completions(events)

        latest_content = next(
            (r.content for r in reversed(revisions) if r.content is not None), None
        )
        current_content = self.source.working_content(document.path)
        if current_content is None:
            current_content = latest_content
        current_total = self.parser.count(current_content or "").total

        spec_completion = None
        if events:
            spec_completion = detect_spec_completion(document.spec_id, events, current_total)

        logger.info(
            "document_mined",
            spec_id=document.spec_id,
            path=document.relative_path,
            revisions=len(revisions),
            change_events=len(events),
            completions=len(completions),
            spec_completed=spec_completion is not None,
        )

        return MinedHistory(
            spec_id=document.spec_id,
            change_events=events,
            completions=completions,
            spec_completion=spec_completion,
            latest_content=latest_content,
            current_total=current_total,
            revisions_seen=len(revisions),
            revisions_skipped=skipped,
        )
