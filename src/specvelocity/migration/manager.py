"""One-shot backfill of velocity data from document history."""

import asyncio
import threading
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import structlog
from pydantic import BaseModel, Field

from specvelocity.extraction.git_extractor import GitRevisionSource
from specvelocity.mining.miner import HistoryMiner, MinedHistory
from specvelocity.mining.reconciler import WorkingTreeReconciler
from specvelocity.models import CompletionEvent, MiningConfig, SpecDocument
from specvelocity.parsing.checklist import ChecklistParser
from specvelocity.velocity import dates
from specvelocity.velocity.tracker import VelocityTracker

logger = structlog.get_logger(__name__)


class DocumentResult(BaseModel):
    """Outcome of mining one document."""

    spec_id: str = Field(..., description="Spec identifier")
    ok: bool = Field(..., description="Whether the document was mined")
    change_events: int = Field(0, description="Change events found in its history")
    completions: int = Field(0, description="Canonical completions from history")
    uncommitted: int = Field(0, description="Completions only present in the working copy")
    error: Optional[str] = Field(None, description="Why the document was skipped")


class MigrationReport(BaseModel):
    """Summary of a migration run."""

    tasks_processed: int = Field(0, description="Task completions recorded")
    specs_processed: int = Field(0, description="Spec completions recorded from history")
    authors: List[str] = Field(default_factory=list, description="Distinct completion authors")
    documents: List[DocumentResult] = Field(default_factory=list)
    week_distribution: Dict[str, int] = Field(
        default_factory=dict, description="Recorded completions per week (YYYY-MM-DD of Monday)"
    )
    cancelled: bool = Field(False, description="Whether the run was cancelled before finishing")

    @property
    def failed_documents(self) -> List[DocumentResult]:
        return [d for d in self.documents if not d.ok]


class _MinedDocument:
    """History and working-copy data gathered for one document."""

    def __init__(
        self,
        document: SpecDocument,
        mined: MinedHistory,
        working_content: Optional[str],
        identity: Optional[Tuple[str, str]],
    ):
        self.document = document
        self.mined = mined
        self.working_content = working_content
        self.identity = identity


SourceFactory = Callable[[Path, MiningConfig], GitRevisionSource]


class MigrationManager:
    """Resets the store, then backfills it from every document's history.

    Documents are independent, best-effort units: a document that fails or
    times out is reported and skipped, and nothing already recorded is
    rolled back.
    """

    def __init__(
        self,
        tracker: VelocityTracker,
        config: Optional[MiningConfig] = None,
        source_factory: Optional[SourceFactory] = None,
        parser: Optional[ChecklistParser] = None,
    ):
        """Initialize the migration manager.

        Args:
            tracker: Velocity tracker receiving the backfilled events
            config: Mining configuration
            source_factory: Builds a revision source for a repository root
            parser: Checklist parser (shared default when omitted)
        """
        self.tracker = tracker
        self.config = config or MiningConfig()
        self.source_factory = source_factory or (lambda root, cfg: GitRevisionSource(root, cfg))
        self.parser = parser or ChecklistParser()

    def migrate(
        self,
        documents: Sequence[SpecDocument],
        cancel_event: Optional[threading.Event] = None,
    ) -> MigrationReport:
        """Run the migration synchronously."""
        return asyncio.run(self.migrate_async(documents, cancel_event))

    async def migrate_async(
        self,
        documents: Sequence[SpecDocument],
        cancel_event: Optional[threading.Event] = None,
    ) -> MigrationReport:
        """Reset the store and backfill it from the given documents.

        Args:
            documents: Task documents to mine
            cancel_event: When set, no further documents are started

        Returns:
            MigrationReport with per-document results
        """
        logger.info("migration_started", documents=len(documents))
        self.tracker.reset()

        report = MigrationReport()
        workers = max(1, self.config.max_workers)
        semaphore = asyncio.Semaphore(workers)
        # Owned pool: a timed-out worker must not be joined when the loop closes
        executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="specvelocity-mine")
        try:
            tasks = [
                self._mine_one(document, semaphore, executor, cancel_event) for document in documents
            ]
            results = await asyncio.gather(*tasks, return_exceptions=True)
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        mined_documents: List[_MinedDocument] = []
        for document, result in zip(documents, results):
            if isinstance(result, BaseException):
                # _mine_one reports its own failures; this only catches bugs in it
                logger.error("document_mining_crashed", spec_id=document.spec_id, error=str(result))
                report.documents.append(
                    DocumentResult(spec_id=document.spec_id, ok=False, error=str(result))
                )
                continue
            doc_result, mined_document = result
            report.documents.append(doc_result)
            if mined_document is not None:
                mined_documents.append(mined_document)

        report.cancelled = bool(cancel_event and cancel_event.is_set())

        completions = self._merge_completions(mined_documents, report)
        self._record(mined_documents, completions, report)

        logger.info(
            "migration_complete",
            tasks=report.tasks_processed,
            specs=report.specs_processed,
            authors=len(report.authors),
            failed=len(report.failed_documents),
            cancelled=report.cancelled,
        )
        return report

    async def _mine_one(
        self,
        document: SpecDocument,
        semaphore: asyncio.Semaphore,
        executor: ThreadPoolExecutor,
        cancel_event: Optional[threading.Event],
    ) -> Tuple[DocumentResult, Optional[_MinedDocument]]:
        async with semaphore:
            if cancel_event is not None and cancel_event.is_set():
                logger.info("document_skipped_cancelled", spec_id=document.spec_id)
                return DocumentResult(spec_id=document.spec_id, ok=False, error="cancelled"), None

            try:
                loop = asyncio.get_running_loop()
                work = loop.run_in_executor(executor, self._mine_blocking, document)
                timeout = self.config.document_timeout_seconds
                if timeout is not None:
                    mined_document = await asyncio.wait_for(work, timeout=timeout)
                else:
                    mined_document = await work
            except asyncio.TimeoutError:
                logger.warning(
                    "document_mining_timeout",
                    spec_id=document.spec_id,
                    timeout=self.config.document_timeout_seconds,
                )
                return DocumentResult(spec_id=document.spec_id, ok=False, error="timeout"), None
            except Exception as e:
                logger.warning("document_mining_failed", spec_id=document.spec_id, error=str(e))
                return DocumentResult(spec_id=document.spec_id, ok=False, error=str(e)), None

        mined = mined_document.mined
        return (
            DocumentResult(
                spec_id=document.spec_id,
                ok=True,
                change_events=len(mined.change_events),
                completions=len(mined.completions),
            ),
            mined_document,
        )

    def _mine_blocking(self, document: SpecDocument) -> _MinedDocument:
        # One source per document: git object readers are not shared across threads
        source = self.source_factory(document.repo_root, self.config)
        mined = HistoryMiner(source, self.parser).mine_document(document)
        return _MinedDocument(
            document=document,
            mined=mined,
            working_content=source.working_content(document.path),
            identity=source.current_user(),
        )

    def _merge_completions(
        self,
        mined_documents: List[_MinedDocument],
        report: MigrationReport,
    ) -> Dict[str, CompletionEvent]:
        completions: Dict[str, CompletionEvent] = {}
        for item in mined_documents:
            completions.update(item.mined.completions)

        results = {r.spec_id: r for r in report.documents if r.ok}
        for item in mined_documents:
            reconciler = WorkingTreeReconciler(
                identity=item.identity, parser=self.parser, clock=self.tracker.clock
            )
            added = reconciler.reconcile(
                item.document.spec_id,
                item.mined.latest_content,
                item.working_content,
                completions,
            )
            if item.document.spec_id in results:
                results[item.document.spec_id].uncommitted = len(added)

        return completions

    def _record(
        self,
        mined_documents: List[_MinedDocument],
        completions: Dict[str, CompletionEvent],
        report: MigrationReport,
    ) -> None:
        for item in mined_documents:
            spec_completion = item.mined.spec_completion
            if spec_completion is None:
                continue
            self.tracker.record_spec_completion(
                spec_completion.spec_id,
                spec_completion.total_tasks,
                spec_completion.total_tasks,
                timestamp=spec_completion.completed_at,
                author=spec_completion.author,
                author_email=spec_completion.author_email,
            )
            report.specs_processed += 1

        authors = set()
        weeks: Counter = Counter()
        for completion in sorted(completions.values(), key=lambda c: c.completed_at):
            self.tracker.record_task_completion(
                completion.spec_id,
                completion.task_key,
                completion.is_required,
                timestamp=completion.completed_at,
                author=completion.author,
                text=completion.text,
                author_email=completion.author_email,
            )
            report.tasks_processed += 1
            authors.add(completion.author)
            weeks[dates.week_start(completion.completed_at).date().isoformat()] += 1

        # Bring spec counts in line with the current documents
        for item in mined_documents:
            content = item.working_content
            if content is None:
                content = item.mined.latest_content
            stats = self.parser.count(content or "")
            self.tracker.update_spec_progress(item.document.spec_id, stats.total, stats.completed)

        report.authors = sorted(authors)
        report.week_distribution = dict(sorted(weeks.items()))
        if self.tracker.last_persist_error:
            logger.warning("migration_not_persisted", error=self.tracker.last_persist_error)
