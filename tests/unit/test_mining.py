"""Unit tests for revision diffing and history mining."""

from datetime import datetime, timedelta
from pathlib import Path
from unittest.mock import Mock

import pytest
from structlog.testing import capture_logs

from specvelocity.mining import (
    HistoryMiner,
    deduplicate_completions,
    detect_spec_completion,
    diff_checklists,
    replay_revisions,
)
from specvelocity.models import ChangeEvent, Revision, SpecDocument

T0 = datetime(2026, 1, 5, 9, 0)


def _revision(content, hours=0, author="Bob", email="bob@example.com"):
    return Revision(
        commit_id=f"{hours:040d}",
        author=author,
        email=email,
        timestamp=T0 + timedelta(hours=hours),
        content=content,
    )


def _completion(key, when, author="Alice"):
    return ChangeEvent(
        spec_id="specA",
        task_key=key,
        line=0,
        was_completed=False,
        is_completed=True,
        text=key.split(":", 1)[1],
        revision_time=when,
        author=author,
    )


def _document():
    return SpecDocument(
        spec_id="specA",
        path=Path("/repo/.kiro/specs/specA/tasks.md"),
        repo_root=Path("/repo"),
    )


def _source(revisions, working=None):
    source = Mock()
    source.revisions.return_value = revisions
    source.working_content.return_value = working
    return source


class TestDiffChecklists:
    """Test positional line diffing."""

    def test_checked_task_is_reported(self):
        changes = diff_checklists("- [ ] a\n- [ ] b", "- [x] a\n- [ ] b")

        assert len(changes) == 1
        assert changes[0].line == 0
        assert not changes[0].was_completed
        assert changes[0].current.completed

    def test_unchecked_task_is_reported(self):
        changes = diff_checklists("- [x] a", "- [ ] a")

        assert len(changes) == 1
        assert changes[0].was_completed
        assert not changes[0].current.completed

    def test_task_added_as_done(self):
        changes = diff_checklists("- [ ] a", "- [ ] a\n- [x] b")

        assert [c.line for c in changes] == [1]
        assert changes[0].current.text == "b"

    def test_task_added_as_pending_is_ignored(self):
        assert diff_checklists("- [ ] a", "- [ ] a\n- [ ] b") == []

    def test_missing_previous_counts_as_empty(self):
        changes = diff_checklists(None, "- [x] a\n- [ ] b")
        assert [c.line for c in changes] == [0]

    def test_in_progress_states_are_not_completions(self):
        assert diff_checklists("- [ ] a", "- [~] a") == []
        assert diff_checklists("- [~] a", "- [-] a") == []

    def test_reordered_tasks_are_compared_by_position(self):
        changes = diff_checklists("- [x] a\n- [ ] b", "- [ ] b\n- [x] a")

        assert [(c.line, c.was_completed, c.current.text) for c in changes] == [
            (0, True, "b"),
            (1, False, "a"),
        ]


class TestReplayRevisions:
    """Test replaying a revision list."""

    def test_first_revision_diffs_against_empty(self):
        events = replay_revisions("specA", [_revision("- [x] a\n- [ ] b")])

        assert len(events) == 1
        assert events[0].task_key == "specA:a"
        assert events[0].is_completion

    def test_unreadable_revision_is_skipped(self):
        revisions = [
            _revision("- [ ] a", hours=0),
            _revision(None, hours=1),
            _revision("- [x] a", hours=2, author="Carol"),
        ]

        events = replay_revisions("specA", revisions)

        assert len(events) == 1
        assert events[0].revision_time == T0 + timedelta(hours=2)
        assert events[0].author == "Carol"

    def test_events_carry_revision_author(self):
        events = replay_revisions(
            "specA", [_revision("- [ ] a"), _revision("- [x] a", hours=1, author="Alice", email="")]
        )

        assert events[0].author == "Alice"
        assert events[0].author_email is None


class TestDeduplicateCompletions:
    """Test canonical completion selection."""

    def test_latest_completion_wins(self):
        t1, t2, t3 = T0, T0 + timedelta(days=1), T0 + timedelta(days=2)
        events = [
            _completion("specA:a", t2),
            _completion("specA:a", t3),
            _completion("specA:a", t1),
        ]

        completions = deduplicate_completions(events)

        assert list(completions) == ["specA:a"]
        assert completions["specA:a"].completed_at == t3

    def test_uncompletions_are_ignored(self):
        event = _completion("specA:a", T0).model_copy(
            update={"was_completed": True, "is_completed": False}
        )
        assert deduplicate_completions([event]) == {}

    def test_equal_timestamps_keep_first(self):
        events = [
            _completion("specA:a", T0, author="First"),
            _completion("specA:a", T0, author="Second"),
        ]
        assert deduplicate_completions(events)["specA:a"].author == "First"


class TestDetectSpecCompletion:
    """Test spec completion detection."""

    def test_completion_at_total(self):
        events = [_completion(f"specA:{i}", T0 + timedelta(hours=i)) for i in (2, 0, 1)]

        completion = detect_spec_completion("specA", events, total_tasks=3)

        assert completion is not None
        assert completion.completed_at == T0 + timedelta(hours=2)
        assert completion.total_tasks == 3

    def test_not_enough_completions(self):
        events = [_completion("specA:a", T0)]
        assert detect_spec_completion("specA", events, total_tasks=2) is None

    def test_empty_spec_never_completes(self):
        assert detect_spec_completion("specA", [], total_tasks=0) is None


class TestHistoryMiner:
    """Test mining one document."""

    def test_completion_followed_by_unrelated_change(self):
        t2 = T0 + timedelta(hours=2)
        revisions = [
            _revision("- [ ] Implement X\n- [ ] Write tests", hours=0),
            _revision("- [x] Implement X\n- [ ] Write tests", hours=2, author="Alice"),
            _revision("- [x] Implement X\n- [~] Write tests", hours=4),
        ]
        miner = HistoryMiner(_source(revisions, working=revisions[-1].content))

        mined = miner.mine_document(_document())

        assert list(mined.completions) == ["specA:Implement X"]
        completion = mined.completions["specA:Implement X"]
        assert completion.completed_at == t2
        assert completion.author == "Alice"
        assert mined.spec_completion is None
        assert mined.current_total == 2

    def test_spec_completion_detected(self):
        revisions = [
            _revision("- [ ] a\n- [ ] b", hours=0),
            _revision("- [x] a\n- [ ] b", hours=1),
            _revision("- [x] a\n- [x] b", hours=3, author="Alice"),
        ]
        miner = HistoryMiner(_source(revisions, working=None))

        mined = miner.mine_document(_document())

        assert mined.spec_completion is not None
        assert mined.spec_completion.completed_at == T0 + timedelta(hours=3)
        assert mined.spec_completion.author == "Alice"
        assert mined.latest_content == "- [x] a\n- [x] b"

    def test_skipped_revisions_are_counted(self):
        revisions = [_revision("- [ ] a"), _revision(None, hours=1)]
        mined = HistoryMiner(_source(revisions)).mine_document(_document())

        assert mined.revisions_seen == 2
        assert mined.revisions_skipped == 1
        assert mined.latest_content == "- [ ] a"

    def test_history_errors_propagate(self):
        source = Mock()
        source.revisions.side_effect = RuntimeError("git failed")

        with pytest.raises(RuntimeError, match="git failed"):
            HistoryMiner(source).mine_document(_document())

    def test_mined_document_is_logged_by_repository_path(self):
        revisions = [_revision("- [ ] a"), _revision("- [x] a", hours=1)]

        with capture_logs() as logs:
            HistoryMiner(_source(revisions)).mine_document(_document())

        mined = next(entry for entry in logs if entry["event"] == "document_mined")
        assert mined["path"] == ".kiro/specs/specA/tasks.md"
        assert mined["completions"] == 1
