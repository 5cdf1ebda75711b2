"""Unit tests for Git revision extraction and document discovery."""

from datetime import datetime
from pathlib import Path

import pytest

from specvelocity.extraction import GitRevisionSource, discover_documents
from specvelocity.models import MiningConfig

T1 = datetime(2026, 1, 5, 9, 0)
T2 = datetime(2026, 1, 6, 14, 30)
T3 = datetime(2026, 1, 8, 11, 15)


@pytest.fixture
def history_repo(repo_builder):
    """Repository with three revisions of one task document."""
    repo_builder.commit("specA", "- [ ] a\n- [ ] b\n", T1, author="Bob", email="bob@example.com")
    repo_builder.commit("specA", "- [x] a\n- [ ] b\n", T2, author="Alice")
    repo_builder.commit("specB", "- [ ] other\n", T2)
    repo_builder.commit("specA", "- [x] a\n- [x] b\n", T3, author="Alice")
    return repo_builder


def test_invalid_path():
    """Test GitRevisionSource with invalid repository path."""
    with pytest.raises(ValueError, match="Repository path does not exist"):
        GitRevisionSource(Path("/nonexistent/path"))


def test_not_a_repository(tmp_path):
    with pytest.raises(ValueError, match="Invalid Git repository"):
        GitRevisionSource(tmp_path)


def test_revisions_oldest_first(history_repo):
    source = GitRevisionSource(history_repo.root)

    revisions = source.revisions(history_repo.tasks_path("specA"))

    assert [r.timestamp for r in revisions] == [T1, T2, T3]
    assert [r.author for r in revisions] == ["Bob", "Alice", "Alice"]
    assert revisions[0].email == "bob@example.com"
    assert revisions[1].content == "- [x] a\n- [ ] b\n"


def test_revisions_accept_relative_paths(history_repo):
    source = GitRevisionSource(history_repo.root)
    assert len(source.revisions(".kiro/specs/specB/tasks.md")) == 1


def test_max_revisions_keeps_newest(history_repo):
    source = GitRevisionSource(history_repo.root, MiningConfig(max_revisions=2))

    revisions = source.revisions(history_repo.tasks_path("specA"))

    assert [r.timestamp for r in revisions] == [T2, T3]


def test_oversized_revision_has_no_content(history_repo):
    source = GitRevisionSource(history_repo.root, MiningConfig(max_file_size_bytes=5))

    revisions = source.revisions(history_repo.tasks_path("specA"))

    assert len(revisions) == 3
    assert all(r.content is None for r in revisions)


def test_untracked_document(repo_builder):
    repo_builder.commit("specA", "- [ ] a\n", T1)
    path = repo_builder.write("draft", "- [x] new\n")
    source = GitRevisionSource(repo_builder.root)

    assert source.revisions(path) == []
    assert not source.is_tracked(path)
    assert source.head_content(path) is None
    assert source.working_content(path) == "- [x] new\n"


def test_working_and_head_content(history_repo):
    path = history_repo.write("specA", "- [ ] a\n- [x] b\n")
    source = GitRevisionSource(history_repo.root)

    assert source.is_tracked(path)
    assert source.head_content(path) == "- [x] a\n- [x] b\n"
    assert source.working_content(path) == "- [ ] a\n- [x] b\n"
    assert source.working_content(history_repo.root / "missing.md") is None


def test_repository_without_commits(repo_builder):
    path = repo_builder.write("specA", "- [ ] a\n")
    source = GitRevisionSource(repo_builder.root)

    assert source.revisions(path) == []
    assert not source.is_tracked(path)


def test_current_user(repo_builder):
    source = GitRevisionSource(repo_builder.root)
    assert source.current_user() == ("Test User", "test@example.com")


def test_path_outside_repository(history_repo, tmp_path):
    source = GitRevisionSource(history_repo.root)

    with pytest.raises(ValueError, match="outside the repository"):
        source.revisions(tmp_path / "elsewhere.md")


class TestDiscoverDocuments:
    """Test spec document discovery."""

    def test_discovers_sorted_documents(self, history_repo):
        (history_repo.root / ".kiro" / "specs" / "no-tasks").mkdir()

        documents = discover_documents(history_repo.root)

        assert [d.spec_id for d in documents] == ["specA", "specB"]
        assert documents[0].relative_path == ".kiro/specs/specA/tasks.md"

    def test_missing_specs_directory(self, tmp_path):
        assert discover_documents(tmp_path) == []

    def test_custom_layout(self, tmp_path):
        path = tmp_path / "plans" / "feature" / "todo.md"
        path.parent.mkdir(parents=True)
        path.write_text("- [ ] a\n")

        documents = discover_documents(tmp_path, specs_dir="plans", filename="todo.md")

        assert [d.spec_id for d in documents] == ["feature"]
