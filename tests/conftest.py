"""Shared fixtures: throwaway Git repositories and state directories."""

from datetime import datetime
from pathlib import Path
from typing import Optional

import git
import pytest

from specvelocity.velocity import StateManager, VelocityTracker

TASKS_PATH = ".kiro/specs/{spec_id}/tasks.md"


class RepoBuilder:
    """Builds a Git repository whose commits carry chosen authors and dates."""

    def __init__(self, root: Path):
        self.root = root
        self.repo = git.Repo.init(root)

        # Configure git
        with self.repo.config_writer() as writer:
            writer.set_value("user", "name", "Test User")
            writer.set_value("user", "email", "test@example.com")

    def tasks_path(self, spec_id: str) -> Path:
        return self.root / TASKS_PATH.format(spec_id=spec_id)

    def write(self, spec_id: str, content: str) -> Path:
        path = self.tasks_path(spec_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return path

    def commit(
        self,
        spec_id: str,
        content: str,
        when: datetime,
        author: str = "Alice",
        email: Optional[str] = "alice@example.com",
    ) -> git.Commit:
        """Write a task document and commit it at local time ``when``."""
        path = self.write(spec_id, content)
        self.repo.index.add([str(path.relative_to(self.root))])

        # Raw git date format: seconds since epoch plus offset
        date = f"{int(when.timestamp())} +0000"
        actor = git.Actor(author, email or "")
        return self.repo.index.commit(
            f"Update {spec_id}",
            author=actor,
            committer=actor,
            author_date=date,
            commit_date=date,
        )


@pytest.fixture
def repo_builder(tmp_path):
    """Create an empty Git repository for testing."""
    return RepoBuilder(tmp_path / "repo")


@pytest.fixture
def state_dir(tmp_path):
    return tmp_path / "state"


@pytest.fixture
def fixed_now():
    return datetime(2026, 1, 12, 12, 0)


@pytest.fixture
def tracker(state_dir, fixed_now):
    """Tracker over an empty store with a frozen clock."""
    tracker = VelocityTracker(StateManager(state_dir), clock=lambda: fixed_now)
    tracker.initialize()
    return tracker
