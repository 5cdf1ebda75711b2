"""Git revision history for task documents."""

from datetime import datetime
from pathlib import Path
from typing import Iterator, List, Optional, Tuple, Union

import git
import structlog
from git import Commit, Repo

from specvelocity.models import MiningConfig, Revision

logger = structlog.get_logger(__name__)

PathLike = Union[str, Path]


class GitRevisionSource:
    """Reads the revision history of task documents from a Git repository."""

    def __init__(self, repo_path: PathLike, config: Optional[MiningConfig] = None) -> None:
        """Initialize the revision source.

        Args:
            repo_path: Path to the Git repository (or any directory inside it)
            config: Mining configuration (defaults apply when omitted)

        Raises:
            ValueError: If repository path is invalid
        """
        self.config = config or MiningConfig()
        repo_path = Path(repo_path)
        if not repo_path.exists():
            raise ValueError(f"Repository path does not exist: {repo_path}")

        try:
            self.repo = Repo(repo_path, search_parent_directories=True)
        except git.exc.InvalidGitRepositoryError as e:
            raise ValueError(f"Invalid Git repository: {repo_path}") from e

        self.root = Path(self.repo.working_tree_dir)

    def revisions(self, path: PathLike) -> List[Revision]:
        """Return every committed version of a document, oldest first.

        A revision whose content cannot be read is returned with
        ``content=None`` so callers can skip it.

        Args:
            path: Document path, absolute or relative to the repository root

        Returns:
            List of Revision objects in chronological order
        """
        rel_path = self._relative(path)
        return list(self._iter_revisions(rel_path))

    def working_content(self, path: PathLike) -> Optional[str]:
        """Return the current, possibly uncommitted, content of a document."""
        full_path = self.root / self._relative(path)
        try:
            return full_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("working_content_unreadable", path=str(full_path), error=str(e))
            return None

    def head_content(self, path: PathLike) -> Optional[str]:
        """Return the content of a document at HEAD, None if not tracked."""
        head = self._head_commit()
        if head is None:
            return None
        return self._read_blob(head, self._relative(path))

    def is_tracked(self, path: PathLike) -> bool:
        """Check whether a document exists in HEAD's tree."""
        head = self._head_commit()
        if head is None:
            return False
        try:
            head.tree / self._relative(path)
        except KeyError:
            return False
        return True

    def current_user(self) -> Optional[Tuple[str, str]]:
        """Return the configured (name, email) identity, None if unset."""
        try:
            reader = self.repo.config_reader()
            name = reader.get_value("user", "name", default="")
            email = reader.get_value("user", "email", default="")
        except Exception as e:
            logger.debug("git_identity_unavailable", error=str(e))
            return None

        name = str(name).strip()
        if not name:
            return None
        return name, str(email).strip()

    def _iter_revisions(self, rel_path: str) -> Iterator[Revision]:
        head = self._head_commit()
        if head is None:
            return

        kwargs = {"reverse": True}
        if self.config.max_revisions:
            kwargs["max_count"] = self.config.max_revisions
        if self.config.git_timeout_seconds is not None:
            kwargs["kill_after_timeout"] = self.config.git_timeout_seconds

        # Raises GitCommandError when git is killed after the timeout
        output = self.repo.git.rev_list(head.hexsha, "--", rel_path, **kwargs)
        for sha in output.split():
            commit = self.repo.commit(sha)
            yield Revision(
                commit_id=commit.hexsha,
                author=commit.author.name or "unknown",
                email=commit.author.email or "",
                timestamp=datetime.fromtimestamp(commit.authored_date),
                content=self._read_blob(commit, rel_path),
            )

    def _read_blob(self, commit: Commit, rel_path: str) -> Optional[str]:
        try:
            blob = commit.tree / rel_path
        except KeyError:
            # File doesn't exist in this commit
            return None

        if blob.type != "blob" or blob.size > self.config.max_file_size_bytes:
            return None

        try:
            return blob.data_stream.read().decode("utf-8")
        except (UnicodeDecodeError, ValueError, git.exc.GitError) as e:
            logger.warning(
                "revision_unreadable",
                commit=commit.hexsha[:7],
                path=rel_path,
                error=str(e),
            )
            return None

    def _head_commit(self) -> Optional[Commit]:
        try:
            return self.repo.head.commit
        except ValueError:
            # Repository without any commit yet
            return None

    def _relative(self, path: PathLike) -> str:
        path = Path(path)
        if path.is_absolute():
            try:
                path = path.resolve().relative_to(self.root.resolve())
            except ValueError as e:
                raise ValueError(f"Path is outside the repository: {path}") from e
        return path.as_posix()
