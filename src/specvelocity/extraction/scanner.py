"""Discovery of spec task documents inside a repository."""

from pathlib import Path
from typing import List, Union

import structlog

from specvelocity.models import SpecDocument

logger = structlog.get_logger(__name__)


def discover_documents(
    root: Union[str, Path],
    specs_dir: str = ".kiro/specs",
    filename: str = "tasks.md",
) -> List[SpecDocument]:
    """Find every spec directory under ``root/specs_dir`` holding a task document.

    Args:
        root: Repository or workspace root
        specs_dir: Spec directory relative to the root
        filename: Task document name inside each spec directory

    Returns:
        SpecDocument objects sorted by spec id (empty if the directory is missing)
    """
    root = Path(root).resolve()
    specs_path = root / specs_dir

    if not specs_path.is_dir():
        logger.info("specs_dir_missing", path=str(specs_path))
        return []

    documents = []
    for entry in sorted(specs_path.iterdir()):
        if not entry.is_dir():
            continue
        tasks_path = entry / filename
        if not tasks_path.is_file():
            logger.debug("spec_without_tasks", spec_id=entry.name)
            continue
        documents.append(SpecDocument(spec_id=entry.name, path=tasks_path, repo_root=root))

    logger.info("specs_discovered", root=str(root), count=len(documents))
    return documents
