"""Persistent storage for the velocity aggregate.

The whole store is kept in a single JSON file (``velocity.json``) inside the
state directory and rewritten atomically after every change.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Optional

import structlog
from pydantic import ValidationError

from specvelocity.models.velocity import WEEKDAYS, VelocityStore

logger = structlog.get_logger(__name__)

STATE_FILENAME = "velocity.json"


def is_valid_store_data(data: Any) -> bool:
    """Check the raw structure of a persisted store before parsing it.

    Requires the bucket lists, the spec activity map and a complete
    day-of-week map with numeric counters.
    """
    if not isinstance(data, dict):
        return False
    if not isinstance(data.get("weekly_tasks"), list):
        return False
    if not isinstance(data.get("weekly_specs"), list):
        return False
    if not isinstance(data.get("spec_activity"), dict):
        return False

    day_of_week = data.get("day_of_week_tasks")
    if not isinstance(day_of_week, dict):
        return False
    return all(
        isinstance(day_of_week.get(day), int) and not isinstance(day_of_week.get(day), bool)
        for day in WEEKDAYS
    )


class StateManager:
    """Loads and saves the VelocityStore for one workspace.

    Corrupted or structurally invalid state is replaced with an empty store
    instead of raising.
    """

    def __init__(self, state_dir: Optional[Path] = None):
        """Initialize the state manager.

        Args:
            state_dir: Directory to store state file. Defaults to ~/.specvelocity/
        """
        if state_dir is None:
            state_dir = Path.home() / ".specvelocity"

        self.state_dir = Path(state_dir)
        self.state_file = self.state_dir / STATE_FILENAME
        self.recovered_from_corruption = False

    def _ensure_state_dir(self) -> None:
        """Ensure the state directory exists."""
        self.state_dir.mkdir(parents=True, exist_ok=True)

    def load(self) -> Optional[VelocityStore]:
        """Load the persisted store.

        Returns:
            The stored VelocityStore, or None when nothing valid is stored
        """
        self.recovered_from_corruption = False
        if not self.state_file.exists():
            return None

        try:
            with open(self.state_file, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.warning("state_unreadable", path=str(self.state_file), error=str(e))
            self.recovered_from_corruption = True
            return None

        if not is_valid_store_data(data):
            logger.warning("state_structure_invalid", path=str(self.state_file))
            self.recovered_from_corruption = True
            return None

        try:
            return VelocityStore.model_validate(data)
        except ValidationError as e:
            logger.warning(
                "state_validation_failed",
                path=str(self.state_file),
                errors=e.error_count(),
            )
            self.recovered_from_corruption = True
            return None

    def load_or_create(self) -> VelocityStore:
        """Load existing state or create a new, empty store.

        Returns:
            VelocityStore object
        """
        store = self.load()
        if store is None:
            if self.recovered_from_corruption:
                logger.warning("state_reset_after_corruption", path=str(self.state_file))
            store = VelocityStore()
        return store

    def save(self, store: VelocityStore) -> None:
        """Save the store to disk using atomic write.

        Uses a temporary file and rename to ensure atomicity.

        Raises:
            OSError: If the state file cannot be written
        """
        self._ensure_state_dir()

        # Write to temporary file first
        fd, temp_path = tempfile.mkstemp(
            dir=self.state_dir, prefix=".velocity_", suffix=".json.tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(store.model_dump(mode="json"), f, indent=2)

            # Atomic rename
            os.replace(temp_path, self.state_file)
        except Exception:
            # Clean up temp file on error
            try:
                os.unlink(temp_path)
            except OSError:
                pass
            raise

    def clear(self) -> bool:
        """Delete the persisted state.

        Returns:
            True if a state file was deleted, False if none existed
        """
        try:
            self.state_file.unlink()
        except FileNotFoundError:
            return False
        return True
