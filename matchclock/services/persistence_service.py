"""
Persistence service for the matchclock core.

This module saves and loads in-memory store snapshots and session resume
pointers to/from JSON files.
"""
import datetime
import json
import os
from typing import Optional

from ..models import (
    Game, GamePlan, LineupAssignment, PlannedRotation, PlayTimeRecord,
    PlayerAvailability, SessionResumePointer, Substitution
)
from ..utils import get_logger, now_ts
from .repository import InMemoryRepository

logger = get_logger(__name__)

SNAPSHOT_FORMAT_VERSION = 1

MODELS = {
    model.__name__: model
    for model in (
        Game, GamePlan, PlannedRotation, LineupAssignment,
        PlayTimeRecord, Substitution, PlayerAvailability,
    )
}


def _ensure_parent(file_path: str) -> None:
    directory = os.path.dirname(file_path)
    if directory and not os.path.exists(directory):
        os.makedirs(directory)


class PersistenceService:
    """
    Service for persisting store snapshots to JSON files.

    Open play time records are written as they are: the interval stays open
    and the game can continue after loading.
    """

    @staticmethod
    def save_repository_to_file(repository: InMemoryRepository, file_path: str) -> None:
        """
        Save every entity in the store to a JSON file.

        Args:
            repository: The store to snapshot
            file_path: Path where to save the file

        Raises:
            OSError: If the file cannot be written
        """
        snapshot = {
            "version": SNAPSHOT_FORMAT_VERSION,
            "savedAt": now_ts(),
            "entities": repository.dump(),
        }
        _ensure_parent(file_path)
        with open(file_path, "w", encoding="utf-8") as f:
            json.dump(snapshot, f, indent=2)
        logger.info("Saved store snapshot", path=file_path)

    @staticmethod
    def load_repository_from_file(file_path: str,
                                  repository: Optional[InMemoryRepository] = None) -> InMemoryRepository:
        """
        Load a store snapshot from a JSON file.

        Args:
            file_path: Path to the JSON file to load
            repository: Store to load into; a new one is created when omitted

        Returns:
            The populated store

        Raises:
            FileNotFoundError: If file doesn't exist
            json.JSONDecodeError: If file contains invalid JSON
            ValueError: If the JSON is not a store snapshot
        """
        if not os.path.exists(file_path):
            raise FileNotFoundError(f"Snapshot file not found: {file_path}")

        with open(file_path, "r", encoding="utf-8") as f:
            data = json.load(f)

        if not isinstance(data, dict) or not isinstance(data.get("entities"), dict):
            raise ValueError(f"Not a store snapshot: {file_path}")

        repository = repository if repository is not None else InMemoryRepository()
        repository.load(data["entities"], MODELS)
        logger.info("Loaded store snapshot", path=file_path)
        return repository

    @staticmethod
    def auto_save(repository: InMemoryRepository, auto_save_dir: str = "autosave") -> Optional[str]:
        """
        Automatically save the store with a timestamp.

        Returns:
            Path to saved file, or None if save failed
        """
        timestamp = datetime.datetime.now().strftime("%Y%m%d_%H%M%S")
        file_path = os.path.join(auto_save_dir, f"store_autosave_{timestamp}.json")
        try:
            PersistenceService.save_repository_to_file(repository, file_path)
        except OSError as exc:
            logger.warning("Auto-save failed", path=file_path, error=str(exc))
            return None
        return file_path

    @staticmethod
    def get_recent_saves(save_dir: str = ".", limit: int = 10) -> list:
        """
        Get list of recent save files.

        Returns:
            List of tuples (filename, modification_time) sorted by newest first
        """
        if not os.path.exists(save_dir):
            return []

        try:
            json_files = []
            for filename in os.listdir(save_dir):
                if filename.endswith(".json"):
                    file_path = os.path.join(save_dir, filename)
                    if os.path.isfile(file_path):
                        json_files.append((filename, os.path.getmtime(file_path)))
            json_files.sort(key=lambda x: x[1], reverse=True)
            return json_files[:limit]
        except OSError:
            return []

    # ---------- Session resume pointer ---------- #

    @staticmethod
    def save_session_pointer(pointer: SessionResumePointer, file_path: str) -> None:
        _ensure_parent(file_path)
        with open(file_path, "w", encoding="utf-8") as f:
            f.write(pointer.to_json())

    @staticmethod
    def load_session_pointer(file_path: str) -> Optional[SessionResumePointer]:
        """Read a pointer file; a missing or unreadable file yields None."""
        try:
            with open(file_path, "r", encoding="utf-8") as f:
                return SessionResumePointer.from_json(f.read())
        except FileNotFoundError:
            return None
        except OSError as exc:
            logger.warning("Could not read session pointer", path=file_path, error=str(exc))
            return None

    @staticmethod
    def clear_session_pointer(file_path: str) -> None:
        if os.path.exists(file_path):
            os.remove(file_path)
