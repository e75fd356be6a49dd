"""
Plant identification history.

Keeps the most recent identifications as a single JSON file, newest first,
capped at IDENTIFICATION_HISTORY_LIMIT entries (oldest dropped). Never raises:
read failures return an empty history, write failures return None/False.
"""
import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from pydantic import TypeAdapter, ValidationError

from gogarden.schemas.identification import IdentificationHistoryCreate, IdentificationHistoryEntry
from gogarden.services.file_store import FileStore, LocalFileStore

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 50

_entries_adapter = TypeAdapter(list[IdentificationHistoryEntry])


class IdentificationHistoryStore:
    def __init__(self, path: Path, limit: int = DEFAULT_LIMIT, files: Optional[FileStore] = None) -> None:
        self.path = Path(path)
        self.limit = limit
        self._files: FileStore = files if files is not None else LocalFileStore()

    async def load(self) -> list[IdentificationHistoryEntry]:
        try:
            info = await self._files.stat(self.path)
            if not info.exists:
                return []
            raw = await self._files.read_bytes(self.path)
            return _entries_adapter.validate_json(raw)
        except (OSError, ValidationError) as exc:
            logger.error("identification history: could not load %s: %s", self.path, exc)
            return []

    async def _save(self, entries: list[IdentificationHistoryEntry]) -> None:
        await self._files.write_bytes(self.path, _entries_adapter.dump_json(entries))

    async def add(self, result: IdentificationHistoryCreate) -> Optional[IdentificationHistoryEntry]:
        """Record an identification at the head of the history. Returns the stored entry."""
        entry = IdentificationHistoryEntry(
            id=uuid.uuid4().hex,
            date=datetime.now(timezone.utc),
            plant_name=result.plant_name or "Unknown",
            scientific_name=result.scientific_name or "",
            confidence=result.confidence,
            image_uri=result.image_uri,
            matched_in_database=result.matched_in_database,
        )

        history = await self.load()
        history.insert(0, entry)
        del history[self.limit:]

        try:
            await self._save(history)
        except OSError as exc:
            logger.error("identification history: could not save %s: %s", self.path, exc)
            return None
        return entry

    async def clear(self) -> bool:
        try:
            await self._files.delete(self.path)
        except OSError as exc:
            logger.error("identification history: could not clear %s: %s", self.path, exc)
            return False
        return True
