"""Debounced single-field autosave.

Rapid edits to the same field of the same document collapse into one
update mutation, written through DataManager.batch_save() so the cached
dataset is invalidated like any other write.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from loguru import logger

from ..models.mutation import BatchResult, MutationOperation, MutationRequest
from ..utils.scheduling import Debouncer, debounce
from .manager import DataManager


class AutoSaver:
    """Debounces field edits per (document, field) and saves them."""

    def __init__(
        self,
        manager: DataManager,
        collection: str,
        delay_ms: Optional[float] = None,
        draft_prefix: Optional[str] = None,
        timestamp_field: Optional[str] = "lastModified",
    ):
        """Initialize autosaver.

        Args:
            manager: Data manager writes go through
            collection: Collection the edited documents live in
            delay_ms: Quiet period before a field is saved (the manager's
                autosave_delay_ms when None)
            draft_prefix: Documents whose ID starts with this are not saved
                (the manager's draft_prefix when None)
            timestamp_field: Field stamped with the save time (None to skip)
        """
        self._manager = manager
        self.collection = collection
        scheduling = manager.scheduling
        self.delay_ms = scheduling.autosave_delay_ms if delay_ms is None else delay_ms
        self.draft_prefix = scheduling.draft_prefix if draft_prefix is None else draft_prefix
        self.timestamp_field = timestamp_field
        self._debouncers: Dict[Tuple[str, str], Debouncer] = {}
        self.last_result: Optional[BatchResult] = None
        self.saves = 0

    def schedule(self, document_id: str, field: str, value: Any) -> bool:
        """Queue a field edit.

        Args:
            document_id: Edited document
            field: Edited field
            value: New value

        Returns:
            False if the document is a draft and will not be saved
        """
        if self.draft_prefix and document_id.startswith(self.draft_prefix):
            return False

        key = (document_id, field)
        debouncer = self._debouncers.get(key)
        if debouncer is None:
            debouncer = debounce(self._save, self.delay_ms)
            self._debouncers[key] = debouncer
        debouncer(document_id, field, value)
        return True

    async def _save(self, document_id: str, field: str, value: Any) -> None:
        payload = {field: value}
        if self.timestamp_field:
            payload[self.timestamp_field] = datetime.now(timezone.utc).isoformat()

        mutation = MutationRequest(
            target_collection=self.collection,
            document_id=document_id,
            operation=MutationOperation.UPDATE,
            payload=payload,
        )

        self.saves += 1
        result = await self._manager.batch_save([mutation])
        self.last_result = result

        if result.ok:
            logger.info("Auto-saved {} for {}/{}", field, self.collection, document_id)
        else:
            logger.warning(
                "Auto-save of {} for {}/{} failed: {}",
                field,
                self.collection,
                document_id,
                result.failed[0].cause,
            )

    @property
    def pending(self) -> int:
        return sum(1 for d in self._debouncers.values() if d.pending)

    async def flush(self) -> None:
        """Save every pending edit now and wait for the writes."""
        for debouncer in self._debouncers.values():
            debouncer.flush()
        for debouncer in self._debouncers.values():
            await debouncer.wait()

    def cancel(self) -> None:
        """Drop every pending edit."""
        for debouncer in self._debouncers.values():
            debouncer.cancel()
        self._debouncers.clear()
