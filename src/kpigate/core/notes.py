"""
Batch save of the pipeline note list.

The dashboard edits the note list as a whole and submits the desired
ordered state. Saving runs as independent single-row writes:

1. delete every stored note missing from the desired list;
2. create or update the desired notes in order, setting ``order`` to
   the list index.

Deletes always run before creates, so retrying a partially failed save
cannot resurrect a removed note. There is no atomicity across rows: a
failed write is reported in the result and the remaining writes still
run, so the caller can resubmit the same list.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence
from uuid import uuid4

import structlog

from ..models.requests import NoteInput
from .exceptions import StorageFailure, ValidationError
from .metrics import MetricsCollector
from .storage import StorageGateway

logger = structlog.get_logger(__name__)

NOTE_TABLE = "pipeline_note"


@dataclass
class NoteSyncResult:
    """Per-note outcome of a batch save."""
    deleted: List[str] = field(default_factory=list)
    created: List[str] = field(default_factory=list)
    updated: List[str] = field(default_factory=list)
    failed: List[Dict[str, str]] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.failed

    def to_dict(self) -> Dict[str, object]:
        return {
            "success": self.success,
            "deleted": self.deleted,
            "created": self.created,
            "updated": self.updated,
            "failed": self.failed,
        }


async def sync_pipeline_notes(
    storage: StorageGateway,
    desired: Sequence[NoteInput],
    metrics: Optional[MetricsCollector] = None,
) -> NoteSyncResult:
    """Bring the stored note list in line with ``desired``."""
    ids = [note.id or str(uuid4()) for note in desired]
    if len(set(ids)) != len(ids):
        raise ValidationError("Duplicate note ids in request")

    # A failure here aborts before anything is written
    existing = await storage.list_rows(NOTE_TABLE, ordering=("order", False))
    existing_ids = [row["id"] for row in existing]
    wanted = set(ids)
    result = NoteSyncResult()

    def record_failure(note_id: str, action: str, exc: StorageFailure) -> None:
        logger.warning("Pipeline note write failed", id=note_id, action=action, error=str(exc))
        if metrics is not None:
            metrics.record_note_sync_failure(action)
        result.failed.append({"id": note_id, "action": action, "error": str(exc)})

    for note_id in existing_ids:
        if note_id in wanted:
            continue
        try:
            await storage.delete_row(NOTE_TABLE, note_id)
            result.deleted.append(note_id)
        except StorageFailure as e:
            record_failure(note_id, "delete", e)

    stored = set(existing_ids)
    for index, (note_id, note) in enumerate(zip(ids, desired)):
        values = {"content": note.content, "order": index}
        try:
            if note_id in stored and await storage.update_row(NOTE_TABLE, note_id, values) is not None:
                result.updated.append(note_id)
                continue
            await storage.create_row(NOTE_TABLE, {"id": note_id, **values})
            result.created.append(note_id)
        except StorageFailure as e:
            record_failure(note_id, "upsert", e)

    logger.info(
        "Pipeline notes saved",
        deleted=len(result.deleted),
        created=len(result.created),
        updated=len(result.updated),
        failed=len(result.failed),
    )
    return result
