"""Audit Trail Recorder.

Writes hash-chained audit entries for field changes, engine writes and
lock changes. Recording is best-effort: a failure is logged and swallowed,
so the primary mutation never fails because its audit record could not be
persisted.
"""

import logging
import time
from typing import Any, Callable, Dict, List, Optional

from domain.aggregates import AuditEntry
from domain.events import EventType
from domain.repositories import IFieldStore
from domain.value_objects import Actor, FieldValue, TriggerSource, value_to_json

from .hash_chain import ChainVerification, seal_entry, verify_chain

logger = logging.getLogger(__name__)


def epoch_millis() -> int:
    return int(time.time() * 1000)


class AuditRecorder:
    """
    Appends sealed audit entries to a return's chain.

    Usage:
        recorder = AuditRecorder(uow.store)
        await recorder.record_field_change(actor, return_id, "W2", "box1",
                                           previous, new, EventType.FIELD_UPDATE)
    """

    def __init__(
        self,
        store: IFieldStore,
        enabled: bool = True,
        clock: Callable[[], int] = epoch_millis,
    ):
        self.store = store
        self.enabled = enabled
        self._clock = clock

    async def record(self, entry: AuditEntry) -> Optional[AuditEntry]:
        """
        Seal and insert one entry.

        Returns:
            The stored entry, or None when disabled or the write failed
        """
        if not self.enabled:
            return None
        try:
            previous_hash = await self.store.get_latest_audit_hash(entry.return_id)
            sealed = seal_entry(entry, previous_hash)
            await self.store.insert_audit(sealed)
            return sealed
        except Exception as e:
            logger.error(
                f"Failed to record audit entry {entry.action} for return {entry.return_id}: {e}",
                exc_info=True,
            )
            return None

    async def record_field_change(
        self,
        actor: Actor,
        return_id: str,
        form_id: str,
        field_id: str,
        previous_value: Optional[FieldValue],
        new_value: Optional[FieldValue],
        action: EventType = EventType.FIELD_UPDATE,
        trigger_source: TriggerSource = TriggerSource.MANUAL,
        reason: Optional[str] = None,
    ) -> Optional[AuditEntry]:
        """Record a field write with its before and after values."""
        entry = AuditEntry(
            return_id=return_id,
            form_id=form_id,
            field_id=field_id,
            user_id=actor.user_id,
            user_name=actor.name,
            action=action.value,
            previous_value=value_to_json(previous_value) if previous_value is not None else None,
            new_value=value_to_json(new_value) if new_value is not None else None,
            trigger_source=trigger_source.value,
            reason=reason,
            session_id=actor.session_id,
            ip_address=actor.ip_address,
            created_at=self._clock(),
        )
        return await self.record(entry)

    async def record_return_event(
        self,
        actor: Actor,
        return_id: str,
        action: EventType,
        reason: Optional[str] = None,
        trigger_source: TriggerSource = TriggerSource.MANUAL,
    ) -> Optional[AuditEntry]:
        """Record a return-level action (lock, unlock, calculation run)."""
        entry = AuditEntry(
            return_id=return_id,
            user_id=actor.user_id,
            user_name=actor.name,
            action=action.value,
            trigger_source=trigger_source.value,
            reason=reason,
            session_id=actor.session_id,
            ip_address=actor.ip_address,
            created_at=self._clock(),
        )
        return await self.record(entry)

    async def verify(self, return_id: str) -> ChainVerification:
        """Verify the stored chain of a return."""
        entries = await self.store.get_audit_entries(return_id)
        return verify_chain(entries)

    async def history(self, return_id: str, form_id: Optional[str] = None,
                      field_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """Audit entries of a return as dicts, optionally narrowed to one field."""
        entries = await self.store.get_audit_entries(return_id)
        return [
            e.model_dump(mode="json") for e in entries
            if (form_id is None or e.form_id == form_id)
            and (field_id is None or e.field_id == field_id)
        ]
