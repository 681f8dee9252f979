"""
Field Update Service - the user-facing write path.

Canonicalizes the requested identifier, applies the value (through the PII
boundary), records a hash-chained audit entry and appends an event to the
return's event log. Recalculation is a separate step; use
``update_field_and_recalculate`` to run both in one unit of work.
"""

from dataclasses import dataclass
from typing import Any, Optional

from audit.audit_trail import AuditRecorder
from domain.aggregates import Field, FieldPatch, ReturnPatch, utc_now
from domain.events import EventType, FieldUpdated, ReturnLockChanged
from domain.exceptions import FieldNotFound
from domain.field_ids import resolve_key
from domain.repositories import IUnitOfWork
from domain.value_objects import (
    Actor,
    FieldUpdateMeta,
    FieldValue,
    TriggerSource,
    value_to_json,
    wrap_value,
)
from security.encryption import PassthroughTransformer, ValueTransformer

from .logging_config import get_logger
from .recalculation_service import (
    RecalculationResult,
    RecalculationService,
    UnitOfWorkFactory,
    load_mutable_return,
    load_return,
)

logger = get_logger(__name__)


@dataclass
class FieldUpdateResult:
    """Outcome of a single user write."""
    return_id: str
    form_id: str
    field_id: str
    previous_value: FieldValue
    new_value: FieldValue
    overridden: bool
    estimated: bool
    recalculation: Optional[RecalculationResult] = None

    @property
    def key(self) -> str:
        return f"{self.form_id}.{self.field_id}"


class FieldUpdateService:
    """
    Applies user edits to fields.

    A user write is the only way ``overridden`` changes: it is set or
    cleared only when the request carries ``is_override`` explicitly.
    """

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        transformer: Optional[ValueTransformer] = None,
        recalculation: Optional[RecalculationService] = None,
        audit_enabled: bool = True,
    ):
        """
        Initialize FieldUpdateService.

        Args:
            uow_factory: Callable returning a fresh unit of work
            transformer: PII boundary applied before values are stored
            recalculation: Service used by update_field_and_recalculate
            audit_enabled: Record hash-chained audit entries
        """
        self._uow_factory = uow_factory
        self._transformer = transformer or PassthroughTransformer()
        self._recalculation = recalculation or RecalculationService(
            uow_factory, transformer=self._transformer, audit_enabled=audit_enabled
        )
        self._audit_enabled = audit_enabled

    async def apply_field_update(
        self,
        actor: Actor,
        return_id: str,
        form_id: str,
        field_id: str,
        value: Any,
        meta: Optional[FieldUpdateMeta] = None,
    ) -> FieldUpdateResult:
        """
        Write one field value in its own unit of work.

        Raises:
            InvalidFieldIdentifier: If the identifier has an empty part
            ReturnNotFound: If the return does not exist
            ReturnLocked: If the return is locked
            FieldNotFound: If the return has no such field
        """
        async with self._uow_factory() as uow:
            return await self.apply_field_update_in(
                uow, actor, return_id, form_id, field_id, value, meta
            )

    async def apply_field_update_in(
        self,
        uow: IUnitOfWork,
        actor: Actor,
        return_id: str,
        form_id: str,
        field_id: str,
        value: Any,
        meta: Optional[FieldUpdateMeta] = None,
    ) -> FieldUpdateResult:
        """Write one field value inside a unit of work owned by the caller."""
        meta = meta or FieldUpdateMeta()
        key = resolve_key(form_id, field_id)

        await load_mutable_return(uow, return_id)

        store = uow.store
        target = await store.get_field(return_id, key.form_id, key.field_id)
        if target is None:
            raise FieldNotFound(return_id, key.form_id, key.field_id)

        previous_value = target.value
        new_value = self._transformer.transform(wrap_value(value))

        patch_data = {
            "value": new_value,
            "last_modified_by": actor.user_id,
            "updated_at": utc_now(),
        }
        if meta.is_override is not None:
            patch_data["overridden"] = meta.is_override
        if meta.is_estimated is not None:
            patch_data["estimated"] = meta.is_estimated
        patch = FieldPatch(**patch_data)

        await store.patch_field(target.id, patch)
        updated: Field = target.apply(patch)

        action = EventType.FIELD_OVERRIDE if meta.is_override is True else EventType.FIELD_UPDATE
        await AuditRecorder(store, enabled=self._audit_enabled).record_field_change(
            actor,
            return_id,
            key.form_id,
            key.field_id,
            previous_value=previous_value,
            new_value=new_value,
            action=action,
            trigger_source=meta.trigger_source,
            reason=meta.reason,
        )

        event = FieldUpdated(
            event_type=action,
            return_id=return_id,
            form_id=key.form_id,
            field_id=key.field_id,
            user_id=actor.user_id,
            previous_value=value_to_json(previous_value),
            new_value=value_to_json(new_value),
            overridden=updated.overridden,
            estimated=updated.estimated,
            metadata={"trigger_source": meta.trigger_source.value},
        )
        await store.append_event(event)
        uow.collect_event(event)

        logger.info(
            f"Field updated: {key.canonical}",
            extra={'extra_data': {
                'return_id': return_id,
                'user_id': actor.user_id,
                'action': action.value,
                'overridden': updated.overridden,
            }},
        )

        return FieldUpdateResult(
            return_id=return_id,
            form_id=key.form_id,
            field_id=key.field_id,
            previous_value=previous_value,
            new_value=new_value,
            overridden=updated.overridden,
            estimated=updated.estimated,
        )

    async def update_field_and_recalculate(
        self,
        actor: Actor,
        return_id: str,
        form_id: str,
        field_id: str,
        value: Any,
        meta: Optional[FieldUpdateMeta] = None,
    ) -> FieldUpdateResult:
        """
        Write a field and recalculate the return as one unit of work.

        If the recalculation fails the field write is rolled back too.
        """
        async with self._uow_factory() as uow:
            result = await self.apply_field_update_in(
                uow, actor, return_id, form_id, field_id, value, meta
            )
            result.recalculation = await self._recalculation.recalculate_in(uow, return_id)
            return result

    async def set_return_lock(
        self,
        actor: Actor,
        return_id: str,
        locked: bool,
        reason: Optional[str] = None,
    ) -> bool:
        """
        Lock or unlock a return.

        Returns:
            True if the lock state changed

        Raises:
            ReturnNotFound: If the return does not exist
        """
        async with self._uow_factory() as uow:
            tax_return = await load_return(uow, return_id)
            if tax_return.is_locked == locked:
                return False

            now = utc_now()
            await uow.store.patch_return(return_id, ReturnPatch(
                is_locked=locked,
                locked_at=now if locked else None,
                locked_by=actor.user_id if locked else None,
                updated_at=now,
            ))

            action = EventType.RETURN_LOCKED if locked else EventType.RETURN_UNLOCKED
            await AuditRecorder(uow.store, enabled=self._audit_enabled).record_return_event(
                actor,
                return_id,
                action,
                reason=reason,
                trigger_source=TriggerSource.FILING if locked else TriggerSource.MANUAL,
            )

            event = ReturnLockChanged(
                event_type=action,
                return_id=return_id,
                locked=locked,
                user_id=actor.user_id,
                reason=reason,
            )
            await uow.store.append_event(event)
            uow.collect_event(event)

            logger.info(
                f"Return {'locked' if locked else 'unlocked'}: {return_id}",
                extra={'extra_data': {'user_id': actor.user_id, 'reason': reason}},
            )
            return True
