"""
Raw value cascade along the static dependency graph.

Copies a source field's value to every transitive dependent. This is an
auxiliary path: the calculation engine stays authoritative, and the next
recalculation overwrites any engine-owned field the cascade touched.
Overridden and missing targets are skipped; locked returns are rejected.
"""

from dataclasses import dataclass, field
from typing import Any, List, Optional

from audit.audit_trail import AuditRecorder
from domain.aggregates import FieldPatch, utc_now
from domain.dependency_graph import DEFAULT_DEPENDENCY_GRAPH, DependencyGraph
from domain.events import EventType
from domain.exceptions import FieldNotFound
from domain.field_ids import resolve_key, split_key
from domain.value_objects import SYSTEM_ACTOR, Actor, TriggerSource, wrap_value

from .logging_config import get_logger
from .recalculation_service import UnitOfWorkFactory, load_mutable_return

logger = get_logger(__name__)


@dataclass
class CascadeResult:
    source_key: str
    written: List[str] = field(default_factory=list)
    skipped_override: List[str] = field(default_factory=list)
    missing: List[str] = field(default_factory=list)


class RawValueCascadeService:
    """Pushes raw values down the dependency graph, one unit of work per call."""

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        graph: DependencyGraph = DEFAULT_DEPENDENCY_GRAPH,
        audit_enabled: bool = True,
    ):
        self._uow_factory = uow_factory
        self._graph = graph
        self._audit_enabled = audit_enabled

    async def cascade(
        self,
        return_id: str,
        form_id: str,
        field_id: str,
        value: Any = None,
        actor: Optional[Actor] = None,
    ) -> CascadeResult:
        """
        Cascade a source field's value to its dependents.

        When ``value`` is omitted the source field's stored value is used.

        Raises:
            ReturnNotFound: If the return does not exist
            ReturnLocked: If the return is locked
            FieldNotFound: If ``value`` is omitted and the source field is missing
        """
        actor = actor or SYSTEM_ACTOR
        source = resolve_key(form_id, field_id)
        result = CascadeResult(source_key=source.canonical)

        async with self._uow_factory() as uow:
            await load_mutable_return(uow, return_id)
            store = uow.store

            if value is None:
                source_field = await store.get_field(return_id, source.form_id, source.field_id)
                if source_field is None:
                    raise FieldNotFound(return_id, source.form_id, source.field_id)
                new_value = source_field.value
            else:
                new_value = wrap_value(value)

            audit = AuditRecorder(store, enabled=self._audit_enabled)
            now = utc_now()

            for target_key in self._graph.walk(source.canonical):
                target_form, target_field = split_key(target_key)
                target = await store.get_field(return_id, target_form, target_field)
                if target is None:
                    result.missing.append(target_key)
                    continue
                if target.overridden:
                    logger.debug(f"Cascade skipping overridden field: {target_key}")
                    result.skipped_override.append(target_key)
                    continue

                await store.patch_field(target.id, FieldPatch.engine_write(new_value, at=now))
                result.written.append(target_key)

                await audit.record_field_change(
                    actor,
                    return_id,
                    target_form,
                    target_field,
                    previous_value=target.value,
                    new_value=new_value,
                    action=EventType.FIELD_CALCULATED,
                    trigger_source=TriggerSource.CALCULATION,
                    reason=f"cascade from {source.canonical}",
                )

        logger.info(
            f"Cascade from {source.canonical}: {len(result.written)} written",
            extra={'extra_data': {
                'return_id': return_id,
                'skipped_override': len(result.skipped_override),
                'missing': len(result.missing),
            }},
        )
        return result
