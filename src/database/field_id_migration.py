"""
Field identifier migration.

Rewrites exported field documents so that every ``(form_id, field_id)``
pair is stored in the canonical dot dialect. Documents may use either the
camelCase export keys (``formId``, ``fieldId``, ``returnId``, ``_id``) or
the snake_case column names.

A plan is always computed first. Two documents of the same return that
canonicalize to the same key are a collision; collisions are reported and
block ``apply``.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from domain.field_ids import compose_key, split_key, to_colon, to_underscore

logger = logging.getLogger(__name__)

_FORM_KEYS = ("formId", "form_id")
_FIELD_KEYS = ("fieldId", "field_id")
_RETURN_KEYS = ("returnId", "return_id")
_ID_KEYS = ("_id", "id")


def _read(doc: Dict[str, Any], keys: Sequence[str]) -> Tuple[Optional[str], str]:
    for key in keys:
        if key in doc:
            value = doc[key]
            return key, "" if value is None else str(value)
    return None, ""


@dataclass
class FieldIdMapping:
    """One proposed rename."""
    doc_id: Optional[str]
    return_id: str
    old_form_id: str
    old_field_id: str
    new_form_id: str
    new_field_id: str
    underscore_key: str
    colon_key: str


@dataclass
class MigrationReport:
    input_file: Optional[str]
    count: int = 0
    mappings: List[FieldIdMapping] = field(default_factory=list)
    collisions: List[Dict[str, Any]] = field(default_factory=list)
    unresolved: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def proposed_changes(self) -> int:
        return len(self.mappings)

    @property
    def can_apply(self) -> bool:
        return not self.collisions

    def to_dict(self) -> Dict[str, Any]:
        return {
            "input_file": self.input_file,
            "count": self.count,
            "proposed_changes": self.proposed_changes,
            "mappings": [asdict(m) for m in self.mappings],
            "collisions": self.collisions,
            "unresolved": self.unresolved,
        }


class FieldIdMigrationError(ValueError):
    """Raised when a migration cannot be applied."""
    pass


class FieldIdMigration:
    """Plans and applies canonicalization of exported field documents."""

    def __init__(self, documents: List[Dict[str, Any]], input_file: Optional[str] = None):
        if not isinstance(documents, list):
            raise FieldIdMigrationError("Input must be a list of field documents")
        self.documents = documents
        self.input_file = input_file

    def plan(self) -> MigrationReport:
        """Compute proposed renames, collisions and unresolvable documents."""
        report = MigrationReport(input_file=self.input_file, count=len(self.documents))
        seen: Dict[Tuple[str, str, str], Optional[str]] = {}

        for doc in self.documents:
            _, old_form = _read(doc, _FORM_KEYS)
            _, old_field = _read(doc, _FIELD_KEYS)
            _, return_id = _read(doc, _RETURN_KEYS)
            _, doc_id = _read(doc, _ID_KEYS)
            doc_id = doc_id or None

            new_form, new_field = split_key(compose_key(old_form, old_field))
            if not new_form or not new_field:
                report.unresolved.append({
                    "doc_id": doc_id,
                    "form_id": old_form,
                    "field_id": old_field,
                })
                continue

            composite = (return_id, new_form, new_field)
            if composite in seen:
                report.collisions.append({
                    "return_id": return_id,
                    "key": f"{new_form}.{new_field}",
                    "doc_ids": [seen[composite], doc_id],
                })
            else:
                seen[composite] = doc_id

            if (new_form, new_field) != (old_form, old_field):
                report.mappings.append(FieldIdMapping(
                    doc_id=doc_id,
                    return_id=return_id,
                    old_form_id=old_form,
                    old_field_id=old_field,
                    new_form_id=new_form,
                    new_field_id=new_field,
                    underscore_key=to_underscore(f"{old_form}.{old_field}"),
                    colon_key=to_colon(old_form, old_field),
                ))

        logger.info(
            f"Field id migration planned: {report.proposed_changes} of {report.count} documents change",
            extra={"extra_data": {
                "collisions": len(report.collisions),
                "unresolved": len(report.unresolved),
            }},
        )
        return report

    def apply(self, report: Optional[MigrationReport] = None) -> List[Dict[str, Any]]:
        """
        Return migrated copies of the documents.

        Raises:
            FieldIdMigrationError: If the plan has collisions
        """
        report = report or self.plan()
        if not report.can_apply:
            raise FieldIdMigrationError(
                f"Refusing to apply: {len(report.collisions)} composite key collision(s)"
            )

        migrated = []
        for doc in self.documents:
            form_key, old_form = _read(doc, _FORM_KEYS)
            field_key, old_field = _read(doc, _FIELD_KEYS)
            new_form, new_field = split_key(compose_key(old_form, old_field))

            copy = dict(doc)
            if new_form and new_field:
                copy[form_key or "form_id"] = new_form
                copy[field_key or "field_id"] = new_field
            migrated.append(copy)
        return migrated
