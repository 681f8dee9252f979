"""
Field identifier canonicalization.

Field keys reach the engine in three dialects: dot (``1040.FS``), underscore
(``1040_FS``) and colon (``1040:FS``). Two legacy mapping tables used
different dialects for the same relationships, so keys from different
producers must never be compared without normalizing first.

The canonical form is dot-separated: ``<form>.<field>``.

Examples:
    >>> to_canonical("1040_FS")
    '1040.FS'
    >>> to_canonical("SchC::netProfit")
    'SchC.netProfit'
    >>> split_key("SchC.netProfit")
    ('SchC', 'netProfit')
    >>> split_key("justAField")
    ('', 'justAField')
"""

from __future__ import annotations

import re
from typing import NamedTuple, Tuple

from .exceptions import InvalidFieldIdentifier

SEPARATOR = "."

_ALT_SEPARATORS = re.compile(r"[:_]+")
_DOT_RUNS = re.compile(r"\.+")
_ANY_SEPARATOR = re.compile(r"[.:_]+")


class FieldKey(NamedTuple):
    """Canonical (form_id, field_id) pair."""
    form_id: str
    field_id: str

    @property
    def canonical(self) -> str:
        if not self.form_id:
            return self.field_id
        return f"{self.form_id}{SEPARATOR}{self.field_id}"

    def __str__(self) -> str:
        return self.canonical


def to_canonical(raw: str) -> str:
    """
    Normalize a field key to the dot dialect.

    Every run of ``:`` or ``_`` becomes a single ``.``, then runs of ``.``
    collapse into one. Idempotent.

    Args:
        raw: Key in any dialect

    Returns:
        Canonical key (empty string for empty input)
    """
    if not raw:
        return ""
    return _DOT_RUNS.sub(SEPARATOR, _ALT_SEPARATORS.sub(SEPARATOR, str(raw)))


def split_key(key: str) -> Tuple[str, str]:
    """
    Split a key into (form_id, field_id) on the first separator.

    Never raises: a key without a separator is all field, with an empty form.
    """
    canonical = to_canonical(key)
    form_id, sep, field_id = canonical.partition(SEPARATOR)
    if not sep:
        return "", canonical
    return form_id, field_id


def compose_key(form_id: str, field_id: str) -> str:
    """
    Build the canonical key for a stored (form_id, field_id) pair.

    Legacy producers sometimes stored the whole key in ``field_id``
    (``1040_FS`` with an empty or repeated form), so a field part that
    already starts with its form prefix is not prefixed twice.
    """
    field_part = to_canonical(field_id)
    form_part = to_canonical(form_id)
    if not form_part:
        return field_part
    if field_part.startswith(form_part + SEPARATOR):
        return field_part
    if not field_part:
        return form_part
    return f"{form_part}{SEPARATOR}{field_part}"


def resolve_key(form_id: str, field_id: str) -> FieldKey:
    """
    Canonicalize a (form_id, field_id) request into a usable composite key.

    Raises:
        InvalidFieldIdentifier: If either part is empty after canonicalization
    """
    composed = compose_key(form_id, field_id)
    form_part, field_part = split_key(composed)
    if not form_part or not field_part:
        raw = f"{form_id}{SEPARATOR}{field_id}" if form_id else field_id
        raise InvalidFieldIdentifier(raw, form_part, field_part)
    return FieldKey(form_part, field_part)


def field_part(key: str) -> str:
    """Return just the field portion of a key, in canonical form."""
    return split_key(key)[1]


def to_underscore(raw: str) -> str:
    """Render a key in the legacy underscore dialect (``1040_FS``)."""
    if not raw:
        return ""
    return _ANY_SEPARATOR.sub("_", str(raw))


def to_colon(form_id: str, field_id: str) -> str:
    """Render a key in the legacy colon dialect (``1040:FS``)."""
    form_part, field_part_ = split_key(compose_key(form_id, field_id))
    if not form_part:
        return field_part_
    return f"{form_part}:{field_part_}"
