"""
Hash chain for tamper-evident audit entries.

Each entry stores a SHA-256 hash over the previous entry's hash and its own
identifying data, so modifying or removing any entry breaks every hash after
it. The first entry of a return chains from a fixed genesis value.

Hashed payload (``|``-joined):
    previous_hash | return_id | form_id | field_id | user_id | action | created_at
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import Iterable, List, Optional

from domain.aggregates import AuditEntry

GENESIS_HASH = "taxwise_audit_genesis_2025_v1"


@dataclass(frozen=True)
class ChainVerification:
    """Outcome of verifying a chain. Never raised; always returned."""
    valid: bool
    invalid_index: int
    message: str


def create_hash(data: str) -> str:
    """Hex SHA-256 of a UTF-8 string."""
    return hashlib.sha256(data.encode("utf-8")).hexdigest()


def hash_entry(
    previous_hash: Optional[str],
    *,
    return_id: str = "",
    form_id: str = "",
    field_id: str = "",
    user_id: str = "",
    action: str,
    created_at: int,
) -> str:
    """
    Hash one audit entry against its predecessor.

    Args:
        previous_hash: Hash of the preceding entry (genesis when None)
        created_at: Entry timestamp in epoch milliseconds

    Returns:
        64-character hex digest
    """
    components = [
        previous_hash or GENESIS_HASH,
        return_id or "",
        form_id or "",
        field_id or "",
        user_id or "",
        action,
        str(created_at),
    ]
    return create_hash("|".join(components))


def hash_audit_entry(entry: AuditEntry, previous_hash: Optional[str]) -> str:
    return hash_entry(
        previous_hash,
        return_id=entry.return_id,
        form_id=entry.form_id,
        field_id=entry.field_id,
        user_id=entry.user_id,
        action=entry.action,
        created_at=entry.created_at,
    )


def seal_entry(entry: AuditEntry, previous_hash: Optional[str]) -> AuditEntry:
    """Copy of ``entry`` carrying its chain hash."""
    return entry.model_copy(update={"hash_chain_entry": hash_audit_entry(entry, previous_hash)})


def verify_entry(entry: AuditEntry, previous_hash: Optional[str]) -> bool:
    """Check one entry's stored hash against its recomputed hash."""
    if not entry.hash_chain_entry or not entry.created_at:
        return False
    return hash_audit_entry(entry, previous_hash) == entry.hash_chain_entry


def chain_order(entries: Iterable[AuditEntry]) -> List[AuditEntry]:
    """Entries oldest first (timestamp, then insertion sequence)."""
    return sorted(entries, key=lambda e: (e.created_at, e.sequence))


def verify_chain(entries: Iterable[AuditEntry]) -> ChainVerification:
    """
    Verify the integrity of a return's audit chain.

    Returns:
        ChainVerification; ``invalid_index`` is the zero-based position of the
        first bad entry in chain order, -1 when the chain is intact
    """
    ordered = chain_order(entries)
    if not ordered:
        return ChainVerification(True, -1, "No entries to verify")

    previous_hash: Optional[str] = None
    for i, entry in enumerate(ordered):
        if not verify_entry(entry, previous_hash):
            return ChainVerification(
                False,
                i,
                f"Chain broken at entry {i + 1} ({entry.entry_id}). Hash mismatch detected.",
            )
        previous_hash = entry.hash_chain_entry

    return ChainVerification(
        True, -1, f"Chain verified: {len(ordered)} entries validated successfully"
    )


def latest_hash(entries: Iterable[AuditEntry]) -> Optional[str]:
    """Hash at the head of the chain, None for an empty chain."""
    ordered = chain_order(entries)
    if not ordered:
        return None
    return ordered[-1].hash_chain_entry or None
