"""
Audit Trail Module.

Tamper-evident, hash-chained audit records for every field change, engine
write and lock change on a return:

    from audit import AuditRecorder, verify_chain

    recorder = AuditRecorder(uow.store)
    result = await recorder.verify(return_id)
"""

from .hash_chain import (
    GENESIS_HASH,
    ChainVerification,
    create_hash,
    hash_entry,
    seal_entry,
    verify_entry,
    verify_chain,
    latest_hash,
)
from .audit_trail import AuditRecorder, epoch_millis

__all__ = [
    "GENESIS_HASH",
    "ChainVerification",
    "create_hash",
    "hash_entry",
    "seal_entry",
    "verify_entry",
    "verify_chain",
    "latest_hash",
    "AuditRecorder",
    "epoch_millis",
]
