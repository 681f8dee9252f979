"""
Security module for the field recalculation engine.

Provides the PII encryption boundary for field values.
"""

from .encryption import (
    DataEncryptor,
    EncryptionError,
    DecryptionError,
    PiiValueTransformer,
    PassthroughTransformer,
    ValueTransformer,
    build_value_transformer,
    looks_like_pii,
)

__all__ = [
    "DataEncryptor",
    "EncryptionError",
    "DecryptionError",
    "PiiValueTransformer",
    "PassthroughTransformer",
    "ValueTransformer",
    "build_value_transformer",
    "looks_like_pii",
]
