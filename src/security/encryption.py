"""
Data Encryption Module.

Provides AES-256-GCM encryption for PII-shaped field values (SSN, EIN).
CRITICAL: PII must be encrypted before it reaches the field store.

Only values that look like an SSN (``NNN-NN-NNNN``, dashes optional) or an
EIN (``NN-NNNNNNN``, dashes optional) are transformed; everything else
passes through unchanged. Structured values are walked recursively. The
opaque stored form is a structured value ``{"_encrypted": true, "data": ...}``.
"""

from __future__ import annotations

import base64
import logging
import os
import re
import secrets
from typing import Any, Optional, Union

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from domain.value_objects import FieldValue, StringValue, StructuredValue

logger = logging.getLogger(__name__)

SSN_SHAPE = re.compile(r"^\d{3}-?\d{2}-?\d{4}$")
EIN_SHAPE = re.compile(r"^\d{2}-?\d{7}$")

ENCRYPTED_MARKER = "_encrypted"


class EncryptionError(Exception):
    """Raised when encryption fails."""
    pass


class DecryptionError(Exception):
    """Raised when decryption fails."""
    pass


def looks_like_pii(value: Any) -> bool:
    """True for strings shaped like an SSN or EIN."""
    if not isinstance(value, str):
        return False
    text = value.strip()
    if not text:
        return False
    return bool(SSN_SHAPE.match(text) or EIN_SHAPE.match(text))


def is_encrypted_payload(value: Any) -> bool:
    return isinstance(value, dict) and bool(value.get(ENCRYPTED_MARKER)) and "data" in value


class DataEncryptor:
    """
    AES-256-GCM encryptor for sensitive data.

    Provides authenticated encryption with:
    - AES-256 encryption (256-bit key)
    - GCM mode (provides authentication)
    - Unique nonce per encryption
    - PBKDF2 key derivation from the master key
    """

    # Nonce size for GCM (96 bits recommended)
    NONCE_SIZE = 12
    # Salt size for key derivation
    SALT_SIZE = 16
    # Key size (256 bits for AES-256)
    KEY_SIZE = 32
    # PBKDF2 iterations
    ITERATIONS = 100000

    def __init__(self, master_key: Optional[str] = None):
        """
        Initialize the encryptor.

        Args:
            master_key: Master encryption key. If not provided, uses
                       ENCRYPTION_MASTER_KEY environment variable.
        """
        self._master_key = master_key or os.environ.get("ENCRYPTION_MASTER_KEY")

        if not self._master_key:
            env = os.environ.get("APP_ENVIRONMENT", "development")
            if env == "production":
                raise ValueError(
                    "ENCRYPTION_MASTER_KEY environment variable is required in production. "
                    "Generate a secure key with: python -c \"import secrets; print(secrets.token_hex(32))\""
                )
            logger.warning(
                "ENCRYPTION_MASTER_KEY not set. Using random key (encrypted data will not persist). "
                "Set ENCRYPTION_MASTER_KEY for persistence."
            )
            self._master_key = secrets.token_hex(32)

    def encrypt(self, plaintext: Union[str, bytes], associated_data: Optional[bytes] = None) -> str:
        """
        Encrypt data using AES-256-GCM.

        Returns:
            Base64-encoded ``salt + nonce + ciphertext``

        Raises:
            EncryptionError: If encryption fails
        """
        try:
            if isinstance(plaintext, str):
                plaintext = plaintext.encode("utf-8")

            salt = secrets.token_bytes(self.SALT_SIZE)
            nonce = secrets.token_bytes(self.NONCE_SIZE)
            key = self._derive_key(salt)

            ciphertext = AESGCM(key).encrypt(nonce, plaintext, associated_data)
            return base64.b64encode(salt + nonce + ciphertext).decode("utf-8")

        except Exception as e:
            logger.error(f"Encryption failed: {type(e).__name__}")
            raise EncryptionError("Failed to encrypt data") from e

    def decrypt(self, encrypted_data: str, associated_data: Optional[bytes] = None) -> str:
        """
        Decrypt data encrypted with encrypt().

        Raises:
            DecryptionError: If decryption fails or data is tampered
        """
        try:
            combined = base64.b64decode(encrypted_data)

            salt = combined[:self.SALT_SIZE]
            nonce = combined[self.SALT_SIZE:self.SALT_SIZE + self.NONCE_SIZE]
            ciphertext = combined[self.SALT_SIZE + self.NONCE_SIZE:]

            key = self._derive_key(salt)
            plaintext = AESGCM(key).decrypt(nonce, ciphertext, associated_data)

            return plaintext.decode("utf-8")

        except Exception as e:
            logger.error(f"Decryption failed: {type(e).__name__}")
            raise DecryptionError("Failed to decrypt data - possible tampering") from e

    def _derive_key(self, salt: bytes) -> bytes:
        """Derive encryption key from master key using PBKDF2."""
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=self.KEY_SIZE,
            salt=salt,
            iterations=self.ITERATIONS,
        )
        return kdf.derive(self._master_key.encode("utf-8"))


# =============================================================================
# FIELD VALUE BOUNDARY
# =============================================================================

class PiiValueTransformer:
    """
    Encryption boundary for field values.

    ``transform`` runs before a value is stored, ``reveal`` after it is
    loaded. Non-PII values come back as the same object.
    """

    def __init__(self, encryptor: Optional[DataEncryptor] = None):
        self.encryptor = encryptor or DataEncryptor()

    def transform(self, value: FieldValue) -> FieldValue:
        if isinstance(value, StringValue):
            if looks_like_pii(value.value):
                return StructuredValue(value=self._seal(value.value))
            return value
        if isinstance(value, StructuredValue) and not is_encrypted_payload(value.value):
            walked = self._transform_raw(value.value)
            return StructuredValue(value=walked) if walked != value.value else value
        return value

    def reveal(self, value: FieldValue) -> FieldValue:
        if isinstance(value, StructuredValue):
            if is_encrypted_payload(value.value):
                return StringValue(value=self._open(value.value))
            walked = self._reveal_raw(value.value)
            return StructuredValue(value=walked) if walked != value.value else value
        return value

    def _seal(self, text: str) -> dict:
        return {ENCRYPTED_MARKER: True, "data": self.encryptor.encrypt(text)}

    def _open(self, payload: dict) -> str:
        return self.encryptor.decrypt(str(payload["data"]))

    def _transform_raw(self, raw: Any) -> Any:
        if isinstance(raw, str):
            return self._seal(raw) if looks_like_pii(raw) else raw
        if isinstance(raw, list):
            return [self._transform_raw(item) for item in raw]
        if isinstance(raw, dict):
            if is_encrypted_payload(raw):
                return raw
            return {k: self._transform_raw(v) for k, v in raw.items()}
        return raw

    def _reveal_raw(self, raw: Any) -> Any:
        if is_encrypted_payload(raw):
            return self._open(raw)
        if isinstance(raw, list):
            return [self._reveal_raw(item) for item in raw]
        if isinstance(raw, dict):
            return {k: self._reveal_raw(v) for k, v in raw.items()}
        return raw


class PassthroughTransformer:
    """Boundary used when PII encryption is disabled."""

    def transform(self, value: FieldValue) -> FieldValue:
        return value

    def reveal(self, value: FieldValue) -> FieldValue:
        return value


ValueTransformer = Union[PiiValueTransformer, PassthroughTransformer]


def build_value_transformer(encrypt_pii: bool, master_key: Optional[str] = None) -> ValueTransformer:
    """Transformer for the configured PII policy."""
    if not encrypt_pii:
        return PassthroughTransformer()
    return PiiValueTransformer(DataEncryptor(master_key))
