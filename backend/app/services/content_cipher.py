"""
NeighborHelp Backend: Content Cipher
=====================================

What:  Symmetric encryption of message bodies at rest.
How:   A 256-bit AES key is derived once from (secret, salt) with
       PBKDF2-HMAC-SHA256 and injected into ContentCipher. Bodies are
       encrypted with AES-ECB + PKCS#7 padding and stored as base64 text.
Who:   Built once in the application lifespan; used by MessageService.

Token format:
    base64( AES-256-ECB( PKCS7( utf8(plaintext) ) ) )

    This is byte-compatible with tokens written by the previous JVM service
    (AES/ECB/PKCS5Padding, PBKDF2WithHmacSHA256, 65536 iterations), so
    existing rows keep decrypting after the migration.

Determinism:
    ECB has no IV: the same plaintext under the same key always gives the
    same token, and identical messages are therefore correlatable in the
    database. Kept for compatibility with stored data. A new deployment
    should switch to AES-GCM with a random nonce stored in the token.

Failure kinds (decrypt):
    MalformedCiphertextError  token is not base64
    InvalidCiphertextError    padding or UTF-8 check fails (wrong / rotated key)
    DecryptionError           anything else (empty or truncated payload)
"""

import base64
import binascii
import logging
from dataclasses import dataclass, field

from cryptography.hazmat.primitives import hashes, padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from app.exceptions import (
    DecryptionError,
    InvalidCiphertextError,
    KeyDerivationError,
    MalformedCiphertextError,
)

logger = logging.getLogger(__name__)

KDF_ITERATIONS = 65536
KEY_LENGTH_BYTES = 32
BLOCK_SIZE_BITS = algorithms.AES.block_size  # 128


@dataclass(frozen=True)
class KeyMaterial:
    """
    The derived AES key.

    Immutable and shared read-only by every request. repr=False keeps the
    raw bytes out of logs and tracebacks.
    """

    key: bytes = field(repr=False)

    def __post_init__(self) -> None:
        if len(self.key) != KEY_LENGTH_BYTES:
            raise KeyDerivationError(
                message=f"Encryption key must be {KEY_LENGTH_BYTES} bytes",
                context={"length": len(self.key)},
            )


def derive_key(secret: str, salt: str, iterations: int = KDF_ITERATIONS) -> KeyMaterial:
    """
    Derive the message encryption key from configuration secrets.

    The same (secret, salt) pair always yields the same key.

    Raises:
        KeyDerivationError: empty inputs or any KDF failure. Callers at
            startup let this propagate; the service cannot run without a key.
    """
    if not secret or not salt:
        raise KeyDerivationError(
            message="ENCRYPTION_SECRET and ENCRYPTION_SALT must both be set",
        )

    try:
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=KEY_LENGTH_BYTES,
            salt=salt.encode("utf-8"),
            iterations=iterations,
        )
        key = kdf.derive(secret.encode("utf-8"))
    except Exception as e:
        raise KeyDerivationError(
            context={"error_type": type(e).__name__},
        ) from e

    return KeyMaterial(key=key)


class ContentCipher:
    """
    Encrypts and decrypts message bodies under one injected key.

    Stateless apart from the key: every call builds its own cipher context,
    so a single instance is safe to share across concurrent requests.
    Two instances with different keys model a key rotation.
    """

    def __init__(self, key_material: KeyMaterial):
        self._algorithm = algorithms.AES(key_material.key)

    def encrypt(self, plaintext: str) -> str:
        padder = padding.PKCS7(BLOCK_SIZE_BITS).padder()
        padded = padder.update(plaintext.encode("utf-8")) + padder.finalize()

        encryptor = Cipher(self._algorithm, modes.ECB()).encryptor()
        encrypted = encryptor.update(padded) + encryptor.finalize()

        return base64.b64encode(encrypted).decode("ascii")

    def decrypt(self, token: str) -> str:
        """
        Reverse encrypt() under the current key.

        Raises:
            MalformedCiphertextError: token is not valid base64
            InvalidCiphertextError: token does not belong to this key
            DecryptionError: any other failure
        """
        try:
            encrypted = base64.b64decode(token, validate=True)
        except (binascii.Error, ValueError) as e:
            raise MalformedCiphertextError() from e

        if not encrypted:
            # Every token encrypt() produces holds at least one padded block
            raise DecryptionError(context={"length": 0})

        try:
            decryptor = Cipher(self._algorithm, modes.ECB()).decryptor()
            padded = decryptor.update(encrypted) + decryptor.finalize()
        except ValueError as e:
            # Not a whole number of AES blocks: truncated or corrupted row
            raise DecryptionError(
                context={"length": len(encrypted)},
            ) from e

        try:
            unpadder = padding.PKCS7(BLOCK_SIZE_BITS).unpadder()
            data = unpadder.update(padded) + unpadder.finalize()
            return data.decode("utf-8")
        except (ValueError, UnicodeDecodeError) as e:
            # Bad padding, or padding that happened to pass but left bytes that
            # are not text: both mean a different key produced this token
            raise InvalidCiphertextError() from e
