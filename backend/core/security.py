"""
Credential encryption for integration secrets at rest.

Blobs are base64(salt || iv || tag || ciphertext). Each call draws a fresh
salt and IV and derives the AES-256-GCM key from ENCRYPTION_KEY with scrypt,
so two encryptions of the same secret never produce the same blob.
There is no key versioning: changing ENCRYPTION_KEY makes existing blobs
undecryptable.
"""

import base64
import binascii
import json
import logging
import os
from typing import Any, Optional, Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from core.config import DEV_ENCRYPTION_KEY, settings
from core.exceptions import DecryptionError, EncryptionError

logger = logging.getLogger(__name__)

KEY_LENGTH = 32
SALT_LENGTH = 16
IV_LENGTH = 16
TAG_LENGTH = 16
HEADER_LENGTH = SALT_LENGTH + IV_LENGTH + TAG_LENGTH

# scrypt cost parameters
SCRYPT_N = 2**14
SCRYPT_R = 8
SCRYPT_P = 1


def _get_secret(secret: Optional[str] = None) -> str:
    secret = secret or settings.ENCRYPTION_KEY
    if not secret:
        raise EncryptionError("ENCRYPTION_KEY is not configured")
    return secret


def derive_key(secret: str, salt: bytes) -> bytes:
    """Derive a 256-bit key from the server secret and a per-record salt"""
    kdf = Scrypt(salt=salt, length=KEY_LENGTH, n=SCRYPT_N, r=SCRYPT_R, p=SCRYPT_P)
    return kdf.derive(secret.encode("utf-8"))


def encrypt(plaintext: Union[bytes, str], secret: Optional[str] = None) -> str:
    """Encrypt sensitive data before storing it"""
    if isinstance(plaintext, str):
        plaintext = plaintext.encode("utf-8")

    try:
        salt = os.urandom(SALT_LENGTH)
        iv = os.urandom(IV_LENGTH)
        key = derive_key(_get_secret(secret), salt)
        sealed = AESGCM(key).encrypt(iv, plaintext, None)
    except EncryptionError:
        raise
    except Exception as e:
        logger.error(f"Encryption failed: {type(e).__name__}")
        raise EncryptionError("Failed to encrypt data") from e

    # AESGCM appends the tag; the stored layout keeps it ahead of the ciphertext
    ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
    return base64.b64encode(salt + iv + tag + ciphertext).decode("ascii")


def decrypt(blob: str, secret: Optional[str] = None) -> bytes:
    """Decrypt a stored blob, raising DecryptionError on tampering or malformed input"""
    try:
        combined = base64.b64decode(blob, validate=True)
    except (binascii.Error, ValueError, TypeError) as e:
        raise DecryptionError("Credential blob is not valid base64") from e

    if len(combined) < HEADER_LENGTH:
        raise DecryptionError("Credential blob is too short")

    salt = combined[:SALT_LENGTH]
    iv = combined[SALT_LENGTH : SALT_LENGTH + IV_LENGTH]
    tag = combined[SALT_LENGTH + IV_LENGTH : HEADER_LENGTH]
    ciphertext = combined[HEADER_LENGTH:]

    key = derive_key(_get_secret(secret), salt)
    try:
        return AESGCM(key).decrypt(iv, ciphertext + tag, None)
    except InvalidTag as e:
        logger.error("Decryption failed: authentication tag mismatch")
        raise DecryptionError("Failed to decrypt data") from e


def encrypt_token(token: str) -> str:
    """Encrypt API token for secure storage"""
    return encrypt(token)


def decrypt_token(encrypted_token: str) -> str:
    """Decrypt API token for use"""
    try:
        return decrypt(encrypted_token).decode("utf-8")
    except UnicodeDecodeError as e:
        raise DecryptionError("Decrypted token is not valid UTF-8") from e


def encrypt_json(data: Any) -> str:
    """Encrypt JSON objects (service account credentials)"""
    return encrypt(json.dumps(data))


def decrypt_json(encrypted_data: str) -> Any:
    try:
        return json.loads(decrypt(encrypted_data))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise DecryptionError("Decrypted credentials are not valid JSON") from e


def is_encryption_configured() -> bool:
    """False while running on the development fallback key"""
    key = settings.ENCRYPTION_KEY
    return bool(key) and key != DEV_ENCRYPTION_KEY


def generate_encryption_key() -> str:
    """Generate a secure encryption key for production use"""
    return os.urandom(32).hex()
