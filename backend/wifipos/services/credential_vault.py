# Overview: Encrypts and decrypts per-device admin secrets with the configured Fernet key.

from __future__ import annotations

import logging

from cryptography.fernet import Fernet, InvalidToken
from flask import current_app

logger = logging.getLogger(__name__)

_EXTENSION_KEY = "credential_vault_cipher"


class CredentialVaultError(Exception):
    """Raised when the vault key is missing/invalid or a secret cannot be decrypted."""
    pass


def _get_cipher() -> Fernet:
    cached = current_app.extensions.get(_EXTENSION_KEY)
    if cached is not None:
        return cached

    key = current_app.config.get("DEVICE_CREDENTIAL_KEY")
    if not key:
        raise CredentialVaultError("DEVICE_CREDENTIAL_KEY is not configured")
    if isinstance(key, str):
        key = key.encode("utf-8")
    try:
        cipher = Fernet(key)
    except (TypeError, ValueError) as exc:
        raise CredentialVaultError(
            "DEVICE_CREDENTIAL_KEY must be a 32-byte urlsafe base64 value"
        ) from exc

    current_app.extensions[_EXTENSION_KEY] = cipher
    return cipher


def encrypt(plaintext: str) -> str:
    if not plaintext:
        raise CredentialVaultError("Refusing to store an empty device secret")
    return _get_cipher().encrypt(plaintext.encode("utf-8")).decode("utf-8")


def decrypt(ciphertext: str) -> str:
    if not ciphertext:
        raise CredentialVaultError("Device has no stored secret")
    try:
        return _get_cipher().decrypt(ciphertext.encode("utf-8")).decode("utf-8")
    except InvalidToken as exc:
        logger.error("Failed to decrypt device secret: %s", type(exc).__name__)
        raise CredentialVaultError("Unable to decrypt device secret") from exc
