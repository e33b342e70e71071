# crypto.py
from __future__ import annotations

import base64
import binascii
import hashlib
import os
from typing import Protocol

import numpy as np
from cryptography.fernet import Fernet, InvalidToken

from .errors import CipherError


class KeyProvider(Protocol):
    def get_key(self) -> bytes:
        ...


def derive_key(secret: str | bytes) -> bytes:
    """
    Turn a secret into a Fernet key. A value that already is a valid Fernet
    key (32 url-safe base64 bytes) is used as is; anything else is treated as
    a passphrase and hashed with SHA-256.
    """
    raw = secret.encode("utf-8") if isinstance(secret, str) else secret
    try:
        if len(base64.urlsafe_b64decode(raw)) == 32:
            return raw
    except (binascii.Error, ValueError):
        pass
    return base64.urlsafe_b64encode(hashlib.sha256(raw).digest())


class StaticKeyProvider:
    def __init__(self, secret: str | bytes):
        if not secret:
            raise CipherError("Encryption secret must not be empty.")
        self._key = derive_key(secret)

    def get_key(self) -> bytes:
        return self._key


class EnvKeyProvider:
    """Reads the secret from an environment variable at each call."""

    def __init__(self, var_name: str = "FACE_ENCRYPTION_KEY"):
        self.var_name = var_name

    def get_key(self) -> bytes:
        secret = os.getenv(self.var_name, "")
        if not secret:
            raise CipherError(f"{self.var_name} is not set.")
        return derive_key(secret)


class EmbeddingCipher:
    def __init__(self, key_provider: KeyProvider):
        self._key_provider = key_provider

    def _fernet(self) -> Fernet:
        try:
            return Fernet(self._key_provider.get_key())
        except (ValueError, TypeError) as exc:
            raise CipherError(f"Invalid encryption key: {exc}") from exc

    def encrypt(self, embedding: np.ndarray) -> str:
        data = np.asarray(embedding, dtype=np.float32).ravel().tobytes()
        return self._fernet().encrypt(data).decode("ascii")

    def decrypt(self, token: str) -> np.ndarray:
        try:
            data = self._fernet().decrypt(token.encode("ascii"))
        except (InvalidToken, UnicodeEncodeError) as exc:
            raise CipherError("Stored embedding could not be decrypted.") from exc
        if len(data) % 4:
            raise CipherError("Decrypted embedding has an invalid length.")
        return np.frombuffer(data, dtype=np.float32).copy()
