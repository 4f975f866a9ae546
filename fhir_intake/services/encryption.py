"""
Application-layer encryption for PHI kept in the local audit store.

``PHI_ENCRYPTION_KEY`` holds one or more comma-separated Fernet keys.  The
first key encrypts; every key is tried on decrypt, so rows written before a
key change stay readable while the old key is still listed.
"""

from __future__ import annotations

from cryptography.fernet import Fernet, MultiFernet

from fhir_intake.config import settings


def _parse_keys(raw: str) -> list[str]:
    return [part.strip() for part in raw.split(",") if part.strip()]


class EncryptionService:
    """Fernet encryption for PHI columns such as ``encrypted_patient_name``."""

    def __init__(self, key: str | None = None):
        keys = _parse_keys(key or settings.PHI_ENCRYPTION_KEY)
        if not keys:
            # Development only: an ephemeral key means audit PHI is unreadable after restart.
            keys = [Fernet.generate_key().decode()]
        self._fernet = MultiFernet([Fernet(k.encode()) for k in keys])

    def encrypt(self, plaintext: str) -> str:
        if not plaintext:
            return ""
        return self._fernet.encrypt(plaintext.encode()).decode()

    def decrypt(self, ciphertext: str) -> str:
        if not ciphertext:
            return ""
        return self._fernet.decrypt(ciphertext.encode()).decode()
