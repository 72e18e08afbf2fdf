"""
Bearer credential resolution.

Several app versions persisted the token under different key names. They are
modelled as an ordered list of CredentialSource objects; resolve() returns the
first value with a JWT shape (three non-empty dot-separated segments). This is
a shape check only, the server remains responsible for verifying the token.
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from typing import List, Optional

from walletflow.settings import settings
from walletflow.observability.logging import log

_PLACEHOLDER_VALUES = {"undefined", "null"}


class NoCredential(Exception):
    """No stored value passed the credential shape check."""


def normalize_credential(value) -> Optional[str]:
    """Return the trimmed credential if it is usable, else None."""
    if not isinstance(value, str):
        return None
    candidate = value.strip()
    if not candidate or candidate in _PLACEHOLDER_VALUES:
        return None
    parts = candidate.split(".")
    if len(parts) != 3 or not all(parts):
        return None
    return candidate


def is_valid_credential(value) -> bool:
    return normalize_credential(value) is not None


@dataclass
class CredentialSource:
    key: str
    storage: object

    def read(self) -> Optional[str]:
        raw = self.storage.get(self.key)
        if raw is None:
            return None
        # Newer writers store JSON-encoded strings, older ones the bare token
        if raw.startswith('"'):
            try:
                decoded = json.loads(raw)
            except ValueError:
                return raw
            return decoded if isinstance(decoded, str) else None
        return raw

    def clear(self) -> None:
        self.storage.delete(self.key)


class CredentialStore:
    def __init__(self, storage, keys: Optional[List[str]] = None):
        self.storage = storage
        self.sources = [CredentialSource(k, storage) for k in (keys or settings.CREDENTIAL_KEYS)]
        self._cached: Optional[str] = None

    def resolve(self) -> str:
        if self._cached:
            return self._cached

        for source in self.sources:
            token = normalize_credential(source.read())
            if token is None:
                continue
            self._cached = token
            try:
                log(event="credential_resolved", source=source.key, length=len(token))
            except Exception:
                pass
            return token

        try:
            log(event="credential_missing", probedKeys=[s.key for s in self.sources])
        except Exception:
            pass
        raise NoCredential("No authentication token found")

    def store(self, token: str) -> None:
        """Persist a freshly issued token under the primary key."""
        clean = normalize_credential(token)
        if clean is None:
            raise ValueError("credential does not have a JWT shape")
        self.storage.set_json(self.sources[0].key, clean)
        self._cached = clean

    def invalidate(self) -> None:
        """Drop the cached token and every known persisted copy (401 or logout)."""
        self._cached = None
        for source in self.sources:
            source.clear()
        try:
            log(event="credential_invalidated", clearedKeys=[s.key for s in self.sources])
        except Exception:
            pass
