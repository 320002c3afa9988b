from __future__ import annotations

import re
import threading

from spendlens.core.config import settings

OPENAI_API_KEY = "openai_key"

_API_KEY_RE = re.compile(r"^sk-[A-Za-z0-9_-]+$")


class CredentialStore:
    """Named secret lookup. Implementations decide where the secret lives."""

    def get(self, name: str) -> str | None:
        raise NotImplementedError

    def set(self, name: str, value: str) -> None:
        raise NotImplementedError

    def delete(self, name: str) -> None:
        raise NotImplementedError

    def has(self, name: str) -> bool:
        return bool((self.get(name) or "").strip())


class InMemoryCredentialStore(CredentialStore):
    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._values: dict[str, str] = dict(initial or {})
        self._lock = threading.Lock()

    def get(self, name: str) -> str | None:
        with self._lock:
            return self._values.get(name)

    def set(self, name: str, value: str) -> None:
        with self._lock:
            self._values[name] = value

    def delete(self, name: str) -> None:
        with self._lock:
            self._values.pop(name, None)


class SettingsCredentialStore(InMemoryCredentialStore):
    """Seeded from environment settings; runtime updates are process-local."""

    def __init__(self) -> None:
        initial: dict[str, str] = {}
        if settings.openai_api_key:
            initial[OPENAI_API_KEY] = settings.openai_api_key
        super().__init__(initial)


def validate_api_key_format(value: str | None) -> bool:
    key = (value or "").strip()
    if not 10 <= len(key) <= 200:
        return False
    return bool(_API_KEY_RE.match(key))
