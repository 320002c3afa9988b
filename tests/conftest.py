from __future__ import annotations

import os

import pytest

# Set env before any spendlens imports (settings/engine are created at import time).
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite:///./.spendlens_test.db")
os.environ["OPENAI_API_KEY"] = ""
os.environ.setdefault("LOCALE_CURRENCY", "")


@pytest.fixture(autouse=True)
def _reset_db() -> None:
    import spendlens.models  # noqa: F401
    from spendlens.core.db import engine
    from spendlens.core.models import Base

    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)

    yield


class ScriptedModelClient:
    """Replays canned replies in order; the last reply repeats. Exceptions are raised."""

    def __init__(self, *replies) -> None:
        self.replies = list(replies)
        self.calls: list[tuple[str, bytes | None]] = []

    def call(self, prompt: str, image: bytes | None = None) -> str:
        self.calls.append((prompt, image))
        idx = min(len(self.calls) - 1, len(self.replies) - 1)
        reply = self.replies[idx]
        if isinstance(reply, Exception):
            raise reply
        return reply


@pytest.fixture
def scripted_model():
    return ScriptedModelClient


@pytest.fixture
def credentials():
    from spendlens.core.credentials import OPENAI_API_KEY, InMemoryCredentialStore

    return InMemoryCredentialStore({OPENAI_API_KEY: "sk-test-0123456789"})


@pytest.fixture
def resolver():
    from spendlens.modules.currency.service import CurrencyResolver

    return CurrencyResolver(locale_currency=None)
