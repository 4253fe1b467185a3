"""Shared test fixtures."""

import pytest

from src.conversation.store import ConversationStore


@pytest.fixture(autouse=False)
def _no_turso(monkeypatch: pytest.MonkeyPatch) -> None:
    """Ensure tests use local file, not remote Turso."""
    monkeypatch.setattr("src.config.settings.turso_database_url", "")


@pytest.fixture
def store(tmp_path, _no_turso) -> ConversationStore:
    """Create a ConversationStore backed by a temp database."""
    ConversationStore._reset()
    return ConversationStore(db_path=tmp_path / "test.db", max_depth=50, timeout=5.0)
