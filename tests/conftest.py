"""Shared fixtures.

The API tests run against a throwaway SQLite file with Redis and the
background scheduler disabled, so the environment is prepared before any
``portal`` module is imported.
"""

from __future__ import annotations

import os
import tempfile
from types import SimpleNamespace

import pytest

_DB_DIR = tempfile.mkdtemp(prefix="portal-tests-")
os.environ.setdefault("PORTAL_DATABASE_URL", f"sqlite:///{os.path.join(_DB_DIR, 'portal.db')}")
os.environ["PORTAL_REDIS_URL"] = ""
os.environ["PORTAL_SCHEDULER_ENABLED"] = "0"
os.environ.setdefault("SITE_PROMPT_PATH", os.path.join(_DB_DIR, "promt-site.ia"))


class FakeStore:
    """In-memory stand-in for PortalStore.

    ``get_all_cards`` hands out copies, like rows loaded by a fresh session.
    """

    def __init__(self) -> None:
        self.cards: dict[int, SimpleNamespace] = {}
        self.tasks: list[SimpleNamespace] = []
        self.categories: list[SimpleNamespace] = []
        self.contacts: dict[str, list[SimpleNamespace]] = {}
        self.writes: list[tuple[int, dict]] = []
        self.fail_ids: set[int] = set()
        self.fail_contacts = False

    def add_card(self, card_id: int, image: str | None = None, schedule_weekdays: str | None = None, **extra):
        card = SimpleNamespace(
            id=card_id,
            title=extra.get("title", f"Card {card_id}"),
            subtitle=extra.get("subtitle"),
            image=image,
            schedule_weekdays=schedule_weekdays,
        )
        self.cards[card_id] = card
        return card

    def get_all_cards(self) -> list[SimpleNamespace]:
        return [SimpleNamespace(**vars(card)) for card in self.cards.values()]

    def update_card(self, card_id: int, **fields):
        if card_id in self.fail_ids:
            raise RuntimeError("database is locked")
        card = self.cards.get(card_id)
        if card is None:
            return None
        self.writes.append((card_id, dict(fields)))
        for name, value in fields.items():
            setattr(card, name, value)
        return SimpleNamespace(**vars(card))

    def get_all_tasks(self):
        return list(self.tasks)

    def get_all_categories(self):
        return list(self.categories)

    def get_contacts_by_kind(self, kind: str):
        if self.fail_contacts:
            raise RuntimeError("contacts table missing")
        return list(self.contacts.get(kind, []))


class RecordingCache:
    def __init__(self, fail: bool = False) -> None:
        self.patterns: list[str] = []
        self.fail = fail

    async def invalidate(self, pattern: str) -> int:
        if self.fail:
            raise ConnectionError("redis down")
        self.patterns.append(pattern)
        return 0

    async def get_json(self, key: str):
        return None

    async def set_json(self, key: str, value, ttl_sec: int = 3600) -> None:
        return None


class RecordingNotifier:
    def __init__(self, fail: bool = False) -> None:
        self.events: list = []
        self.fail = fail

    async def broadcast(self, event) -> int:
        if self.fail:
            raise RuntimeError("socket closed")
        self.events.append(event)
        return len(self.events)


@pytest.fixture
def fake_store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def recording_cache() -> RecordingCache:
    return RecordingCache()


@pytest.fixture
def recording_notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def failing_cache() -> RecordingCache:
    return RecordingCache(fail=True)


@pytest.fixture
def failing_notifier() -> RecordingNotifier:
    return RecordingNotifier(fail=True)
