"""Tests for the HTTP routes (FastAPI TestClient on a temporary SQLite file)."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from portal.api import cards
from portal.db import Base, engine
from portal.main import app
from portal.models.contact import Contact
from portal.db import SessionLocal
from portal.schemas.events import event_payload
from portal.services.scheduler import ScheduleEngine
from portal.services.storage import PortalStore


@pytest.fixture(autouse=True)
def clean_tables():
    with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(table.delete())
    yield


@pytest.fixture
def events(monkeypatch, recording_notifier):
    monkeypatch.setattr(cards, "hub", recording_notifier)
    return recording_notifier.events


@pytest.fixture
def client():
    with TestClient(app) as test_client:
        yield test_client


def _create_card(client: TestClient, **body) -> dict:
    body.setdefault("title", "Avisos")
    response = client.post("/api/cards", json=body)
    assert response.status_code == 201
    return response.json()


# ============================================================================
# Service endpoints
# ============================================================================


class TestServiceEndpoints:
    def test_root(self, client) -> None:
        data = client.get("/").json()
        assert data["ok"] is True
        assert data["service"] == "portal-api"

    def test_healthz_reports_scheduler_disabled(self, client) -> None:
        data = client.get("/healthz").json()
        assert data["ok"] is True
        assert data["scheduler_running"] is False
        assert data["cache_available"] is False

    def test_server_time(self, client) -> None:
        before = int(datetime.now(timezone.utc).timestamp() * 1000)
        data = client.get("/api/server-time").json()
        after = int(datetime.now(timezone.utc).timestamp() * 1000)
        assert before <= data["now"] <= after
        assert data["iso"].endswith("+00:00")


# ============================================================================
# Cards
# ============================================================================


class TestCards:
    def test_create_and_list(self, client, events) -> None:
        created = _create_card(client, title=" Avisos ", subtitle="Mural", image="/uploads/a.png")

        assert created["title"] == "Avisos"
        assert created["scheduleWeekdays"] is None
        listed = client.get("/api/cards").json()
        assert [card["id"] for card in listed] == [created["id"]]
        assert event_payload(events[0])["type"] == "card:created"

    def test_create_requires_title(self, client) -> None:
        response = client.post("/api/cards", json={"subtitle": "x"})
        assert response.status_code == 422

    def test_get_missing_card(self, client) -> None:
        response = client.get("/api/cards/999")
        assert response.status_code == 404
        assert response.json()["detail"] == "Card not found"

    def test_update_card(self, client, events) -> None:
        card = _create_card(client)

        response = client.patch(f"/api/cards/{card['id']}", json={"image": "/uploads/b.png"})

        assert response.status_code == 200
        assert response.json()["image"] == "/uploads/b.png"
        assert response.json()["title"] == "Avisos"
        payload = event_payload(events[-1])
        assert payload["type"] == "card:updated"
        assert payload["card"]["image"] == "/uploads/b.png"

    def test_update_rejects_null_title(self, client) -> None:
        card = _create_card(client)
        response = client.patch(f"/api/cards/{card['id']}", json={"title": None})
        assert response.status_code == 400

    def test_delete_card(self, client, events) -> None:
        card = _create_card(client)

        assert client.delete(f"/api/cards/{card['id']}").json() == {"ok": True}
        assert client.get(f"/api/cards/{card['id']}").status_code == 404
        assert event_payload(events[-1]) == {"type": "card:deleted", "id": card["id"]}

    def test_delete_missing_card(self, client) -> None:
        assert client.delete("/api/cards/12345").status_code == 404


# ============================================================================
# Card schedules
# ============================================================================


class TestCardSchedules:
    def test_save_schedule_list(self, client, events) -> None:
        card = _create_card(client)
        schedules = [
            {"startDate": "2026-03-02T12:00:00Z", "endDate": "2026-03-02T13:00:00Z", "image": "/uploads/b.png"},
            {"startDate": "2026-03-03T12:00:00Z", "image": "/uploads/c.png"},
        ]

        response = client.patch(f"/api/cards/{card['id']}/schedules", json={"schedules": schedules})

        assert response.status_code == 200
        stored = json.loads(response.json()["scheduleWeekdays"])
        assert [item["image"] for item in stored] == ["/uploads/b.png", "/uploads/c.png"]
        assert "endDate" not in stored[1]
        payload = event_payload(events[-1])
        assert payload["cardId"] == card["id"]
        assert len(payload["scheduleWeekdays"]) == 2

    def test_accepts_json_string_under_legacy_key(self, client) -> None:
        card = _create_card(client)
        raw = json.dumps([{"startDate": "2026-03-02T12:00:00Z", "image": "/uploads/b.png"}])

        response = client.patch(f"/api/cards/{card['id']}/schedules", json={"scheduleWeekdays": raw})

        assert response.status_code == 200
        assert json.loads(response.json()["scheduleWeekdays"])[0]["image"] == "/uploads/b.png"

    def test_empty_list_clears_schedule(self, client, events) -> None:
        card = _create_card(client)
        client.patch(
            f"/api/cards/{card['id']}/schedules",
            json={"schedules": [{"startDate": "2026-03-02T12:00:00Z", "image": "b.png"}]},
        )

        response = client.patch(f"/api/cards/{card['id']}/schedules", json={"schedules": []})

        assert response.status_code == 200
        assert response.json()["scheduleWeekdays"] is None
        assert event_payload(events[-1])["scheduleWeekdays"] is None

    def test_missing_schedules(self, client) -> None:
        card = _create_card(client)
        response = client.patch(f"/api/cards/{card['id']}/schedules", json={})
        assert response.status_code == 400
        assert response.json()["detail"] == "Missing schedules"

    @pytest.mark.parametrize(
        "schedules",
        [
            [{"startDate": "2026-03-02T12:00:00Z"}],
            [{"startDate": "2026-03-02T12:00:00Z", "image": "  "}],
            [{"image": "b.png"}],
            "not json",
        ],
    )
    def test_rejects_invalid_entries(self, client, schedules) -> None:
        card = _create_card(client)
        response = client.patch(f"/api/cards/{card['id']}/schedules", json={"schedules": schedules})
        assert response.status_code == 400

    def test_unknown_card(self, client) -> None:
        response = client.patch(
            "/api/cards/4242/schedules",
            json={"schedules": [{"startDate": "2026-03-02T12:00:00Z", "image": "b.png"}]},
        )
        assert response.status_code == 404


# ============================================================================
# Engine against the real database
# ============================================================================


class TestEngineWithDatabase:
    @pytest.mark.asyncio
    async def test_cycle_updates_stored_card(self, recording_cache, recording_notifier) -> None:
        now = datetime.now(timezone.utc)
        with TestClient(app) as client:
            card = _create_card(client, image="/uploads/a.png")
            client.patch(
                f"/api/cards/{card['id']}/schedules",
                json={
                    "schedules": [
                        {
                            "startDate": (now - timedelta(days=2)).isoformat(),
                            "endDate": (now - timedelta(days=1)).isoformat(),
                            "image": "/uploads/old.png",
                        },
                        {
                            "startDate": (now - timedelta(seconds=10)).isoformat(),
                            "endDate": (now + timedelta(hours=1)).isoformat(),
                            "image": "/uploads/b.png",
                        },
                    ]
                },
            )

        store = PortalStore(SessionLocal)
        report = await ScheduleEngine(store, recording_cache, recording_notifier).evaluate_all(now)

        assert report.pruned == 1
        assert report.applied == 1
        stored = {item.id: item for item in store.get_all_cards()}[card["id"]]
        assert stored.image == "/uploads/b.png"
        assert [item["image"] for item in json.loads(stored.schedule_weekdays)] == ["/uploads/b.png"]
        assert recording_cache.patterns == ["cards:*", "cards:*"]

    def test_update_card_rejects_unknown_fields(self) -> None:
        with pytest.raises(ValueError, match="created_at"):
            PortalStore(SessionLocal).update_card(1, created_at=None)

    def test_update_missing_card_returns_none(self) -> None:
        assert PortalStore(SessionLocal).update_card(987654, image="x.png") is None

    def test_contacts_by_kind(self) -> None:
        db = SessionLocal()
        try:
            db.add(Contact(kind="ramais", name="Recepcao", number="1000"))
            db.add(Contact(kind="companies", name="Matriz"))
            db.commit()
        finally:
            db.close()

        names = [item.name for item in PortalStore(SessionLocal).get_contacts_by_kind("ramais")]
        assert names == ["Recepcao"]


# ============================================================================
# Tasks, categories, contacts
# ============================================================================


class TestTasksAndCategories:
    def test_category_and_task_flow(self, client) -> None:
        category = client.post("/api/categories", json={"name": "Geral", "color": "#3b82f6"}).json()
        assert client.post("/api/categories", json={"name": "Geral", "color": "#000"}).status_code == 400

        task = client.post("/api/tasks", json={"title": "Trocar banner", "categoryId": category["id"]})
        assert task.status_code == 201
        task_id = task.json()["id"]
        assert task.json()["categoryId"] == category["id"]
        assert task.json()["completed"] is False

        updated = client.patch(f"/api/tasks/{task_id}", json={"completed": True}).json()
        assert updated["completed"] is True
        assert [item["id"] for item in client.get("/api/tasks").json()] == [task_id]
        assert client.get(f"/api/categories/{category['id']}").json()["name"] == "Geral"

        assert client.delete(f"/api/tasks/{task_id}").json() == {"ok": True}
        assert client.get(f"/api/tasks/{task_id}").status_code == 404

    def test_task_with_unknown_category(self, client) -> None:
        response = client.post("/api/tasks", json={"title": "X", "categoryId": 999})
        assert response.status_code == 400

    def test_contacts_filter(self, client) -> None:
        db = SessionLocal()
        try:
            db.add(Contact(kind="ramais", name="Recepcao", number="1000"))
            db.add(Contact(kind="departments", name="TI"))
            db.commit()
        finally:
            db.close()

        assert len(client.get("/api/contacts").json()) == 2
        ramais = client.get("/api/contacts", params={"kind": "ramais"}).json()
        assert [item["name"] for item in ramais] == ["Recepcao"]
        assert client.get("/api/contacts", params={"kind": "unknown"}).status_code == 400
