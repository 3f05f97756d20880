import asyncio
import logging
import os

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from portal.db import SessionLocal
from portal.models.card import Card
from portal.schemas.card import (
    CardCreate,
    CardOut,
    CardUpdate,
    SchedulesUpdate,
    dump_schedule_entries,
    parse_schedule_entries,
)
from portal.schemas.events import CardChanged, CardCreated, CardDeleted, CardEvent, CardSchedulesChanged
from portal.services.cache import cache
from portal.services.realtime import hub

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/cards", tags=["cards"])
CARDS_CACHE_KEY = "cards:all"
CARDS_CACHE_PATTERN = "cards:*"
CARDS_CACHE_TTL_SEC = int(os.getenv("PORTAL_CARDS_CACHE_TTL_SEC", "300"))
SSE_KEEPALIVE_SEC = int(os.getenv("PORTAL_SSE_KEEPALIVE_SEC", "15"))


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _find_card_or_404(db: Session, card_id: int) -> Card:
    card = db.get(Card, card_id)
    if not card:
        raise HTTPException(status_code=404, detail="Card not found")
    return card


def _card_payload(card: Card) -> dict:
    return CardOut.model_validate(card).model_dump(by_alias=True, mode="json")


async def _publish(event: CardEvent) -> None:
    await cache.invalidate(CARDS_CACHE_PATTERN)
    await hub.broadcast(event)


@router.get("")
async def list_cards(db: Session = Depends(get_db)):
    cached = await cache.get_json(CARDS_CACHE_KEY)
    if cached is not None:
        return cached
    cards = db.query(Card).order_by(Card.created_at, Card.id).all()
    payload = [_card_payload(card) for card in cards]
    await cache.set_json(CARDS_CACHE_KEY, payload, CARDS_CACHE_TTL_SEC)
    return payload


@router.get("/stream")
async def stream_card_events(request: Request):
    queue = await hub.subscribe()

    async def event_source():
        try:
            yield ": connected\n\n"
            while not await request.is_disconnected():
                try:
                    message = await asyncio.wait_for(queue.get(), timeout=SSE_KEEPALIVE_SEC)
                except asyncio.TimeoutError:
                    yield ": keepalive\n\n"
                    continue
                yield f"data: {message}\n\n"
        finally:
            await hub.unsubscribe(queue)

    return StreamingResponse(
        event_source(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )


@router.get("/{card_id}")
def get_card(card_id: int, db: Session = Depends(get_db)):
    return _card_payload(_find_card_or_404(db, card_id))


@router.post("", status_code=201)
async def create_card(body: CardCreate, db: Session = Depends(get_db)):
    card = Card(
        title=body.title.strip(),
        subtitle=(body.subtitle or "").strip() or None,
        image=(body.image or "").strip() or None,
    )
    db.add(card)
    db.commit()
    db.refresh(card)
    await _publish(CardCreated(card=CardOut.model_validate(card)))
    return _card_payload(card)


@router.patch("/{card_id}/schedules")
async def update_card_schedules(card_id: int, body: SchedulesUpdate, db: Session = Depends(get_db)):
    raw = body.payload()
    if raw is None:
        raise HTTPException(status_code=400, detail="Missing schedules")
    card = _find_card_or_404(db, card_id)
    try:
        entries = parse_schedule_entries(raw)
    except ValueError as exc:
        raise HTTPException(
            status_code=400,
            detail="Schedules must be an array of entries with startDate and a non-empty image",
        ) from exc

    logger.info(
        "Saving %d schedule(s) for card %s: %s",
        len(entries),
        card_id,
        [(entry.start_date.isoformat(), entry.end_date.isoformat() if entry.end_date else None) for entry in entries],
    )
    card.schedule_weekdays = dump_schedule_entries(entries)
    db.commit()
    db.refresh(card)
    saved = [entry.model_dump(by_alias=True, mode="json", exclude_none=True) for entry in entries]
    await _publish(CardSchedulesChanged(card_id=card.id, schedule_weekdays=saved or None))
    return _card_payload(card)


@router.patch("/{card_id}")
async def update_card(card_id: int, body: CardUpdate, db: Session = Depends(get_db)):
    card = _find_card_or_404(db, card_id)
    changes = body.model_dump(exclude_unset=True)
    if "title" in changes and changes["title"] is None:
        raise HTTPException(status_code=400, detail="title cannot be null")
    for name, value in changes.items():
        setattr(card, name, value)
    db.commit()
    db.refresh(card)
    await _publish(CardChanged(card=CardOut.model_validate(card)))
    return _card_payload(card)


@router.delete("/{card_id}")
async def delete_card(card_id: int, db: Session = Depends(get_db)):
    card = _find_card_or_404(db, card_id)
    db.delete(card)
    db.commit()
    await _publish(CardDeleted(id=card_id))
    return {"ok": True}
