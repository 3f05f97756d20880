"""Typed payloads pushed to realtime subscribers.

Every event serializes with camelCase keys, e.g.
``{"type": "card:updated", "cardId": 1, "image": "B.png"}``.
"""
from typing import Literal, Union
from pydantic import BaseModel, Field
from portal.schemas.card import CardOut


class CardImageApplied(BaseModel):
    type: Literal["card:updated"] = "card:updated"
    card_id: int = Field(..., serialization_alias="cardId")
    image: str


class CardSchedulesChanged(BaseModel):
    type: Literal["card:updated"] = "card:updated"
    card_id: int = Field(..., serialization_alias="cardId")
    schedule_weekdays: list[dict] | None = Field(..., serialization_alias="scheduleWeekdays")


class CardChanged(BaseModel):
    type: Literal["card:updated"] = "card:updated"
    card: CardOut


class CardCreated(BaseModel):
    type: Literal["card:created"] = "card:created"
    card: CardOut


class CardDeleted(BaseModel):
    type: Literal["card:deleted"] = "card:deleted"
    id: int


CardEvent = Union[CardImageApplied, CardSchedulesChanged, CardChanged, CardCreated, CardDeleted]


def event_payload(event: CardEvent) -> dict:
    return event.model_dump(by_alias=True, mode="json")
