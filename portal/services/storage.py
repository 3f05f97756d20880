from sqlalchemy.orm import Session, sessionmaker

from portal.db import SessionLocal
from portal.models.card import Card
from portal.models.contact import Contact
from portal.models.task import Category, Task

CARD_UPDATABLE_FIELDS = {"title", "subtitle", "image", "schedule_weekdays"}


class PortalStore:
    """Synchronous read/partial-update access used by the background jobs.

    Rows are returned detached from their session with every column loaded.
    """

    def __init__(self, session_factory: sessionmaker = SessionLocal) -> None:
        self._session_factory = session_factory

    def _session(self) -> Session:
        return self._session_factory()

    def get_all_cards(self) -> list[Card]:
        db = self._session()
        try:
            return db.query(Card).order_by(Card.created_at, Card.id).all()
        finally:
            db.close()

    def update_card(self, card_id: int, **fields) -> Card | None:
        unknown = set(fields) - CARD_UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update card field(s): {', '.join(sorted(unknown))}")
        db = self._session()
        try:
            card = db.get(Card, card_id)
            if card is None:
                return None
            for name, value in fields.items():
                setattr(card, name, value)
            db.commit()
            db.refresh(card)
            return card
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def get_all_tasks(self) -> list[Task]:
        db = self._session()
        try:
            return db.query(Task).order_by(Task.created_at, Task.id).all()
        finally:
            db.close()

    def get_all_categories(self) -> list[Category]:
        db = self._session()
        try:
            return db.query(Category).order_by(Category.id).all()
        finally:
            db.close()

    def get_contacts_by_kind(self, kind: str) -> list[Contact]:
        db = self._session()
        try:
            return db.query(Contact).filter(Contact.kind == kind).order_by(Contact.id).all()
        finally:
            db.close()


store = PortalStore()
