import json
from datetime import datetime, timedelta, timezone
from sqlalchemy.orm import Session
from portal.db import SessionLocal, Base, engine
from portal.models.card import Card
from portal.models.contact import Contact
from portal.models.task import Category, Task


def _iso(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def seed() -> None:
    Base.metadata.create_all(bind=engine)
    db: Session = SessionLocal()
    try:
        general = Category(name="Geral", color="#3b82f6")
        urgent = Category(name="Urgente", color="#ef4444")
        db.add(general)
        db.add(urgent)
        db.commit()
        db.refresh(general)
        db.refresh(urgent)

        db.add(Task(title="Atualizar mural de avisos", category_id=general.id))
        db.add(Task(title="Conferir agenda de coletas", category_id=urgent.id, completed=True))
        db.commit()

        now = datetime.now(timezone.utc)
        welcome = Card(title="Bem-vindo", subtitle="Portal interno", image="/uploads/welcome.png")
        campaign = Card(
            title="Campanha",
            subtitle="Troca automatica de banner",
            image="/uploads/campaign-default.png",
            schedule_weekdays=json.dumps(
                [
                    {
                        "startDate": _iso(now + timedelta(minutes=1)),
                        "endDate": _iso(now + timedelta(hours=1)),
                        "image": "/uploads/campaign-week.png",
                    },
                    {
                        "startDate": _iso(now + timedelta(hours=1)),
                        "image": "/uploads/campaign-after.png",
                    },
                ]
            ),
        )
        db.add(welcome)
        db.add(campaign)
        db.commit()

        db.add(Contact(kind="ramais", name="Recepcao", number="1000", department="Administrativo"))
        db.add(Contact(kind="ramais", name="Suporte TI", number="2001", department="TI", setor="Infraestrutura"))
        db.add(Contact(kind="departments", name="Administrativo"))
        db.add(Contact(kind="companies", name="Matriz"))
        db.commit()
    finally:
        db.close()


if __name__ == "__main__":
    seed()
