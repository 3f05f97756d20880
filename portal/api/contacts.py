from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from portal.db import SessionLocal
from portal.models.contact import CONTACT_KINDS, Contact
from portal.schemas.contact import ContactOut

router = APIRouter(prefix="/api/contacts", tags=["contacts"])


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@router.get("", response_model=list[ContactOut])
def list_contacts(kind: str | None = None, db: Session = Depends(get_db)):
    query = db.query(Contact)
    if kind is not None:
        normalized = kind.strip().lower()
        if normalized not in CONTACT_KINDS:
            raise HTTPException(
                status_code=400,
                detail=f"kind must be one of: {', '.join(CONTACT_KINDS)}",
            )
        query = query.filter(Contact.kind == normalized)
    return query.order_by(Contact.id).all()
