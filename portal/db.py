from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy import text
import os

DATABASE_URL = os.getenv("PORTAL_DATABASE_URL", "sqlite:///./portal.db")


def _connect_args(url: str) -> dict:
    if url.startswith("sqlite"):
        return {"check_same_thread": False}
    return {}


engine = create_engine(DATABASE_URL, connect_args=_connect_args(DATABASE_URL))
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)

Base = declarative_base()


def ensure_sqlite_schema(bind=None):
    """
    Lightweight runtime schema patching for SQLite.

    `Base.metadata.create_all()` won't add new columns to existing tables.
    This keeps local/dev installs working without requiring Alembic.
    """
    bind = bind if bind is not None else engine
    if not str(bind.url).startswith("sqlite"):
        return

    with bind.begin() as conn:
        card_cols = conn.execute(text("PRAGMA table_info(card)")).fetchall()
        card_col_names = {row[1] for row in card_cols}  # (cid, name, type, notnull, dflt_value, pk)
        if card_cols and "schedule_weekdays" not in card_col_names:
            conn.execute(text("ALTER TABLE card ADD COLUMN schedule_weekdays TEXT"))
        if card_cols and "subtitle" not in card_col_names:
            conn.execute(text("ALTER TABLE card ADD COLUMN subtitle VARCHAR"))
        if card_cols:
            # Older clients saved an empty array instead of clearing the column.
            conn.execute(
                text(
                    "UPDATE card SET schedule_weekdays=NULL "
                    "WHERE schedule_weekdays IS NOT NULL AND trim(schedule_weekdays) IN ('', '[]')"
                )
            )

        contact_cols = conn.execute(text("PRAGMA table_info(contact)")).fetchall()
        contact_col_names = {row[1] for row in contact_cols}
        if contact_cols and "email" not in contact_col_names:
            conn.execute(text("ALTER TABLE contact ADD COLUMN email VARCHAR"))
        if contact_cols and "setor" not in contact_col_names:
            conn.execute(text("ALTER TABLE contact ADD COLUMN setor VARCHAR"))
        if contact_cols:
            conn.execute(
                text(
                    "UPDATE contact SET kind='ramais' "
                    "WHERE kind IS NULL OR trim(kind)=''"
                )
            )
