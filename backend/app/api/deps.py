from __future__ import annotations

from typing import Generator

from sqlalchemy.orm import Session

from backend.app.db.session import SessionLocal

def get_db() -> Generator[Session, None, None]:
    """One session per request; services commit or roll back themselves."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
