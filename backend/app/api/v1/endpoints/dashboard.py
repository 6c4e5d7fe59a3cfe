from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from backend.app.api.deps import get_db
from backend.services.dashboard import dashboard_stats

router = APIRouter(prefix="/dashboard")


@router.get("/stats")
def get_dashboard_stats(db: Session = Depends(get_db)):
    return dashboard_stats(db)
