from __future__ import annotations
from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.orm import Session

from insurer_consent.db.deps import get_db

router = APIRouter(tags=["health"])

@router.get("/health", summary="Liveness and database reachability")
def health(db: Session = Depends(get_db)):
    db.execute(text("SELECT 1"))
    return {"status": "ok"}
