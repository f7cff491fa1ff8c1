# grain/api/deps.py
from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from fastapi import Depends, HTTPException
from sqlalchemy.orm import Session

from grain.clock import Clock, SystemClock
from grain.db import get_db
from grain.errors import GrainError, RecordNotFoundError
from grain.store import RecordStore, SqlRecordStore


def get_clock() -> Clock:
    return SystemClock()


def get_store(
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> RecordStore:
    """
    Request-scoped record store.

    db must be injected via Depends(get_db) so tests can swap the session
    through app.dependency_overrides.
    """
    return SqlRecordStore(db, clock=clock)


@contextmanager
def domain_errors() -> Iterator[None]:
    """Translate grain domain errors into HTTP errors."""
    try:
        yield
    except RecordNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except GrainError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
