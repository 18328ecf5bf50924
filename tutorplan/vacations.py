"""Closed periods that block bookings."""
from __future__ import annotations

from datetime import date
from typing import Optional

from flask import current_app

from .auth import Identity, require_admin
from .errors import ValidationError
from .models import Vacation
from .store import EntityKind, ResourceStore


def create_vacation(
    actor: Identity | None,
    *,
    name: str,
    start_date: date,
    end_date: date,
    notes: Optional[str] = None,
    store: ResourceStore | None = None,
) -> Vacation:
    require_admin(actor)
    name = (name or "").strip()
    if not name:
        raise ValidationError("Vacation name is required")
    if end_date < start_date:
        raise ValidationError("end_date must not be before start_date")
    store = store or ResourceStore()
    with store.transaction():
        vacation = store.add_vacation(
            Vacation(name=name, start_date=start_date, end_date=end_date, notes=notes)
        )
        vacation_id = vacation.id
    current_app.logger.info(
        "Created vacation %s (%s to %s)", vacation_id, start_date.isoformat(), end_date.isoformat()
    )
    return store.require(EntityKind.VACATION, vacation_id)


def delete_vacation(
    actor: Identity | None, vacation_id: int, *, store: ResourceStore | None = None
) -> None:
    require_admin(actor)
    store = store or ResourceStore()
    with store.transaction():
        store.delete_vacation(store.require(EntityKind.VACATION, vacation_id))
    current_app.logger.info("Deleted vacation %s", vacation_id)


def list_vacations(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    *,
    store: ResourceStore | None = None,
) -> list[Vacation]:
    store = store or ResourceStore()
    return store.vacations_between(start_date or date.min, end_date or date.max)
