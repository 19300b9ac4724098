from __future__ import annotations

import re
import unicodedata
import uuid
from datetime import datetime

from sqlalchemy.orm import Query, Session

from tours_api.core.errors import NotFound, ValidationError
from tours_api.models.common import as_utc
from tours_api.models.tour import Tour, TourStartDate
from tours_api.schemas.tours import TourCreate, TourPatch

_SLUG_STRIP_RE = re.compile(r"[^a-z0-9]+")


def slugify(text: str) -> str:
    normalized = unicodedata.normalize("NFKD", str(text or ""))
    ascii_text = normalized.encode("ascii", "ignore").decode("ascii").lower()
    return _SLUG_STRIP_RE.sub("-", ascii_text).strip("-")


def parse_entity_id(raw: str) -> uuid.UUID:
    try:
        return uuid.UUID(str(raw or "").strip())
    except ValueError:
        raise ValidationError(f"Invalid id: {raw}.")


def visible_tours_query(db: Session) -> Query:
    """Every read path starts here so secret tours never leak."""
    return db.query(Tour).filter(Tour.secret_tour.is_(False))


def get_visible_tour(db: Session, tour_id: str) -> Tour:
    tour = visible_tours_query(db).filter(Tour.id == parse_entity_id(tour_id)).first()
    if tour is None:
        raise NotFound("No tour found with that ID")
    return tour


def _check_price_discount(price: float, price_discount: float | None) -> None:
    if price_discount is not None and price_discount >= price:
        raise ValidationError(
            f"Invalid input data. Discount price ({price_discount}) should be below regular price."
        )


def _start_dates(values: list[datetime]) -> list[TourStartDate]:
    return [TourStartDate(starts_at=as_utc(value)) for value in values]


def build_tour(payload: TourCreate) -> Tour:
    _check_price_discount(payload.price, payload.price_discount)
    data = payload.model_dump(exclude={"start_dates"})
    tour = Tour(**data, slug=slugify(payload.name))
    tour.start_dates = _start_dates(payload.start_dates)
    return tour


def create_tour(db: Session, payload: TourCreate) -> Tour:
    tour = build_tour(payload)
    db.add(tour)
    db.commit()
    db.refresh(tour)
    return tour


def apply_tour_changes(tour: Tour, payload: TourPatch) -> Tour:
    changes = payload.model_dump(exclude_unset=True, exclude={"start_dates"})
    for key in ("name", "duration", "max_group_size", "difficulty", "price", "summary", "image_cover", "images", "secret_tour"):
        if key in changes and changes[key] is None:
            raise ValidationError(f"Invalid input data. Field {key} cannot be null.")
    _check_price_discount(changes.get("price", tour.price), changes.get("price_discount", tour.price_discount))
    for key, value in changes.items():
        setattr(tour, key, value)
    if "name" in changes:
        tour.slug = slugify(tour.name)
    if "start_dates" in payload.model_fields_set:
        tour.start_dates = _start_dates(payload.start_dates or [])
    return tour


def update_tour(db: Session, tour_id: str, payload: TourPatch) -> Tour:
    tour = get_visible_tour(db, tour_id)
    apply_tour_changes(tour, payload)
    db.add(tour)
    db.commit()
    db.refresh(tour)
    return tour


def delete_tour(db: Session, tour_id: str) -> None:
    tour = get_visible_tour(db, tour_id)
    db.delete(tour)
    db.commit()
