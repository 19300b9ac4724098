from __future__ import annotations

from collections import defaultdict
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import func
from sqlalchemy.orm import Session

from tours_api.core.errors import ValidationError
from tours_api.models.common import as_utc
from tours_api.models.tour import Tour, TourStartDate
from tours_api.services.tours import visible_tours_query

STATS_MIN_RATING = 4.5
MONTHLY_PLAN_LIMIT = 12


def _round(value, digits: int = 2):
    return round(float(value), digits) if value is not None else None


def tour_stats(db: Session) -> list[dict[str, Any]]:
    difficulty = func.upper(Tour.difficulty)
    avg_price = func.avg(Tour.price)
    rows = (
        visible_tours_query(db)
        .with_entities(
            difficulty.label("difficulty"),
            func.count(Tour.id).label("num_tours"),
            func.sum(Tour.ratings_quantity).label("num_ratings"),
            func.avg(Tour.ratings_average).label("avg_rating"),
            avg_price.label("avg_price"),
            func.min(Tour.price).label("min_price"),
            func.max(Tour.price).label("max_price"),
        )
        .filter(Tour.ratings_average >= STATS_MIN_RATING)
        .group_by(difficulty)
        .order_by(avg_price.asc())
        .all()
    )
    return [
        {
            "difficulty": row.difficulty,
            "numTours": int(row.num_tours or 0),
            "numRatings": int(row.num_ratings or 0),
            "avgRating": _round(row.avg_rating),
            "avgPrice": _round(row.avg_price),
            "minPrice": row.min_price,
            "maxPrice": row.max_price,
        }
        for row in rows
    ]


def monthly_plan(db: Session, year: int) -> list[dict[str, Any]]:
    if year < 1 or year > 9998:
        raise ValidationError(f"Invalid year: {year}.")
    start = datetime(year, 1, 1, tzinfo=timezone.utc)
    end = datetime(year + 1, 1, 1, tzinfo=timezone.utc)
    rows = (
        db.query(TourStartDate.starts_at, Tour.name)
        .join(Tour, TourStartDate.tour_id == Tour.id)
        .filter(
            Tour.secret_tour.is_(False),
            TourStartDate.starts_at >= start,
            TourStartDate.starts_at < end,
        )
        .order_by(TourStartDate.starts_at.asc(), Tour.name.asc())
        .all()
    )
    by_month: dict[int, list[str]] = defaultdict(list)
    for starts_at, name in rows:
        by_month[as_utc(starts_at).month].append(name)
    plan = [
        {"month": month, "numTourStarts": len(names), "tours": names}
        for month, names in by_month.items()
    ]
    plan.sort(key=lambda item: (-item["numTourStarts"], item["month"]))
    return plan[:MONTHLY_PLAN_LIMIT]
