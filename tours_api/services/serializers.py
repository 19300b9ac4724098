from __future__ import annotations

import enum
import uuid
from collections.abc import Iterable
from datetime import date, datetime
from typing import Any

from pydantic.alias_generators import to_camel

from tours_api.models.common import as_utc
from tours_api.models.tour import Tour
from tours_api.models.user import User

TOUR_OUTPUT_FIELDS = (
    "id",
    "name",
    "slug",
    "duration",
    "max_group_size",
    "difficulty",
    "ratings_average",
    "ratings_quantity",
    "price",
    "price_discount",
    "summary",
    "description",
    "image_cover",
    "images",
    "start_dates",
    "secret_tour",
    "created_at",
    "updated_at",
)

USER_PROTECTED_FIELDS = (
    "password_hash",
    "password_version",
    "password_reset_token",
    "password_reset_expires",
    "active",
)
USER_HIDDEN_FIELDS = ("password_changed_at",)
USER_OUTPUT_FIELDS = ("id", "name", "email", "photo", "role", "created_at", "updated_at")


def json_value(value: Any) -> Any:
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, datetime):
        return as_utc(value).isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, enum.Enum):
        return value.value
    return value


def tour_to_dict(tour: Tour, fields: Iterable[str] | None = None) -> dict[str, Any]:
    payload: dict[str, Any] = {}
    for key in fields or TOUR_OUTPUT_FIELDS:
        if key == "start_dates":
            payload["startDates"] = [json_value(item.starts_at) for item in tour.start_dates]
        else:
            payload[to_camel(key)] = json_value(getattr(tour, key))
    return payload


def user_to_dict(user: User, fields: Iterable[str] | None = None) -> dict[str, Any]:
    keys = [key for key in (fields or USER_OUTPUT_FIELDS) if key not in USER_PROTECTED_FIELDS]
    return {to_camel(key): json_value(getattr(user, key)) for key in keys}
