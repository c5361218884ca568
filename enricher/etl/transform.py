"""Utilities for merging Google Places responses into store rows."""

import json
import logging
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

from enricher.core.coerce import COORDINATE_PRECISION, clean, coerce_numeric
from enricher.models import Columns, PhotoReference

logger = logging.getLogger(__name__)

_IGNORE_TYPES = {"point_of_interest", "establishment", "food", "restaurant"}


def parse_postcode_city(address_components: Iterable[Dict[str, Any]]) -> Tuple[str, str]:
    by_type: Dict[str, str] = {}
    for component in address_components or []:
        for type_name in component.get("types", []):
            by_type.setdefault(type_name, component.get("long_name") or "")
    postcode = by_type.get("postal_code", "")
    city = by_type.get("postal_town") or by_type.get("locality") or ""
    return postcode, city


def guess_cuisine(types: Iterable[str], existing: Any = None) -> str:
    """Human-friendly label from the first provider type outside the generic ones."""
    for type_name in types or []:
        if type_name not in _IGNORE_TYPES:
            return type_name.replace("_", " ")
    return clean(existing)


def _first_text(*values: Any) -> str:
    for value in values:
        text = clean(value)
        if text:
            return text
    return ""


def _whole(value: Optional[float]) -> Optional[float]:
    if value is not None and float(value).is_integer():
        return int(value)
    return value


def _opening_hours(details: Mapping[str, Any], existing: Any) -> str:
    weekday_text = (details.get("opening_hours") or {}).get("weekday_text")
    if weekday_text:
        return json.dumps(list(weekday_text))
    return clean(existing) or json.dumps([])


def to_record_fields(
    details: Mapping[str, Any],
    existing: Mapping[str, Any],
    *,
    slug: str,
    place_id: str,
    photo: PhotoReference,
    description: str = "",
) -> Dict[str, Any]:
    """Full merged field set for an enriched record.

    Provider values win when present; otherwise the existing value is kept so a
    sparse provider payload never blanks out data already in the store.
    """
    location = (details.get("geometry") or {}).get("location") or {}
    postcode, city = parse_postcode_city(details.get("address_components", []))

    fields: Dict[str, Any] = {
        Columns.NAME: _first_text(details.get("name"), existing.get(Columns.NAME)),
        Columns.SLUG: slug,
        Columns.PLACE_ID: place_id,
        Columns.ADDRESS: _first_text(details.get("formatted_address"), existing.get(Columns.ADDRESS)),
        Columns.CITY: _first_text(city, existing.get(Columns.CITY)),
        Columns.POSTCODE: _first_text(postcode, existing.get(Columns.POSTCODE)),
        Columns.LAT: coerce_numeric(location.get("lat"), existing.get(Columns.LAT), COORDINATE_PRECISION),
        Columns.LNG: coerce_numeric(location.get("lng"), existing.get(Columns.LNG), COORDINATE_PRECISION),
        Columns.WEBSITE: _first_text(details.get("website"), existing.get(Columns.WEBSITE)),
        Columns.PHONE: _first_text(
            details.get("formatted_phone_number"),
            details.get("international_phone_number"),
            existing.get(Columns.PHONE),
        ),
        Columns.CUISINE: guess_cuisine(details.get("types", []), existing.get(Columns.CUISINE)),
        Columns.PRICE_LEVEL: _whole(coerce_numeric(details.get("price_level"), existing.get(Columns.PRICE_LEVEL))),
        Columns.RATING: coerce_numeric(details.get("rating"), existing.get(Columns.RATING)),
        Columns.USER_RATINGS: _whole(coerce_numeric(details.get("user_ratings_total"), existing.get(Columns.USER_RATINGS))),
        Columns.OPENING_HOURS: _opening_hours(details, existing.get(Columns.OPENING_HOURS)),
        Columns.PHOTO_URL: _first_text(photo.url, existing.get(Columns.PHOTO_URL)),
        Columns.PHOTO_ATTRIBUTION: _first_text(photo.attribution, existing.get(Columns.PHOTO_ATTRIBUTION)),
        Columns.DESCRIPTION: _first_text(description, existing.get(Columns.DESCRIPTION)),
    }
    return {key: value for key, value in fields.items() if value is not None}


def round_coordinates(fields: Dict[str, Any]) -> Dict[str, Any]:
    """Re-apply the coordinate precision ceiling to any write payload."""
    rounded = dict(fields)
    for column in (Columns.LAT, Columns.LNG):
        if column in rounded:
            rounded[column] = coerce_numeric(rounded[column], None, COORDINATE_PRECISION)
            if rounded[column] is None:
                del rounded[column]
    return rounded


def area_for(fields: Mapping[str, Any], default_city: str) -> str:
    return _first_text(fields.get(Columns.CITY), default_city)

