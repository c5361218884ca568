"""Pure helpers for normalising values before they are written to the store."""

import logging
import math
import re
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from slugify import slugify

logger = logging.getLogger(__name__)

COORDINATE_PRECISION = 8
DATE_GRANULARITY = "date"
DATETIME_GRANULARITY = "datetime"

_TIME_COMPONENT = re.compile(r"[T\s]\d{1,2}:\d{2}")


def clean(value: Any) -> str:
    """Stringify and strip a store value; ``None`` becomes an empty string."""
    if value is None:
        return ""
    return str(value).strip()


def to_slug(name: Any) -> str:
    return slugify(clean(name), lowercase=True)


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _parse_finite(value: Any) -> Optional[float]:
    if _is_empty(value) or isinstance(value, bool):
        return None
    try:
        number = float(str(value).strip()) if isinstance(value, str) else float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


def round_to_precision(value: float, precision: int) -> float:
    factor = 10 ** precision
    scaled = value * factor
    if not math.isfinite(scaled):
        # Magnitudes this large carry no fractional digits to round.
        return value
    return round(scaled) / factor


def coerce_numeric(incoming: Any, existing: Any, precision: Optional[int] = None) -> Optional[float]:
    """Prefer ``incoming`` when it parses to a finite number, else ``existing``.

    Returns ``None`` when neither value is usable. When ``precision`` is given the
    result is rounded with multiply-round-divide so the store's decimal ceiling is
    respected regardless of locale.
    """
    number = _parse_finite(incoming)
    if number is None:
        number = _parse_finite(existing)
    if number is None:
        if not _is_empty(incoming) and not _is_empty(existing):
            logger.warning("Unable to parse numeric value from incoming=%r or existing=%r", incoming, existing)
        return None
    if precision is not None:
        number = round_to_precision(number, precision)
    return number


def resolve_timestamp_granularity(existing_value: Any) -> str:
    """Pick the granularity for a ``Last Enriched`` stamp.

    New records get a date-only value. An existing value keeps its granularity:
    values with a time component are re-stamped with a full date-time.
    """
    existing = clean(existing_value)
    if not existing:
        return DATE_GRANULARITY
    if _TIME_COMPONENT.search(existing):
        return DATETIME_GRANULARITY
    return DATE_GRANULARITY


def stamp_last_enriched(existing_value: Any, now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    if resolve_timestamp_granularity(existing_value) == DATETIME_GRANULARITY:
        return now.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
    return now.astimezone(timezone.utc).date().isoformat()


def match_configured_label(desired: Any, configured_options: Iterable[str]) -> Optional[str]:
    """Case-insensitive exact match of ``desired`` against the configured options."""
    options = [option for option in configured_options or [] if clean(option)]
    wanted = clean(desired).lower()
    if not wanted:
        return None
    for option in options:
        if clean(option).lower() == wanted:
            return option
    logger.warning("Label %r is not configured; valid options are: %s", desired, ", ".join(options) or "(none)")
    return None
