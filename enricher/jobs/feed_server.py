"""HTTP entrypoint serving the restaurant table as a read-only JSON feed."""

from __future__ import annotations

import json
import logging
import math
import threading
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from flask import Flask, jsonify, request

from enricher.core.config import get_settings
from enricher.core.store import RecordStore, open_store
from enricher.models import Columns, StoreRecord

logger = logging.getLogger(__name__)

DEFAULT_TTL_MS = 300000


def numeric_or_none(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value if math.isfinite(value) else None
    try:
        parsed = float(str(value).strip())
    except ValueError:
        return None
    return parsed if math.isfinite(parsed) else None


def parse_opening_hours(value: Any) -> List[Any]:
    if not value:
        return []
    if isinstance(value, list):
        return value
    if isinstance(value, str):
        try:
            parsed = json.loads(value)
        except ValueError:
            return []
        return parsed if isinstance(parsed, list) else []
    return []


def to_restaurant(record: StoreRecord) -> Dict[str, Any]:
    fields = record.fields
    return {
        "id": record.id,
        "name": fields.get(Columns.NAME) or "",
        "slug": fields.get(Columns.SLUG) or "",
        "apiSource": fields.get(Columns.API_SOURCE) or None,
        "apiId": fields.get(Columns.API_ID) or None,
        "placeId": fields.get(Columns.PLACE_ID) or None,
        "address": fields.get(Columns.ADDRESS) or "",
        "city": fields.get(Columns.CITY) or "",
        "postcode": fields.get(Columns.POSTCODE) or "",
        "lat": numeric_or_none(fields.get(Columns.LAT)),
        "lng": numeric_or_none(fields.get(Columns.LNG)),
        "website": fields.get(Columns.WEBSITE) or "",
        "instagram": fields.get(Columns.INSTAGRAM) or "",
        "phone": fields.get(Columns.PHONE) or "",
        "cuisine": fields.get(Columns.CUISINE) or "",
        "priceLevel": numeric_or_none(fields.get(Columns.PRICE_LEVEL)),
        "rating": numeric_or_none(fields.get(Columns.RATING)),
        "userRatings": numeric_or_none(fields.get(Columns.USER_RATINGS)),
        "openingHours": parse_opening_hours(fields.get(Columns.OPENING_HOURS)),
        "photoUrl": fields.get(Columns.PHOTO_URL) or "",
        "photoAttribution": fields.get(Columns.PHOTO_ATTRIBUTION) or "",
        "description": fields.get(Columns.DESCRIPTION) or "",
        "lastEnriched": fields.get(Columns.LAST_ENRICHED) or None,
        "enrichmentStatus": fields.get(Columns.STATUS) or None,
        "notes": fields.get(Columns.NOTES) or "",
    }


class FeedCache:
    """In-memory snapshot of the normalised table with a fixed time-to-live."""

    def __init__(self, store: RecordStore, ttl_ms: int, clock: Callable[[], float] = time.time) -> None:
        self.store = store
        self.ttl_seconds = (ttl_ms if ttl_ms and ttl_ms > 0 else DEFAULT_TTL_MS) / 1000.0
        self._clock = clock
        self._lock = threading.Lock()
        self._data: Optional[List[Dict[str, Any]]] = None
        self._fetched_at = 0.0

    def get(self, force_refresh: bool = False) -> Tuple[List[Dict[str, Any]], float, bool]:
        with self._lock:
            now = self._clock()
            if not force_refresh and self._data is not None and now - self._fetched_at < self.ttl_seconds:
                return self._data, self._fetched_at, True

            records = self.store.query(None, sort=[Columns.NAME])
            self._data = [to_restaurant(record) for record in records]
            self._fetched_at = self._clock()
            return self._data, self._fetched_at, False


def create_app(store: Optional[RecordStore] = None, cache_ttl_ms: Optional[int] = None) -> Flask:
    settings = get_settings()
    ttl_ms = cache_ttl_ms if cache_ttl_ms and cache_ttl_ms > 0 else settings.feed_cache_ttl_ms
    cache = FeedCache(store or open_store(settings), ttl_ms)
    max_age = int(cache.ttl_seconds)

    app = Flask(__name__)
    app.config["FEED_CACHE"] = cache

    @app.after_request
    def add_cors_headers(response):
        response.headers["Access-Control-Allow-Origin"] = "*"
        response.headers["Access-Control-Max-Age"] = str(max_age)
        return response

    @app.get("/")
    def root() -> Any:
        return jsonify({"status": "ok", "endpoints": ["/restaurants"], "cacheTtlMs": int(cache.ttl_seconds * 1000)})

    @app.get("/restaurants")
    def list_restaurants() -> Any:
        force = request.args.get("refresh") == "true"
        slug = (request.args.get("slug") or "").strip().lower()

        try:
            data, fetched_at, cached = cache.get(force_refresh=force)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Failed to load restaurants from Airtable: %s", exc)
            return (
                jsonify({"error": "failed_to_load_restaurants", "message": "Unable to load restaurants from Airtable."}),
                500,
            )

        headers = {
            "Cache-Control": f"public, max-age={max_age}",
            "X-Data-Fresh": "cache" if cached else "live",
        }

        if slug:
            match = next((row for row in data if (row.get("slug") or "").lower() == slug), None)
            if match is None:
                return (
                    jsonify({"error": "restaurant_not_found", "message": f"No restaurant found for slug: {slug}"}),
                    404,
                )
            return jsonify(match), 200, headers

        payload = {
            "generatedAt": datetime.fromtimestamp(fetched_at, tz=timezone.utc).isoformat().replace("+00:00", "Z"),
            "count": len(data),
            "restaurants": data,
        }
        return jsonify(payload), 200, headers

    @app.errorhandler(404)
    def not_found(_error) -> Any:
        return jsonify({"error": "not_found"}), 404

    return app


def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
    )
    settings = get_settings()
    app = create_app()
    logger.info("[BOOT] Binding on %s:%d", settings.host, settings.port)
    app.run(host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
