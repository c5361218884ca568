"""Client utilities for the Google Places API."""

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

import requests

from enricher.models import PhotoReference

logger = logging.getLogger(__name__)
_SESSION = requests.Session()
_BASE_URL = "https://maps.googleapis.com/maps/api/place"
_EMPTY_STATUSES = {"ZERO_RESULTS", "NOT_FOUND"}

DETAIL_FIELDS = (
    "name",
    "formatted_address",
    "geometry/location",
    "website",
    "formatted_phone_number",
    "international_phone_number",
    "opening_hours/weekday_text",
    "type",
    "types",
    "price_level",
    "rating",
    "user_ratings_total",
    "address_components",
    "photos",
)


class GooglePlacesError(RuntimeError):
    """Raised when the Places API returns a non-successful response."""


def _get(endpoint: str, params: Dict[str, Any]) -> Dict[str, Any]:
    response = _SESSION.get(f"{_BASE_URL}/{endpoint}/json", params=params, timeout=10)
    response.raise_for_status()
    payload = response.json()
    status = payload.get("status")
    if status != "OK" and status not in _EMPTY_STATUSES:
        logger.error("%s failed: status=%s, error_message=%s", endpoint, status, payload.get("error_message"))
        raise GooglePlacesError(payload.get("error_message") or status)
    return payload


def text_search(query: str, api_key: str, region: Optional[str] = None) -> Dict[str, Any]:
    params = {"query": query, "key": api_key}
    if region:
        params["region"] = region
    return _get("textsearch", params)


def find_place_id(name: str, city: str, country: str, api_key: str, region: Optional[str] = None) -> Optional[str]:
    """Return the place id of the best text-search match, or ``None`` when nothing matches."""
    query = ", ".join(part for part in (name, city, country) if part).strip()
    if not query:
        raise ValueError("A name is required to look up a place")
    results = text_search(query, api_key, region=region).get("results") or []
    if not results:
        logger.info("No Places match for query=%s", query)
        return None
    return results[0].get("place_id") or None


def place_details(place_id: str, api_key: str, region: Optional[str] = None) -> Optional[Dict[str, Any]]:
    """Fetch structured details for a place; ``None`` when the payload is empty."""
    params = {"place_id": place_id, "key": api_key, "fields": ",".join(DETAIL_FIELDS)}
    if region:
        params["region"] = region
    payload = _get("details", params)
    result = payload.get("result")
    if payload.get("status") != "OK" or not result:
        logger.warning("place_details returned no result for %s (status=%s)", place_id, payload.get("status"))
        return None
    return result


def build_photo_url(photo_reference: str, api_key: str, max_width: int = 1200) -> str:
    if not photo_reference:
        return ""
    params = urlencode({"maxwidth": str(max_width), "photoreference": photo_reference, "key": api_key})
    return f"{_BASE_URL}/photo?{params}"


def build_photo_attribution(photo: Optional[Dict[str, Any]]) -> str:
    attributions: List[str] = (photo or {}).get("html_attributions") or []
    return " ".join(attributions)


class GooglePlacesProvider:
    """Place lookup, detail fetch and photo URL synthesis bound to one API key."""

    def __init__(self, api_key: str, *, region: Optional[str] = "gb", photo_max_width: int = 1200) -> None:
        self.api_key = api_key
        self.region = region
        self.photo_max_width = photo_max_width

    def lookup_identifier(self, name: str, city: str, country: str) -> Optional[str]:
        return find_place_id(name, city, country, self.api_key, region=self.region)

    def fetch_details(self, place_id: str) -> Optional[Dict[str, Any]]:
        return place_details(place_id, self.api_key, region=self.region)

    def synthesize_photo(self, details: Dict[str, Any]) -> PhotoReference:
        photos = details.get("photos") or []
        if not photos:
            return PhotoReference()
        first = photos[0]
        return PhotoReference(
            url=build_photo_url(first.get("photo_reference", ""), self.api_key, self.photo_max_width),
            attribution=build_photo_attribution(first),
        )
