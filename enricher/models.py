"""Core data models shared by the enrichment jobs and the feed server."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional


class Columns:
    """Airtable column names used by every job."""

    NAME = "Name"
    SLUG = "Slug"
    API_SOURCE = "API Source"
    API_ID = "API ID"
    PLACE_ID = "Place ID"
    ADDRESS = "Address"
    CITY = "City"
    POSTCODE = "Postcode"
    LAT = "Lat"
    LNG = "Lng"
    WEBSITE = "Website"
    INSTAGRAM = "Instagram"
    PHONE = "Phone"
    CUISINE = "Cuisine"
    PRICE_LEVEL = "Price Level"
    RATING = "Rating"
    USER_RATINGS = "User Ratings"
    OPENING_HOURS = "Opening Hours JSON"
    PHOTO_URL = "Photo URL"
    PHOTO_ATTRIBUTION = "Photo Attribution"
    DESCRIPTION = "Description"
    LAST_ENRICHED = "Last Enriched"
    STATUS = "Enrichment Status"
    NOTES = "Notes"


@dataclass(slots=True)
class StoreRecord:
    """A single row returned by the record store."""

    id: str
    fields: Dict[str, Any] = field(default_factory=dict)
    created_time: Optional[str] = field(default=None, repr=False)

    @classmethod
    def from_api(cls, payload: Dict[str, Any]) -> "StoreRecord":
        return cls(
            id=payload["id"],
            fields=dict(payload.get("fields") or {}),
            created_time=payload.get("createdTime"),
        )


@dataclass(slots=True, frozen=True)
class PhotoReference:
    url: str = ""
    attribution: str = ""


@dataclass(slots=True, frozen=True)
class DescriptionContext:
    """Inputs used to build a description prompt for one restaurant."""

    name: str
    slug: str = ""
    cuisine: str = ""
    area: str = ""


@dataclass(slots=True, frozen=True)
class ProfileLinkResult:
    """Outcome of a profile-link lookup: status is found, not_found or error."""

    url: str = ""
    status: str = "not_found"
    reason: Optional[str] = None

    @property
    def found(self) -> bool:
        return self.status == "found" and bool(self.url)
