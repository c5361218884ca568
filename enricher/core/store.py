"""Airtable-backed record store used by the enrichment jobs and the feed."""

import logging
import re
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

import requests
from pyairtable import Api

from enricher.core.config import Settings, require
from enricher.core.filters import Equals, Filter
from enricher.core.ratelimit import RateLimiter
from enricher.models import Columns, StoreRecord

logger = logging.getLogger(__name__)

_FATAL_ERROR_TYPES = {
    "NOT_FOUND",
    "TABLE_NOT_FOUND",
    "MODEL_ID_NOT_FOUND",
    "INVALID_PERMISSIONS_OR_MODEL_NOT_FOUND",
    "AUTHENTICATION_REQUIRED",
}
_UNKNOWN_FIELD_TYPE = "UNKNOWN_FIELD_NAME"
_UNKNOWN_FIELD_NAME = re.compile(r'[Uu]nknown field name:?\s*"?([^"]+)"?')


class StoreError(RuntimeError):
    """Raised when a store request fails."""


class StoreNotFoundError(StoreError):
    """Raised when the base or table cannot be reached; aborts the whole run."""


class UnknownFieldError(StoreError):
    """Raised when a write names a column that does not exist in the table."""

    def __init__(self, message: str, field_name: Optional[str] = None) -> None:
        super().__init__(message)
        self.field_name = field_name


def _error_details(exc: requests.HTTPError) -> Tuple[int, str, str]:
    response = exc.response
    status_code = response.status_code if response is not None else 0
    error_type, message = "", ""
    try:
        payload = response.json() if response is not None else {}
    except ValueError:
        payload = {}
    error = payload.get("error") if isinstance(payload, dict) else None
    if isinstance(error, dict):
        error_type = str(error.get("type") or "")
        message = str(error.get("message") or "")
    elif isinstance(error, str):
        error_type = error
    return status_code, error_type, message


def translate_http_error(exc: requests.HTTPError) -> StoreError:
    """Map an Airtable HTTP failure onto the store error taxonomy."""
    status_code, error_type, message = _error_details(exc)
    description = message or error_type or str(exc)
    if error_type == _UNKNOWN_FIELD_TYPE:
        match = _UNKNOWN_FIELD_NAME.search(message)
        field_name = match.group(1).strip() if match else None
        return UnknownFieldError(description, field_name=field_name)
    if status_code in (401, 404) or error_type in _FATAL_ERROR_TYPES:
        return StoreNotFoundError(f"Airtable returned {status_code} {error_type}: {description}".strip())
    return StoreError(f"Airtable request failed ({status_code}): {description}")


class RecordStore:
    """Find/update/create rows in one Airtable table through the shared limiter."""

    def __init__(self, table: Any, limiter: Optional[RateLimiter] = None) -> None:
        self.table = table
        self.limiter = limiter or RateLimiter()

    def _call(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        try:
            return self.limiter.schedule(fn, *args, **kwargs)
        except requests.HTTPError as exc:
            raise translate_http_error(exc) from exc

    def query(self, where: Optional[Filter], max_records: Optional[int] = None, sort: Optional[List[str]] = None) -> List[StoreRecord]:
        options: Dict[str, Any] = {}
        if where is not None:
            options["formula"] = where.to_formula()
        if max_records:
            options["max_records"] = max_records
        if sort:
            options["sort"] = sort
        logger.debug("Querying store with %s", options)

        # iterate() is lazy; each page request is paced separately.
        pages: Iterator[List[Dict[str, Any]]] = iter(self.table.iterate(**options))
        records: List[StoreRecord] = []
        while True:
            page = self._call(next, pages, None)
            if page is None:
                break
            records.extend(StoreRecord.from_api(row) for row in page)
            if max_records and len(records) >= max_records:
                break
        return records[:max_records] if max_records else records

    def update(self, record_id: str, fields: Dict[str, Any]) -> StoreRecord:
        return StoreRecord.from_api(self._call(self.table.update, record_id, fields))

    def create(self, fields: Dict[str, Any]) -> StoreRecord:
        return StoreRecord.from_api(self._call(self.table.create, fields))

    def find_by_slug(self, slug: str) -> Optional[StoreRecord]:
        found = self.query(Equals(Columns.SLUG, slug), max_records=1)
        return found[0] if found else None


def open_store(settings: Settings, limiter: Optional[RateLimiter] = None) -> RecordStore:
    api_key = require(settings.airtable_api_key, "AIRTABLE_API_KEY")
    base_id = require(settings.airtable_base_id, "AIRTABLE_BASE_ID")
    table = Api(api_key).table(base_id, settings.airtable_table_name)
    logger.info("Using Airtable table %s in base %s", settings.airtable_table_name, base_id)
    return RecordStore(table, limiter)
