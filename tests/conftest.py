import sys
from pathlib import Path

import pytest

# Ensure the `enricher` package is importable when running pytest from the project root.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from enricher.core import config  # noqa: E402
from enricher.core.store import StoreNotFoundError, UnknownFieldError  # noqa: E402
from enricher.models import PhotoReference, StoreRecord  # noqa: E402


class InMemoryStore:
    """Record store double that evaluates filter expressions locally."""

    def __init__(self, rows=None, missing_columns=(), unreachable=False, write_error=None):
        self.rows = {}
        self.missing_columns = set(missing_columns)
        self.unreachable = unreachable
        self.write_error = write_error
        self.queries = []
        self.writes = []
        self.rejected = []
        self._next_id = 1
        for fields in rows or []:
            self.add(fields)

    def add(self, fields, record_id=None):
        record_id = record_id or f"rec{self._next_id}"
        self._next_id += 1
        self.rows[record_id] = dict(fields)
        return record_id

    def _check(self, fields=None):
        if self.unreachable:
            raise StoreNotFoundError("Airtable returned 404 NOT_FOUND")
        if fields is None:
            return
        if self.write_error is not None:
            raise self.write_error
        for name in fields:
            if name in self.missing_columns:
                self.rejected.append(dict(fields))
                raise UnknownFieldError(f'Unknown field name: "{name}"', field_name=name)

    def query(self, where, max_records=None, sort=None):
        self._check()
        self.queries.append((where, max_records))
        matched = [
            StoreRecord(id=record_id, fields=dict(fields))
            for record_id, fields in self.rows.items()
            if where is None or where.matches(fields, record_id)
        ]
        if sort:
            matched.sort(key=lambda record: str(record.fields.get(sort[0]) or ""))
        return matched[:max_records] if max_records else matched

    def update(self, record_id, fields):
        self._check(fields)
        self.writes.append(("update", record_id, dict(fields)))
        self.rows[record_id].update(fields)
        return StoreRecord(id=record_id, fields=dict(self.rows[record_id]))

    def create(self, fields):
        self._check(fields)
        record_id = self.add(fields)
        self.writes.append(("create", record_id, dict(fields)))
        return StoreRecord(id=record_id, fields=dict(self.rows[record_id]))

    def find_by_slug(self, slug):
        self._check()
        for record_id, fields in self.rows.items():
            if fields.get("Slug") == slug:
                return StoreRecord(id=record_id, fields=dict(fields))
        return None


class StubPlaces:
    """Places provider double keyed by restaurant name and place id."""

    def __init__(self, ids=None, details=None, failures=None):
        self.ids = dict(ids or {})
        self.details = dict(details or {})
        self.failures = dict(failures or {})
        self.lookups = []
        self.detail_calls = []

    def lookup_identifier(self, name, city, country):
        self.lookups.append((name, city, country))
        return self.ids.get(name)

    def fetch_details(self, place_id):
        self.detail_calls.append(place_id)
        failure = self.failures.get(place_id)
        if failure is not None:
            raise failure
        return self.details.get(place_id)

    def synthesize_photo(self, details):
        photos = details.get("photos") or []
        if not photos:
            return PhotoReference()
        first = photos[0]
        return PhotoReference(
            url=f"https://photos.test/{first['photo_reference']}",
            attribution=" ".join(first.get("html_attributions", [])),
        )


class NoWaitLimiter:
    def __init__(self):
        self.calls = 0

    def schedule(self, fn, *args, **kwargs):
        self.calls += 1
        return fn(*args, **kwargs)


@pytest.fixture(autouse=True)
def clear_settings_cache():
    config.get_settings.cache_clear()
    yield
    config.get_settings.cache_clear()


@pytest.fixture
def store_factory():
    return InMemoryStore


@pytest.fixture
def stub_places():
    return StubPlaces


@pytest.fixture
def limiter():
    return NoWaitLimiter()
