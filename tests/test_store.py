import pytest
import requests

from enricher.core import store as store_module
from enricher.core.config import ConfigError, Settings
from enricher.core.filters import IsBlank
from enricher.core.store import RecordStore, StoreError, StoreNotFoundError, UnknownFieldError, translate_http_error


class DummyResponse:
    def __init__(self, status_code, payload=None):
        self.status_code = status_code
        self._payload = payload

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


def http_error(status_code, payload=None):
    return requests.HTTPError(f"{status_code} error", response=DummyResponse(status_code, payload))


class DummyTable:
    def __init__(self, rows=None, error=None, page_size=100):
        self.rows = rows or []
        self.error = error
        self.page_size = page_size
        self.calls = []
        self.pages_served = 0

    def iterate(self, **options):
        self.calls.append(("iterate", options))
        if self.error is not None:
            raise self.error
        for start in range(0, len(self.rows), self.page_size):
            self.pages_served += 1
            yield self.rows[start : start + self.page_size]

    def update(self, record_id, fields):
        self.calls.append(("update", record_id, fields))
        if self.error is not None:
            raise self.error
        return {"id": record_id, "fields": fields}

    def create(self, fields):
        self.calls.append(("create", fields))
        return {"id": "recNew", "fields": fields, "createdTime": "2024-05-01T00:00:00.000Z"}


def test_translate_unknown_field():
    error = translate_http_error(
        http_error(422, {"error": {"type": "UNKNOWN_FIELD_NAME", "message": 'Unknown field name: "Notes"'}})
    )
    assert isinstance(error, UnknownFieldError)
    assert error.field_name == "Notes"


@pytest.mark.parametrize(
    "status_code, payload",
    [
        (404, {"error": "NOT_FOUND"}),
        (401, {"error": {"type": "AUTHENTICATION_REQUIRED", "message": "Authentication required"}}),
        (403, {"error": {"type": "INVALID_PERMISSIONS_OR_MODEL_NOT_FOUND", "message": "Invalid permissions"}}),
    ],
)
def test_translate_fatal_errors(status_code, payload):
    assert isinstance(translate_http_error(http_error(status_code, payload)), StoreNotFoundError)


def test_translate_other_errors():
    error = translate_http_error(http_error(500))
    assert type(error) is StoreError
    assert "500" in str(error)


def test_query_pushes_formula_down(limiter):
    table = DummyTable(rows=[{"id": "rec1", "fields": {"Name": "Cafe X"}}])
    records = RecordStore(table, limiter).query(IsBlank("Place ID"), max_records=5, sort=["Name"])

    assert records[0].id == "rec1"
    assert records[0].fields == {"Name": "Cafe X"}
    assert table.calls == [("iterate", {"formula": "{Place ID} = BLANK()", "max_records": 5, "sort": ["Name"]})]
    # One paced call for the page, one for the exhausted iterator.
    assert limiter.calls == 2


def test_query_paces_every_page_and_stops_at_max_records(limiter):
    rows = [{"id": f"rec{n}", "fields": {"Name": f"Cafe {n}"}} for n in range(7)]
    table = DummyTable(rows=rows, page_size=2)

    records = RecordStore(table, limiter).query(None, max_records=3)

    assert [record.id for record in records] == ["rec0", "rec1", "rec2"]
    assert table.pages_served == 2
    assert limiter.calls == 2


def test_query_translates_errors_raised_while_paging(limiter):
    table = DummyTable(error=http_error(503))
    with pytest.raises(StoreError):
        RecordStore(table, limiter).query(None)


def test_find_by_slug_and_create(limiter):
    table = DummyTable()
    store = RecordStore(table, limiter)

    assert store.find_by_slug("cafe-x") is None
    created = store.create({"Slug": "cafe-x"})

    assert table.calls[0] == ("iterate", {"formula": "{Slug} = 'cafe-x'", "max_records": 1})
    assert created.id == "recNew"
    assert created.created_time == "2024-05-01T00:00:00.000Z"


def test_http_errors_are_translated(limiter):
    table = DummyTable(error=http_error(404, {"error": "NOT_FOUND"}))
    with pytest.raises(StoreNotFoundError):
        RecordStore(table, limiter).update("rec1", {"Name": "x"})


def test_open_store_requires_credentials():
    with pytest.raises(ConfigError, match="AIRTABLE_API_KEY"):
        store_module.open_store(Settings(airtable_api_key="", airtable_base_id="app"))


def test_open_store_builds_table(monkeypatch):
    opened = {}

    class DummyApi:
        def __init__(self, api_key):
            opened["key"] = api_key

        def table(self, base_id, table_name):
            opened["table"] = (base_id, table_name)
            return DummyTable()

    monkeypatch.setattr(store_module, "Api", DummyApi)
    store = store_module.open_store(Settings(airtable_api_key="pat", airtable_base_id="app", airtable_table_name="Venues"))

    assert isinstance(store, RecordStore)
    assert opened == {"key": "pat", "table": ("app", "Venues")}
