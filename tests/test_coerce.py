from datetime import datetime, timezone

import pytest

from enricher.core import coerce


def test_coerce_numeric_prefers_incoming():
    assert coerce.coerce_numeric("4.5", 3) == 4.5
    assert coerce.coerce_numeric(None, "3.2") == 3.2
    assert coerce.coerce_numeric("", "") is None


def test_coerce_numeric_rejects_non_finite(caplog):
    with caplog.at_level("WARNING"):
        assert coerce.coerce_numeric("nan", "inf") is None
    assert any("Unable to parse numeric value" in message for message in caplog.messages)


def test_coerce_numeric_keeps_huge_values_unrounded():
    assert coerce.coerce_numeric("1e305", None, 8) == 1e305
    assert coerce.coerce_numeric(None, -1e305, 8) == -1e305


def test_coerce_numeric_rounds_to_precision():
    assert coerce.coerce_numeric(-0.123456789, None, 8) == -0.12345679
    assert coerce.coerce_numeric("51.5", None, 8) == 51.5


@pytest.mark.parametrize("value", [51.123456789, -0.123456789, 0.000000015])
def test_rounding_is_idempotent(value):
    once = coerce.round_to_precision(value, 8)
    assert coerce.round_to_precision(once, 8) == once


@pytest.mark.parametrize(
    "existing, expected",
    [
        (None, "date"),
        ("", "date"),
        ("2024-01-01", "date"),
        ("2024-01-01T10:00:00.000Z", "datetime"),
        ("2024-01-01 9:30", "datetime"),
    ],
)
def test_resolve_timestamp_granularity(existing, expected):
    assert coerce.resolve_timestamp_granularity(existing) == expected


def test_stamp_last_enriched_formats():
    now = datetime(2024, 5, 1, 12, 30, 15, 123000, tzinfo=timezone.utc)
    assert coerce.stamp_last_enriched(None, now) == "2024-05-01"
    assert coerce.stamp_last_enriched("2023-02-03T08:00:00Z", now) == "2024-05-01T12:30:15.123Z"


def test_match_configured_label_is_case_insensitive(caplog):
    options = ["Pending", "Enriched", "Error"]
    assert coerce.match_configured_label("enriched", options) == "Enriched"
    with caplog.at_level("WARNING"):
        assert coerce.match_configured_label("not_found", options) is None
    assert "Pending, Enriched, Error" in caplog.messages[-1]


def test_to_slug():
    assert coerce.to_slug("Café X") == "cafe-x"
    assert coerce.to_slug("  Dishoom  Shoreditch ") == "dishoom-shoreditch"
    assert coerce.clean(None) == ""
