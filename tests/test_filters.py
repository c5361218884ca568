import pytest

from enricher.core.config import DEFAULT_STATUS_OPTIONS
from enricher.core.eligibility import build_eligibility_filter
from enricher.core.filters import Always, And, Equals, IsBlank, Not, Or, RecordIdIn, quote
from enricher.core.status import StatusLabels


def test_quote_escapes_single_quotes():
    assert quote("Bob's") == "'Bob\\'s'"


def test_formulas_render():
    assert IsBlank("Place ID").to_formula() == "{Place ID} = BLANK()"
    assert Equals("Slug", "cafe-x").to_formula() == "{Slug} = 'cafe-x'"
    assert Not(IsBlank("Website")).to_formula() == "NOT({Website} = BLANK())"
    assert Or(IsBlank("A")).to_formula() == "{A} = BLANK()"
    assert And(IsBlank("A"), Always()).to_formula() == "AND({A} = BLANK(), TRUE())"


def test_compound_requires_clauses():
    with pytest.raises(ValueError):
        Or()


def test_matches_treats_whitespace_as_blank():
    assert IsBlank("Name").matches({"Name": "  "})
    assert not IsBlank("Lat").matches({"Lat": 0})


def test_eligibility_formula():
    labels = StatusLabels(DEFAULT_STATUS_OPTIONS)
    where = build_eligibility_filter(labels, text_generation=True, force_refresh=False)
    assert where.to_formula() == (
        "AND(OR(LOWER({Enrichment Status}) = 'pending', LOWER({Enrichment Status}) = 'error', "
        "LOWER({Enrichment Status}) = 'enriched', {Enrichment Status} = BLANK()), "
        "OR({Place ID} = BLANK(), {Photo URL} = BLANK(), {Description} = BLANK()))"
    )


def test_eligibility_excludes_not_found_and_complete_rows():
    labels = StatusLabels(DEFAULT_STATUS_OPTIONS)
    where = build_eligibility_filter(labels, text_generation=False, force_refresh=False)
    complete = {"Enrichment Status": "enriched", "Place ID": "p1", "Photo URL": "u"}

    assert not where.matches({"Enrichment Status": "not_found"})
    assert not where.matches(complete)
    assert where.matches({"Enrichment Status": "Pending"})
    assert where.matches({})


def test_force_refresh_selects_complete_rows():
    labels = StatusLabels(DEFAULT_STATUS_OPTIONS)
    where = build_eligibility_filter(labels, text_generation=False, force_refresh=True)

    assert where.matches({"Enrichment Status": "enriched", "Place ID": "p1", "Photo URL": "u"})
    assert not where.matches({"Enrichment Status": "not_found", "Place ID": "p1"})


def test_record_id_exclusion():
    attempted = Not(RecordIdIn(("rec1", "rec2")))
    assert attempted.to_formula() == "NOT(OR(RECORD_ID() = 'rec1', RECORD_ID() = 'rec2'))"
    assert RecordIdIn(("rec1",)).to_formula() == "RECORD_ID() = 'rec1'"
    assert not attempted.matches({}, "rec1")
    assert attempted.matches({}, "rec3")
