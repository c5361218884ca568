"""Selection predicate for records due for (re)enrichment."""

from typing import List

from enricher.core.filters import Always, And, EqualsIgnoreCase, Filter, IsBlank, Or
from enricher.core.status import StatusLabels
from enricher.models import Columns


def build_eligibility_filter(labels: StatusLabels, *, text_generation: bool, force_refresh: bool) -> Filter:
    """Status is pending, error, enriched or blank AND some enrichable field is missing.

    In force-refresh mode the missing-field test is dropped so every record with an
    eligible status is revisited and its photo refreshed.
    """
    status_clauses: List[Filter] = [EqualsIgnoreCase(Columns.STATUS, label) for label in labels.eligible_labels()]
    status_clauses.append(IsBlank(Columns.STATUS))
    status_clause = Or(*status_clauses)

    missing: List[Filter] = [IsBlank(Columns.PLACE_ID), IsBlank(Columns.PHOTO_URL)]
    if text_generation:
        missing.append(IsBlank(Columns.DESCRIPTION))
    if force_refresh:
        missing.append(Always())

    return And(status_clause, Or(*missing))
