"""Reconciliation engine: per-record merge/upsert and the resumable batch loop.

The engine keeps no queue. Every run re-derives its work set from store state,
so every write is an idempotent upsert keyed by record id or slug.
"""

import enum
import logging
import time
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Set

from enricher.core.coerce import clean, stamp_last_enriched, to_slug
from enricher.core.eligibility import build_eligibility_filter
from enricher.core.filters import And, Filter, Not, RecordIdIn
from enricher.core.ratelimit import RateLimiter
from enricher.core.status import EnrichmentStatus, StatusLabels
from enricher.core.store import RecordStore, StoreNotFoundError, UnknownFieldError
from enricher.etl.transform import area_for, round_coordinates, to_record_fields
from enricher.models import Columns, DescriptionContext, ProfileLinkResult, StoreRecord

logger = logging.getLogger(__name__)

NO_DETAILS_NOTE = "No details returned from Places"


class Outcome(str, enum.Enum):
    ENRICHED = "enriched"
    REFRESHED = "refreshed"
    NOT_FOUND = "not_found"
    ERROR = "error"
    SKIPPED = "skipped"


@dataclass
class RunOptions:
    max_batch: int = 50
    run_once: bool = False
    force_refresh: bool = False
    record_delay: float = 0.25
    default_city: str = "London"
    default_country: str = "UK"


@dataclass
class RunState:
    """Mutable state owned by a single run."""

    notes_disabled: bool = False
    attempted: Set[str] = field(default_factory=set)
    profile_links: Dict[str, ProfileLinkResult] = field(default_factory=dict)


@dataclass
class RunSummary:
    batches: int = 0
    processed: int = 0
    outcomes: Counter = field(default_factory=Counter)

    def record(self, outcome: Outcome) -> None:
        self.processed += 1
        self.outcomes[outcome] += 1

    def count(self, outcome: Outcome) -> int:
        return self.outcomes.get(outcome, 0)


class RecordWriter:
    """Idempotent upserts with the optional Notes column probed once per run."""

    def __init__(self, store: RecordStore, state: RunState) -> None:
        self.store = store
        self.state = state

    def _upsert(self, record_id: Optional[str], slug: str, fields: Dict[str, Any]) -> StoreRecord:
        if record_id:
            return self.store.update(record_id, fields)
        existing = self.store.find_by_slug(slug)
        if existing is not None:
            return self.store.update(existing.id, fields)
        return self.store.create({Columns.SLUG: slug, **fields})

    def write(self, record_id: Optional[str], slug: str, fields: Dict[str, Any]) -> Optional[StoreRecord]:
        payload = round_coordinates(fields)
        if self.state.notes_disabled:
            payload.pop(Columns.NOTES, None)
        if not payload:
            return None
        try:
            return self._upsert(record_id, slug, payload)
        except UnknownFieldError as exc:
            if exc.field_name != Columns.NOTES or Columns.NOTES not in payload:
                raise
            logger.warning("Column %r does not exist; leaving it out for the rest of this run", Columns.NOTES)
            self.state.notes_disabled = True
            payload.pop(Columns.NOTES)
            if not payload:
                return None
            return self._upsert(record_id, slug, payload)


class Reconciler:
    def __init__(
        self,
        store: RecordStore,
        places: Any,
        labels: StatusLabels,
        *,
        describer: Optional[Any] = None,
        limiter: Optional[RateLimiter] = None,
        options: Optional[RunOptions] = None,
        state: Optional[RunState] = None,
        clock: Optional[Callable[[], datetime]] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.store = store
        self.places = places
        self.labels = labels
        self.describer = describer
        self.limiter = limiter or RateLimiter()
        self.options = options or RunOptions()
        self.state = state or RunState()
        self.writer = RecordWriter(store, self.state)
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._sleep = sleep

    @property
    def text_generation(self) -> bool:
        return bool(self.describer is not None and getattr(self.describer, "enabled", False))

    def eligibility_filter(self) -> Filter:
        return build_eligibility_filter(
            self.labels,
            text_generation=self.text_generation,
            force_refresh=self.options.force_refresh,
        )

    def next_batch(self, where: Filter) -> List[StoreRecord]:
        """Eligible records not yet attempted in this run, at most ``max_batch`` of them."""
        if self.state.attempted:
            where = And(where, Not(RecordIdIn(tuple(sorted(self.state.attempted)))))
        records = self.store.query(where, max_records=self.options.max_batch)
        fresh = [record for record in records if record.id not in self.state.attempted]
        self.state.attempted.update(record.id for record in fresh)
        return fresh

    def run(self) -> RunSummary:
        where = self.eligibility_filter()
        logger.debug("Eligibility formula: %s", where.to_formula())
        summary = RunSummary()

        while True:
            batch = self.next_batch(where)
            if not batch:
                if summary.batches == 0:
                    logger.info("Nothing to enrich.")
                else:
                    logger.info("No more records to enrich.")
                break

            summary.batches += 1
            logger.info("Found %d record(s) to enrich (batch %d)", len(batch), summary.batches)
            for record in batch:
                summary.record(self.reconcile_record(record))
                self._sleep(self.options.record_delay)

            if self.options.run_once:
                break

        logger.info(
            "Done. processed=%d enriched=%d refreshed=%d not_found=%d errors=%d skipped=%d",
            summary.processed,
            summary.count(Outcome.ENRICHED),
            summary.count(Outcome.REFRESHED),
            summary.count(Outcome.NOT_FOUND),
            summary.count(Outcome.ERROR),
            summary.count(Outcome.SKIPPED),
        )
        return summary

    def _status_fields(
        self, status: EnrichmentStatus, existing: Dict[str, Any], notes: Optional[str] = None
    ) -> Dict[str, Any]:
        fields: Dict[str, Any] = {
            Columns.LAST_ENRICHED: stamp_last_enriched(existing.get(Columns.LAST_ENRICHED), self._clock()),
        }
        label = self.labels.label_for(status)
        if label is not None:
            fields[Columns.STATUS] = label
        if notes:
            fields[Columns.NOTES] = notes
        return fields

    def _is_refresh_only(self, fields: Dict[str, Any]) -> bool:
        """Already enriched and revisited only for the photo, not for missing core fields."""
        if self.labels.status_of(fields.get(Columns.STATUS)) is not EnrichmentStatus.ENRICHED:
            return False
        if not clean(fields.get(Columns.PLACE_ID)):
            return False
        if self.text_generation and not clean(fields.get(Columns.DESCRIPTION)):
            return False
        return True

    def _describe(self, name: str, slug: str, merged: Dict[str, Any]) -> str:
        if not self.text_generation:
            return ""
        context = DescriptionContext(
            name=name,
            slug=slug,
            cuisine=clean(merged.get(Columns.CUISINE)),
            area=area_for(merged, self.options.default_city),
        )
        return self.describer.generate(context)

    def _refresh_photo(self, record: StoreRecord, slug: str, name: str, details: Dict[str, Any]) -> Outcome:
        fields = record.fields
        photo = self.places.synthesize_photo(details)
        if not photo.url or photo.url == clean(fields.get(Columns.PHOTO_URL)):
            logger.info("Photo unchanged for %s", name)
            return Outcome.SKIPPED
        # Refreshes touch Photo URL only; every other column stays as stored.
        self.writer.write(record.id, slug, {Columns.PHOTO_URL: photo.url})
        logger.info("Refreshed photo for %s (%s)", name, slug)
        return Outcome.REFRESHED

    def reconcile_record(self, record: StoreRecord) -> Outcome:
        fields = record.fields
        name = clean(fields.get(Columns.NAME))
        slug = clean(fields.get(Columns.SLUG)) or to_slug(name)
        if not name:
            logger.info("Skipping record %s (missing %s)", record.id, Columns.NAME)
            return Outcome.SKIPPED

        refresh_only = self._is_refresh_only(fields)
        try:
            place_id = clean(fields.get(Columns.PLACE_ID))
            if not place_id:
                city = clean(fields.get(Columns.CITY)) or self.options.default_city
                place_id = self.limiter.schedule(
                    self.places.lookup_identifier, name, city, self.options.default_country
                )
                if not place_id:
                    if refresh_only:
                        logger.info("No match for already enriched %s; leaving it untouched", name)
                        return Outcome.SKIPPED
                    self.writer.write(record.id, slug, self._status_fields(EnrichmentStatus.NOT_FOUND, fields))
                    logger.info("Not found: %s", name)
                    return Outcome.NOT_FOUND

            details = self.limiter.schedule(self.places.fetch_details, place_id)
            if not details:
                if refresh_only:
                    logger.info("No details for already enriched %s; leaving it untouched", name)
                    return Outcome.SKIPPED
                error_fields = self._status_fields(EnrichmentStatus.ERROR, fields, notes=NO_DETAILS_NOTE)
                error_fields[Columns.PLACE_ID] = place_id
                self.writer.write(record.id, slug, error_fields)
                logger.info("No details: %s", name)
                return Outcome.ERROR

            if refresh_only:
                return self._refresh_photo(record, slug, name, details)

            photo = self.places.synthesize_photo(details)
            merged = to_record_fields(details, fields, slug=slug, place_id=place_id, photo=photo)
            if not clean(merged.get(Columns.DESCRIPTION)):
                description = self._describe(clean(merged.get(Columns.NAME)) or name, slug, merged)
                if description:
                    merged[Columns.DESCRIPTION] = description
            merged.update(self._status_fields(EnrichmentStatus.ENRICHED, fields))
            self.writer.write(record.id, slug, merged)
            logger.info("Enriched: %s (%s)", name, slug)
            return Outcome.ENRICHED
        except StoreNotFoundError:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.error("Error enriching %s: %s", name, exc)
            try:
                self.writer.write(
                    record.id, slug, self._status_fields(EnrichmentStatus.ERROR, fields, notes=str(exc) or repr(exc))
                )
            except StoreNotFoundError:
                raise
            except Exception as write_exc:  # noqa: BLE001
                logger.error("Failed to record error status for %s: %s", name, write_exc)
            return Outcome.ERROR
