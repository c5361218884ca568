"""CLI job that fills the Instagram column from each restaurant's own website.

Rows that could not be resolved get a ``[instagram-skip]`` line in Notes and are
left alone by later runs until the line is removed or ``--force`` is passed.
"""

import argparse
import logging
import sys
from dataclasses import dataclass
from typing import Callable, List, Optional

from enricher.core.coerce import clean, to_slug
from enricher.core.config import ConfigError, Settings, get_settings
from enricher.core.filters import And, Filter, IsBlank, Not
from enricher.core.profile_links import (
    SKIP_SENTINEL,
    add_skip_note,
    find_profile_link,
    has_skip_note,
    remove_skip_note,
    sanitize_website,
)
from enricher.core.ratelimit import RateLimiter
from enricher.core.reconcile import RecordWriter, RunState
from enricher.core.store import RecordStore, StoreNotFoundError, open_store
from enricher.jobs.enrich_places import STORE_GUIDANCE
from enricher.models import Columns, ProfileLinkResult, StoreRecord

logger = logging.getLogger(__name__)


@dataclass
class InstagramSummary:
    found: int = 0
    failed: int = 0
    skipped: int = 0


def build_instagram_filter(force: bool) -> Filter:
    has_website = Not(IsBlank(Columns.WEBSITE))
    if force:
        return has_website
    return And(has_website, IsBlank(Columns.INSTAGRAM))


def should_skip(record: StoreRecord, force: bool) -> bool:
    fields = record.fields
    if not clean(fields.get(Columns.WEBSITE)):
        return True
    if not force and clean(fields.get(Columns.INSTAGRAM)):
        return True
    if not force and has_skip_note(fields.get(Columns.NOTES)):
        return True
    return False


class InstagramEnricher:
    def __init__(
        self,
        store: RecordStore,
        *,
        limiter: Optional[RateLimiter] = None,
        state: Optional[RunState] = None,
        lookup: Callable[[str], ProfileLinkResult] = find_profile_link,
        force: bool = False,
        dry_run: bool = False,
    ) -> None:
        self.store = store
        self.limiter = limiter or RateLimiter()
        self.state = state or RunState()
        self.writer = RecordWriter(store, self.state)
        self.lookup = lookup
        self.force = force
        self.dry_run = dry_run

    def resolve(self, website: str) -> ProfileLinkResult:
        """Look up a website once per run; rows sharing a site reuse the result."""
        key = sanitize_website(website) or website
        cached = self.state.profile_links.get(key)
        if cached is not None:
            return cached
        result = self.limiter.schedule(self.lookup, website)
        self.state.profile_links[key] = result
        return result

    def _write_notes(self, record: StoreRecord, slug: str, notes: str) -> None:
        if self.dry_run or self.state.notes_disabled:
            return
        self.writer.write(record.id, slug, {Columns.NOTES: notes})

    def process(self, record: StoreRecord, summary: InstagramSummary) -> None:
        fields = record.fields
        name = clean(fields.get(Columns.NAME)) or record.id
        slug = clean(fields.get(Columns.SLUG)) or to_slug(name)
        website = clean(fields.get(Columns.WEBSITE))
        existing_notes = clean(fields.get(Columns.NOTES))

        if should_skip(record, self.force):
            summary.skipped += 1
            return

        try:
            result = self.resolve(website)
        except Exception as exc:  # noqa: BLE001
            result = ProfileLinkResult(status="error", reason=str(exc) or type(exc).__name__)

        if result.found:
            summary.found += 1
            if self.dry_run:
                logger.info("[dry-run] %s -> %s", name, result.url)
                return
            updates = {Columns.INSTAGRAM: result.url}
            cleaned_notes = remove_skip_note(existing_notes)
            if cleaned_notes != existing_notes:
                updates[Columns.NOTES] = cleaned_notes
            self.writer.write(record.id, slug, updates)
            logger.info("Found Instagram for %s: %s", name, result.url)
            return

        summary.failed += 1
        reason = result.reason or "No profile discovered."
        logger.info("%s: %s (%s)", name, reason, result.status)
        updated_notes = add_skip_note(existing_notes, reason)
        if updated_notes != existing_notes:
            self._write_notes(record, slug, updated_notes)

    def run(self, max_records: Optional[int] = None) -> InstagramSummary:
        logger.info("Loading records with websites...")
        records = self.store.query(
            build_instagram_filter(self.force),
            max_records=max_records if max_records and max_records > 0 else None,
            sort=[Columns.NAME],
        )
        targets = [record for record in records if not should_skip(record, self.force)]
        summary = InstagramSummary(skipped=len(records) - len(targets))
        if not targets:
            logger.info("Nothing to enrich.")
            return summary

        logger.info("Found %d record(s) needing Instagram URLs", len(targets))
        for record in targets:
            try:
                self.process(record, summary)
            except StoreNotFoundError:
                raise
            except Exception as exc:  # noqa: BLE001
                summary.failed += 1
                logger.error("Failed to update %s: %s", record.id, exc)

        logger.info("Done. Instagram URLs added: %d, unable to resolve: %d", summary.found, summary.failed)
        if not self.dry_run and summary.failed:
            logger.info("Rows marked with %s in Notes will be skipped in future runs. Remove the tag to retry.", SKIP_SENTINEL)
        return summary


def run_instagram_job(
    *, force: bool, dry_run: bool, max_records: Optional[int], settings: Optional[Settings] = None
) -> InstagramSummary:
    settings = settings or get_settings()
    limiter = RateLimiter(settings.sleep_ms_between_requests, settings.concurrency)
    store = open_store(settings, limiter)
    enricher = InstagramEnricher(store, limiter=limiter, force=force, dry_run=dry_run)
    return enricher.run(max_records)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Find Instagram profiles from restaurant websites")
    parser.add_argument("--force", action="store_true", help="Ignore existing Instagram values and skip notes")
    parser.add_argument("--dry-run", dest="dry_run", action="store_true", help="Log results without writing")
    parser.add_argument("--max", dest="max_records", type=int, default=None, help="Maximum records to load")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s - %(message)s")
    args = build_parser().parse_args(argv)
    try:
        run_instagram_job(force=args.force, dry_run=args.dry_run, max_records=args.max_records)
    except StoreNotFoundError as exc:
        logger.error("Fatal: %s", exc)
        logger.error(STORE_GUIDANCE)
        return 1
    except ConfigError as exc:
        logger.error("Fatal: %s", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
