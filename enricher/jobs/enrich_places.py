"""CLI job that reconciles store rows against Google Places (and optionally OpenAI)."""

import argparse
import logging
import sys
from typing import List, Optional

from enricher.core.config import ConfigError, Settings, get_settings, parse_status_options, require
from enricher.core.ratelimit import RateLimiter
from enricher.core.reconcile import Reconciler, RunOptions, RunSummary
from enricher.core.status import StatusLabels
from enricher.core.store import StoreError, StoreNotFoundError, open_store
from enricher.vendors.descriptions import DescriptionGenerator
from enricher.vendors.google_places import GooglePlacesProvider

logger = logging.getLogger(__name__)

STORE_GUIDANCE = (
    "The Airtable base or table could not be reached. Check AIRTABLE_BASE_ID, "
    "AIRTABLE_TABLE_NAME and that AIRTABLE_API_KEY has access to the base."
)


def run_enrichment_job(
    *,
    max_batch: int,
    run_once: bool,
    force_refresh: bool,
    status_options: Optional[List[str]] = None,
    settings: Optional[Settings] = None,
) -> RunSummary:
    settings = settings or get_settings()
    places_key = require(settings.google_places_api_key, "GOOGLE_PLACES_API_KEY")
    if max_batch <= 0:
        raise ValueError("max_batch must be positive")

    limiter = RateLimiter(settings.sleep_ms_between_requests, settings.concurrency)
    store = open_store(settings, limiter)
    labels = StatusLabels(status_options or settings.status_options)
    places = GooglePlacesProvider(
        places_key,
        region=settings.google_places_region,
        photo_max_width=settings.photo_max_width,
    )
    describer = None
    if settings.text_generation_enabled:
        describer = DescriptionGenerator(
            settings.openai_api_key,
            model=settings.openai_model,
            default_city=settings.default_city,
            limiter=limiter,
        )
    options = RunOptions(
        max_batch=max_batch,
        run_once=run_once,
        force_refresh=force_refresh,
        record_delay=settings.sleep_ms_between_requests / 1000.0,
        default_city=settings.default_city,
        default_country=settings.default_country,
    )

    logger.info(
        "Starting enrichment: max_batch=%d run_once=%s force_refresh=%s text_generation=%s",
        max_batch,
        run_once,
        force_refresh,
        settings.text_generation_enabled,
    )
    reconciler = Reconciler(store, places, labels, describer=describer, limiter=limiter, options=options)
    return reconciler.run()


def build_parser() -> argparse.ArgumentParser:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Enrich restaurant records from Google Places")
    parser.add_argument(
        "--max",
        "--batch-size",
        dest="max_batch",
        type=int,
        default=settings.max_records_per_run,
        help="Maximum number of records fetched per batch",
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--once", dest="run_once", action="store_true", default=settings.run_once, help="Process a single batch then exit")
    mode.add_argument("--loop", dest="run_once", action="store_false", help="Keep draining batches until none are eligible")
    parser.add_argument(
        "--force-refresh",
        dest="force_refresh",
        action="store_true",
        default=settings.force_refresh,
        help="Revisit enriched records to refresh their photo",
    )
    parser.add_argument(
        "--status-options",
        dest="status_options",
        default=None,
        help="Comma-separated status labels configured in the table",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s - %(message)s")
    args = build_parser().parse_args(argv)
    status_options = list(parse_status_options(args.status_options)) if args.status_options else None

    try:
        summary = run_enrichment_job(
            max_batch=args.max_batch,
            run_once=args.run_once,
            force_refresh=args.force_refresh,
            status_options=status_options,
        )
    except StoreNotFoundError as exc:
        logger.error("Fatal: %s", exc)
        logger.error(STORE_GUIDANCE)
        return 1
    except (ConfigError, StoreError, ValueError) as exc:
        logger.error("Fatal: %s", exc)
        return 1

    logger.info("Total records processed: %d", summary.processed)
    return 0


if __name__ == "__main__":
    sys.exit(main())
