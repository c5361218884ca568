"""Single container entrypoint: pick the enrichment worker or the feed server from START_MODE."""

import logging
import os
import sys
from typing import Optional

logger = logging.getLogger(__name__)

WORKER_MODES = {"worker", "workers", "job", "queue", "cron", "enrich", "enricher"}
SERVER_MODES = {"server", "serve", "web", "api"}


def resolve_mode(raw_mode: Optional[str]) -> str:
    mode = (raw_mode or "").strip().lower()
    if mode in WORKER_MODES:
        return "worker"
    if mode and mode not in SERVER_MODES:
        logger.warning("Unknown START_MODE %r; defaulting to server.", mode)
    return "server"


def main() -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s - %(message)s")
    mode = resolve_mode(os.getenv("START_MODE") or os.getenv("RUN_MODE"))
    if mode == "worker":
        from enricher.jobs import enrich_places

        return enrich_places.main([])

    from enricher.jobs import feed_server

    feed_server.main()
    return 0


if __name__ == "__main__":
    sys.exit(main())
