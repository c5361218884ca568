"""Enrichment lifecycle states and their mapping onto configured store labels."""

import enum
import logging
from typing import Dict, Iterable, List, Optional, Sequence

from enricher.core.coerce import clean, match_configured_label

logger = logging.getLogger(__name__)


class EnrichmentStatus(str, enum.Enum):
    PENDING = "pending"
    ENRICHED = "enriched"
    NOT_FOUND = "not_found"
    ERROR = "error"


# Statuses a record may carry and still be selected for another pass.
ELIGIBLE_STATUSES = (EnrichmentStatus.PENDING, EnrichmentStatus.ERROR, EnrichmentStatus.ENRICHED)

_FALLBACKS: Dict[EnrichmentStatus, Optional[EnrichmentStatus]] = {
    EnrichmentStatus.PENDING: None,
    EnrichmentStatus.ENRICHED: None,
    EnrichmentStatus.NOT_FOUND: None,
    EnrichmentStatus.ERROR: EnrichmentStatus.PENDING,
}


def pick_status(desired: str, fallback: Optional[str], configured_options: Iterable[str]) -> Optional[str]:
    """Resolve a status token to a configured label.

    ``None`` means the status field must be left out of the write.
    """
    options = list(configured_options or [])
    label = match_configured_label(desired, options)
    if label is None and fallback:
        label = match_configured_label(fallback, options)
    if label is None:
        logger.warning("No configured status label for %r; the status field will be omitted", desired)
    return label


class StatusLabels:
    """Label resolution table, built once per run from the configured options."""

    def __init__(self, configured_options: Sequence[str]) -> None:
        self.options: List[str] = [option for option in configured_options if clean(option)]
        self._direct: Dict[EnrichmentStatus, Optional[str]] = {}
        self._resolved: Dict[EnrichmentStatus, Optional[str]] = {}
        for status in EnrichmentStatus:
            self._direct[status] = match_configured_label(status.value, self.options)
            if self._direct[status] is not None:
                self._resolved[status] = self._direct[status]
                continue
            fallback = _FALLBACKS[status]
            self._resolved[status] = pick_status(
                status.value, fallback.value if fallback else None, self.options
            )

    def label_for(self, status: EnrichmentStatus) -> Optional[str]:
        return self._resolved[status]

    def eligible_labels(self) -> List[str]:
        """Configured labels of the statuses that remain eligible for work."""
        labels: List[str] = []
        for status in ELIGIBLE_STATUSES:
            label = self._direct[status]
            if label is not None and label not in labels:
                labels.append(label)
        return labels

    def status_of(self, raw_label) -> Optional[EnrichmentStatus]:
        """Map a stored label back to its logical status, ``None`` when blank or unknown."""
        value = clean(raw_label).lower()
        if not value:
            return None
        for status in EnrichmentStatus:
            direct = self._direct[status]
            if (direct is not None and direct.lower() == value) or status.value == value:
                return status
        return None
