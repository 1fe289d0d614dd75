# Resolve who gets notified about an alert. Officials are looked up through
# several overlapping directory queries, merged by email, then filtered
# inclusively. Any lookup failure, or an empty result, falls back to the
# configured emergency contacts, so callers always get at least one recipient.

import asyncio
import logging
from typing import Optional

from errors import RecipientResolutionError
from models import Location, Recipient, RecipientQuery
from store import PersistenceSink

logger = logging.getLogger(__name__)

OFFICIAL_QUERIES = (
    RecipientQuery(role="government", is_active=True),
    RecipientQuery(role="official", is_active=True),
    RecipientQuery(role="government", verification_status="approved"),
)

SUMMARY_POSITIONS = ("director", "officer")


def alert_type_for(severity: str) -> str:
    return "critical_alerts" if severity == "critical" else "water_quality"


def merge_by_email(batches: list[list[Recipient]]) -> list[Recipient]:
    """Flatten query results, keeping the first recipient seen per email."""
    seen: set[str] = set()
    merged: list[Recipient] = []
    for batch in batches:
        for recipient in batch:
            key = recipient.email.strip().lower()
            if key in seen:
                continue
            seen.add(key)
            merged.append(recipient)
    return merged


class RecipientResolver:
    def __init__(self, sink: Optional[PersistenceSink],
                 fallback: list[Recipient],
                 lookup_timeout: float = 5.0):
        if not fallback:
            raise ValueError("At least one fallback recipient is required")
        self.sink = sink
        self.fallback = list(fallback)
        self.lookup_timeout = lookup_timeout

    async def lookup(self) -> list[Recipient]:
        """Run the official queries concurrently and merge the results.

        Raises RecipientResolutionError if any query fails or times out.
        """
        if self.sink is None:
            raise RecipientResolutionError("No recipient directory configured")

        try:
            batches = await asyncio.wait_for(
                asyncio.gather(*[self.sink.query_recipients(query)
                                 for query in OFFICIAL_QUERIES]),
                timeout=self.lookup_timeout)
        except asyncio.TimeoutError as e:
            raise RecipientResolutionError("Recipient lookup timed out") from e
        except RecipientResolutionError:
            raise
        except Exception as e:
            raise RecipientResolutionError(str(e)) from e

        officials = merge_by_email(list(batches))
        logger.debug("Fetched %d officials from the directory", len(officials))
        return officials

    async def _resolve_with(self, keep) -> list[Recipient]:
        try:
            officials = await self.lookup()
        except RecipientResolutionError as e:
            logger.warning("Could not fetch officials, using fallback contacts: %s", e)
            return list(self.fallback)

        recipients = [official for official in officials if keep(official)]
        if not recipients:
            logger.warning("No matching officials, using fallback contacts")
            return list(self.fallback)
        return recipients

    async def resolve(self, severity: str, location: Location) -> list[Recipient]:
        alert_type = alert_type_for(severity)

        def keep(official: Recipient) -> bool:
            return (alert_type in official.alert_types
                    or official.district == location.district
                    or official.verification_status == "approved")

        recipients = await self._resolve_with(keep)
        logger.info("Resolved %d recipients for %s alert in %s", len(recipients),
                    severity, location.district)
        return recipients

    async def resolve_summary(self) -> list[Recipient]:
        def keep(official: Recipient) -> bool:
            position = (official.position or "").lower()
            return ("daily_summary" in official.alert_types
                    or any(p in position for p in SUMMARY_POSITIONS))

        return await self._resolve_with(keep)
