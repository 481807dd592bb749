"""Concurrent journey queries against the selected providers.

Every provider call is its own failure boundary: timeouts, HTTP errors and
parse errors become an empty result for that provider and never cancel or
delay the others. The fan-out settles only after every call has settled.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime

from trainy_mcp.data.config import get_config
from trainy_mcp.models.journeys import RawJourneyCandidate
from trainy_mcp.models.providers import ProviderId
from trainy_mcp.models.stations import Station
from trainy_mcp.providers.base import TrainProvider

logger = logging.getLogger(__name__)


@dataclass
class FanOutResult:
    """Outcome of one provider call."""

    source: ProviderId
    candidates: list[RawJourneyCandidate] = field(default_factory=list)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _tag(candidates: list[RawJourneyCandidate], source: ProviderId) -> list[RawJourneyCandidate]:
    return [
        candidate if candidate.source == source else candidate.model_copy(update={"source": source})
        for candidate in candidates
    ]


async def _query_provider(
    provider: TrainProvider,
    origin: Station,
    destination: Station,
    when: datetime,
    timeout: float,
) -> FanOutResult:
    from_id = provider.station_id_for(origin) or origin.display_name
    to_id = provider.station_id_for(destination) or destination.display_name

    try:
        candidates = await asyncio.wait_for(
            provider.search_journeys(from_id, to_id, when), timeout=timeout
        )

        by_name = (origin.display_name, destination.display_name)
        if not candidates and provider.supports_name_query and (from_id, to_id) != by_name:
            logger.debug(f"{provider.id.value} found nothing by id, retrying by name")
            candidates = await asyncio.wait_for(
                provider.search_journeys(*by_name, when), timeout=timeout
            )
    except TimeoutError:
        logger.warning(f"Provider {provider.id.value} timed out after {timeout}s")
        return FanOutResult(source=provider.id, error=f"timeout after {timeout}s")
    except Exception as e:
        logger.warning(f"Provider {provider.id.value} failed: {e}")
        return FanOutResult(source=provider.id, error=str(e) or type(e).__name__)

    logger.debug(f"Provider {provider.id.value} returned {len(candidates)} candidates")
    return FanOutResult(source=provider.id, candidates=_tag(candidates, provider.id))


async def fan_out(
    providers: list[TrainProvider],
    origin: Station,
    destination: Station,
    when: datetime,
    timeout: float | None = None,
) -> list[FanOutResult]:
    """Query all providers concurrently.

    Args:
        providers: Selected providers, in selection order.
        origin: Origin station.
        destination: Destination station.
        when: Requested departure time.
        timeout: Per-provider timeout in seconds (default from config).

    Returns:
        One FanOutResult per provider, in the order given.
    """
    if not providers:
        return []
    if timeout is None:
        timeout = get_config().provider_timeout_seconds

    return list(
        await asyncio.gather(
            *(_query_provider(p, origin, destination, when, timeout) for p in providers)
        )
    )


def collect_candidates(results: list[FanOutResult]) -> list[RawJourneyCandidate]:
    """Flatten fan-out results into one candidate list, keeping provider order."""
    return [candidate for result in results for candidate in result.candidates]
