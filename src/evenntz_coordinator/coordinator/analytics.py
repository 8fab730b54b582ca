"""Ledger-derived event and organizer analytics."""

from __future__ import annotations

import asyncio
import logging

from evenntz_coordinator.errors import AnalyticsUnavailable, CoordinatorError
from evenntz_coordinator.models.records import EventAnalytics, OrganizerStats
from evenntz_coordinator.stellar.gateway import LedgerGateway

log = logging.getLogger(__name__)

_EVENT_READS = ("next_token_id", "burned_tickets_count", "ticket_price")


class AnalyticsAggregator:
    """Composes gateway reads into analytics views.

    All-or-nothing: if any underlying read fails the whole view raises
    AnalyticsUnavailable instead of reporting zeros.
    """

    def __init__(self, gateway: LedgerGateway, max_concurrent: int = 8) -> None:
        self._gateway = gateway
        self._max_concurrent = max_concurrent

    async def compute_event_analytics(self, event_address: str) -> EventAnalytics:
        results = await asyncio.gather(
            self._gateway.next_token_id(event_address),
            self._gateway.burned_tickets_count(event_address),
            self._gateway.ticket_price(event_address),
            return_exceptions=True,
        )
        failed = [
            name for name, result in zip(_EVENT_READS, results)
            if isinstance(result, BaseException)
        ]
        if failed:
            first = next(r for r in results if isinstance(r, BaseException))
            log.warning(
                "Analytics for %s unavailable, %s failed: %s",
                event_address[:16], ", ".join(failed), first,
            )
            raise AnalyticsUnavailable(event_address, failed, str(first)) from first

        tickets_sold, check_ins, unit_price = (int(r) for r in results)
        return EventAnalytics(
            event_address=event_address,
            tickets_sold=tickets_sold,
            check_ins=check_ins,
            unit_price=unit_price,
            total_revenue=tickets_sold * unit_price,
        )

    async def compute_organizer_stats(self, organizer: str) -> OrganizerStats:
        """Sum analytics over the organizer's active events."""
        try:
            events = await self._gateway.list_events(active_only=True)
        except CoordinatorError as exc:
            raise AnalyticsUnavailable(organizer, ["get_all_events"], str(exc)) from exc

        addresses = [e.address for e in events if e.organizer == organizer]
        semaphore = asyncio.Semaphore(self._max_concurrent)

        async def _one(address: str) -> EventAnalytics:
            async with semaphore:
                return await self.compute_event_analytics(address)

        results = await asyncio.gather(
            *(_one(a) for a in addresses), return_exceptions=True,
        )
        failed = [a for a, r in zip(addresses, results) if isinstance(r, BaseException)]
        if failed:
            first = next(r for r in results if isinstance(r, BaseException))
            raise AnalyticsUnavailable(
                organizer, [a[:16] for a in failed], str(first),
            ) from first

        analytics = [r for r in results if isinstance(r, EventAnalytics)]
        return OrganizerStats(
            organizer=organizer,
            total_events=len(analytics),
            total_tickets_sold=sum(a.tickets_sold for a in analytics),
            total_check_ins=sum(a.check_ins for a in analytics),
            total_revenue=sum(a.total_revenue for a in analytics),
            events=analytics,
        )
