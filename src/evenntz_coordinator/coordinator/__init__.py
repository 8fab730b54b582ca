"""Cross-store coordinators: publication saga, ticket lifecycle, analytics."""

from evenntz_coordinator.coordinator.analytics import AnalyticsAggregator
from evenntz_coordinator.coordinator.publication import (
    PublicationAttempt,
    PublicationCoordinator,
    validate_request,
)
from evenntz_coordinator.coordinator.retry import backoff_delay, with_retries
from evenntz_coordinator.coordinator.tickets import TicketLifecycleCoordinator

__all__ = [
    "AnalyticsAggregator",
    "PublicationAttempt", "PublicationCoordinator", "validate_request",
    "backoff_delay", "with_retries",
    "TicketLifecycleCoordinator",
]
