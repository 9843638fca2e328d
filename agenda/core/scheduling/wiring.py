"""
Default collaborator wiring.

Builds the production singletons: SQL store, optional HTTP availability
service, optional WhatsApp notifier. Infrastructure is imported lazily so
the core stays importable without a database driver configured.
"""

import logging
from typing import Optional

from agenda.config import settings
from .availability import WeeklyAvailabilityAggregator
from .booking import BookingOrchestrator
from .rules import BusinessRulesEngine
from .types import AvailabilityFetcher, SchedulingStore

logger = logging.getLogger(__name__)


_rules: Optional[BusinessRulesEngine] = None
_orchestrator: Optional[BookingOrchestrator] = None
_aggregator: Optional[WeeklyAvailabilityAggregator] = None


def get_store() -> SchedulingStore:
    """Get the SQL scheduling store singleton."""
    from agenda.infra.repository import get_scheduling_store

    return get_scheduling_store()


def get_availability_fetcher() -> AvailabilityFetcher:
    """HTTP availability service when configured, SQL schedules otherwise."""
    if settings.availability_api_url:
        from .calendar_client import get_availability_client

        return get_availability_client()
    return get_store()


def get_business_rules_engine() -> BusinessRulesEngine:
    """Get singleton BusinessRulesEngine."""
    global _rules
    if _rules is None:
        _rules = BusinessRulesEngine(get_store(), tz=settings.timezone)
    return _rules


def get_booking_orchestrator() -> BookingOrchestrator:
    """Get singleton BookingOrchestrator."""
    global _orchestrator
    if _orchestrator is None:
        from agenda.infra.notifications import get_notifier

        notifier = get_notifier()
        if notifier is None:
            logger.info("No WhatsApp gateway configured; booking notifications disabled")
        _orchestrator = BookingOrchestrator(
            store=get_store(),
            rules=get_business_rules_engine(),
            notifier=notifier,
        )
    return _orchestrator


def get_availability_aggregator() -> WeeklyAvailabilityAggregator:
    """Get singleton WeeklyAvailabilityAggregator."""
    global _aggregator
    if _aggregator is None:
        _aggregator = WeeklyAvailabilityAggregator(get_availability_fetcher(), tz=settings.timezone)
    return _aggregator
