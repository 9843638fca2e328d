"""
HTTP client for the availability service.

The availability service runs separately and exposes:
- GET /api/slots?date=YYYY-MM-DD[&service_id&doctor_id&location_id]

Used instead of the SQL store when ``availability_api_url`` is configured.
"""

import logging
from typing import Optional

import httpx

from agenda.config import get_settings
from agenda.core.dates import CalendarDate
from agenda.core.exceptions import StorageError
from .types import AvailabilityFilters, TimeSlot

logger = logging.getLogger(__name__)


class AvailabilityClient:
    """
    HTTP availability-fetch collaborator.

    Failures are not turned into empty days: an unreachable service would
    otherwise show as "no slots" in the weekly view.
    """

    def __init__(self, base_url: Optional[str] = None, timeout: Optional[float] = None):
        """Initialize client.

        Args:
            base_url: Availability service base URL (defaults to settings)
            timeout: Request timeout in seconds
        """
        settings = get_settings()
        self.base_url = base_url or settings.availability_api_url
        self.timeout = timeout if timeout is not None else settings.availability_timeout
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
            )
        return self._client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def fetch_slots(
        self,
        organization_id: str,
        day: CalendarDate,
        filters: Optional[AvailabilityFilters] = None,
    ) -> list[TimeSlot]:
        """Fetch slot descriptors for one day.

        Args:
            organization_id: Clinic/tenant identifier
            day: Calendar date
            filters: Optional service / doctor / location filters

        Returns:
            Slot descriptors, available or not

        Raises:
            StorageError: the service could not be reached or answered an error
        """
        client = await self._get_client()
        params = {"date": day.isoformat()}
        if filters:
            params.update(filters.to_params())

        try:
            response = await client.get(
                "/api/slots",
                params=params,
                headers={"X-Tenant-ID": organization_id},
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Failed to fetch slots for {day} (org {organization_id}): {e}")
            raise StorageError(f"Availability service error: {e}") from e

        data = response.json()
        if isinstance(data, list):
            slots = data
        else:
            slots = data.get("slots", data.get("items", []))
        return [TimeSlot.from_dict(s) for s in slots]


# Singleton
_client: Optional[AvailabilityClient] = None


def get_availability_client() -> AvailabilityClient:
    """Get singleton AvailabilityClient."""
    global _client
    if _client is None:
        _client = AvailabilityClient()
    return _client


async def close_availability_client() -> None:
    """Close the singleton client if it was created."""
    global _client
    if _client is not None:
        await _client.close()
        _client = None
