"""Redis-based conversation flow storage with TTL eviction."""

import logging
import math
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

from redis.asyncio import Redis
from redis.exceptions import RedisError

from agenda.config import settings
from agenda.core.exceptions import FlowExpired
from agenda.infra.redis import APP_PREFIX, RedisClient, get_redis
from .models import ConversationFlow

logger = logging.getLogger(__name__)

# Flow key prefix (extends existing APP_PREFIX)
FLOW_PREFIX = f"{APP_PREFIX}flow:"


def _utcnow() -> datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


class FlowStore:
    """
    Key-value store of active conversation flows.

    Key pattern: agenda:v1:flow:{organization_id}:{contact}

    Entries are written with the flow's remaining lifetime so Redis evicts
    them at ``expires_at``. Reads also check expiry, so an expired flow is
    never returned even if eviction lags. Gracefully handles Redis
    unavailability with an in-memory fallback.
    """

    def __init__(
        self,
        redis_factory: Callable[[], Awaitable[Optional[Redis]]] = get_redis,
        ttl_seconds: Optional[int] = None,
    ):
        """Initialize flow store.

        Args:
            redis_factory: Coroutine returning a Redis client or None
            ttl_seconds: Flow lifetime (defaults to settings)
        """
        self._redis_factory = redis_factory
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.flow_ttl_seconds
        self._in_memory_fallback: dict[str, str] = {}

    def _key(self, organization_id: str, contact: str) -> str:
        """Generate Redis key."""
        return f"{FLOW_PREFIX}{organization_id}:{contact}"

    async def _redis(self) -> Optional[Redis]:
        client = await self._redis_factory()
        if client is None:
            logger.warning("Redis unavailable, using in-memory flow storage")
        return client

    async def get(
        self,
        organization_id: str,
        contact: str,
        now: Optional[datetime] = None,
    ) -> Optional[ConversationFlow]:
        """
        Get the active flow for a contact.

        Args:
            organization_id: Organization identifier
            contact: Patient contact identifier
            now: Reference instant for the expiry check

        Returns:
            ConversationFlow or None if missing or expired
        """
        key = self._key(organization_id, contact)
        data = await self._read(key)
        if data is None:
            return None

        flow = ConversationFlow.from_json(data)
        if flow.is_expired(now or _utcnow()):
            logger.info(f"Flow {flow.flow_id} for {contact} expired")
            await self.delete(organization_id, contact)
            return None

        return flow

    async def require(
        self,
        organization_id: str,
        contact: str,
        now: Optional[datetime] = None,
    ) -> ConversationFlow:
        """Get the active flow or raise FlowExpired."""
        flow = await self.get(organization_id, contact, now)
        if flow is None:
            raise FlowExpired(organization_id, contact)
        return flow

    async def save(self, flow: ConversationFlow, now: Optional[datetime] = None) -> bool:
        """
        Persist a flow until its fixed expiry.

        Args:
            flow: Flow to store
            now: Reference instant used to compute the remaining TTL

        Returns:
            True if stored, False if the flow had already expired
        """
        key = self._key(flow.organization_id, flow.contact)
        moment = now or _utcnow()

        if flow.expires_at is not None:
            remaining = math.ceil((flow.expires_at - moment).total_seconds())
        else:
            remaining = self.ttl_seconds

        if remaining <= 0:
            await self.delete(flow.organization_id, flow.contact)
            logger.debug(f"Not saving expired flow {flow.flow_id}")
            return False

        payload = flow.to_json()
        redis = await self._redis()

        if redis:
            try:
                await redis.setex(key, remaining, payload)
                logger.debug(f"Flow saved: {flow.flow_id} ({flow.state.value})")
                return True
            except RedisError as e:
                logger.warning(f"Redis write failed, using in-memory fallback: {e}")
                RedisClient.mark_unavailable()

        self._in_memory_fallback[key] = payload
        return True

    async def delete(self, organization_id: str, contact: str) -> bool:
        """
        Delete a contact's flow.

        Returns:
            True if something was deleted
        """
        key = self._key(organization_id, contact)
        removed = self._in_memory_fallback.pop(key, None) is not None

        redis = await self._redis()
        if redis:
            try:
                deleted = await redis.delete(key)
                removed = removed or bool(deleted)
            except RedisError as e:
                logger.warning(f"Redis delete failed for {key}: {e}")
                RedisClient.mark_unavailable()

        if removed:
            logger.debug(f"Flow deleted: {key}")
        return removed

    async def _read(self, key: str) -> Optional[str]:
        redis = await self._redis()
        if redis:
            try:
                data = await redis.get(key)
                if data is not None:
                    return data
            except RedisError as e:
                logger.warning(f"Redis read failed, using in-memory fallback: {e}")
                RedisClient.mark_unavailable()

        return self._in_memory_fallback.get(key)


# Singleton
_store: Optional[FlowStore] = None


def get_flow_store() -> FlowStore:
    """Get singleton FlowStore."""
    global _store
    if _store is None:
        _store = FlowStore()
    return _store
