"""
Keyed durable store - the narrow get/put/delete surface the engine uses on Redis.

Key namespaces:
    event:<provider event id>          event lock (processing | done)
    customer:<customer id>             customer record (JSON)
    email:<lowercased email>           customer record before a customer id is known
    onboarded:<customer id | email>    onboarding marker
"""
from typing import AsyncIterator, Optional

import redis.asyncio as aioredis

EVENT_PREFIX = "event:"
CUSTOMER_PREFIX = "customer:"
EMAIL_PREFIX = "email:"
ONBOARDED_PREFIX = "onboarded:"


def event_key(event_id: str) -> str:
    return f"{EVENT_PREFIX}{event_id}"


def customer_key(customer_id: str) -> str:
    return f"{CUSTOMER_PREFIX}{customer_id}"


def email_key(email: str) -> str:
    return f"{EMAIL_PREFIX}{email}"


def onboarded_key(identity: str) -> str:
    return f"{ONBOARDED_PREFIX}{identity}"


class KeyedStore:
    """Single-key operations only; no multi-key transactions are used."""

    def __init__(self, client: aioredis.Redis) -> None:
        self._client = client

    async def get(self, key: str) -> Optional[str]:
        return await self._client.get(key)

    async def put(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        await self._client.set(key, value, ex=ttl_seconds)

    async def put_if_absent(self, key: str, value: str, ttl_seconds: int) -> bool:
        """Atomic SET NX EX. True if this call created the key."""
        created = await self._client.set(key, value, nx=True, ex=ttl_seconds)
        return bool(created)

    async def delete(self, key: str) -> None:
        await self._client.delete(key)

    async def scan_prefix(self, prefix: str) -> AsyncIterator[str]:
        """Iterate keys under a namespace (SCAN, non-blocking)."""
        async for key in self._client.scan_iter(match=f"{prefix}*"):
            yield key
