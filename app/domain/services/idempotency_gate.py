"""
Idempotency gate - a durable per-event lock keyed by the provider event id.

    absent ──begin──> processing (short TTL) ──commit──> done (long TTL)
                          │
                          └──abort──> absent   (next redelivery retries from scratch)

Only status "done" blocks redelivery for good. A "processing" entry blocks
until its TTL lapses; two racing deliveries may both see it and both return
early, relying on the provider's retry cadence.
"""
from enum import Enum

from app.core.config import Settings
from app.core.exceptions import IdempotencyAbortError
from app.core.logging import get_logger
from app.db.keyed_store import KeyedStore, event_key

logger = get_logger(__name__)

STATUS_PROCESSING = "processing"
STATUS_DONE = "done"


class GateDecision(str, Enum):
    PROCEED = "proceed"
    ALREADY_DONE = "already_done"
    ALREADY_PROCESSING = "already_processing"


class IdempotencyGate:
    def __init__(self, store: KeyedStore, settings: Settings) -> None:
        self._store = store
        self._processing_ttl = settings.EVENT_PROCESSING_TTL_SECONDS
        self._done_ttl = settings.EVENT_DONE_TTL_SECONDS

    async def begin(self, event_id: str) -> GateDecision:
        key = event_key(event_id)
        if await self._store.put_if_absent(key, STATUS_PROCESSING, self._processing_ttl):
            return GateDecision.PROCEED

        current = await self._store.get(key)
        if current == STATUS_DONE:
            logger.info("Skipping completed duplicate event", extra_data={"event_id": event_id})
            return GateDecision.ALREADY_DONE

        if current is None:
            # Lock expired between SET NX and GET, claim it again
            if await self._store.put_if_absent(key, STATUS_PROCESSING, self._processing_ttl):
                return GateDecision.PROCEED

        logger.info(
            "Event already being processed by another delivery",
            extra_data={"event_id": event_id, "status": current},
        )
        return GateDecision.ALREADY_PROCESSING

    async def commit(self, event_id: str) -> None:
        await self._store.put(event_key(event_id), STATUS_DONE, self._done_ttl)

    async def abort(self, event_id: str) -> None:
        """
        Delete the lock so the next redelivery reprocesses the event.

        A failed abort leaves a stuck "processing" entry that silently blocks
        every retry until the TTL lapses, so it is logged at CRITICAL.
        """
        try:
            await self._store.delete(event_key(event_id))
        except Exception as e:
            logger.critical(
                "Failed to release event lock, redeliveries are blocked until the lock expires",
                extra_data={
                    "event_id": event_id,
                    "lock_ttl_seconds": self._processing_ttl,
                    "error": str(e),
                },
                exc_info=True,
            )
            raise IdempotencyAbortError(event_id, str(e)) from e
        logger.warning("Event lock released for redelivery", extra_data={"event_id": event_id})
