"""
Customer record store - field-level merge of per-event partial updates.

Records are keyed by customer id, or by the lowercased e-mail while no
customer id is known. An e-mail-keyed record is not migrated once the id
appears; the two keys can diverge for the same person.
"""
import json
from datetime import datetime, timezone
from typing import Optional

from pydantic import ValidationError

from app.core.logging import get_logger
from app.core.validation import EmailValidator
from app.db.keyed_store import CUSTOMER_PREFIX, KeyedStore, customer_key, email_key
from app.domain.records import CustomerPatch, CustomerRecord

logger = get_logger(__name__)


def record_key(customer_id: Optional[str], email: Optional[str]) -> Optional[str]:
    if customer_id:
        return customer_key(customer_id)
    normalized = EmailValidator.normalize(email)
    if normalized:
        return email_key(normalized)
    return None


class CustomerRecordStore:
    def __init__(self, store: KeyedStore) -> None:
        self._store = store

    async def merge(
        self,
        patch: CustomerPatch,
        event_id: str,
        event_type: str,
    ) -> Optional[CustomerRecord]:
        """
        Apply ``patch`` over the stored record and write it back.

        Returns None (and writes nothing) when the patch carries neither a
        customer id nor an e-mail.
        """
        email = EmailValidator.normalize(patch.email)
        key = record_key(patch.customer_id, email)
        if key is None:
            logger.error(
                "Dropping customer update: event has no customer id and no email",
                extra_data={"event_id": event_id, "event_type": event_type},
            )
            return None

        existing = await self._load(key) or CustomerRecord()

        updates = patch.model_dump(exclude_none=True)
        if email:
            updates["email"] = email
        merged = existing.model_copy(update=updates)
        merged = merged.model_copy(update={
            "updated_at": datetime.now(timezone.utc).isoformat(),
            "last_event_id": event_id,
            "last_event_type": event_type,
        })

        await self._store.put(key, merged.model_dump_json(by_alias=True))
        logger.info(
            "Customer record merged",
            extra_data={
                "key_kind": key.split(":", 1)[0],
                "customer_id": merged.customer_id,
                "email": EmailValidator.mask(merged.email),
                "access": merged.access,
                "plan_key": merged.plan_key,
            },
        )
        return merged

    async def list_records(self) -> list[CustomerRecord]:
        """All customer-id-keyed records, newest update first."""
        records: list[CustomerRecord] = []
        async for key in self._store.scan_prefix(CUSTOMER_PREFIX):
            record = await self._load(key)
            if record is not None:
                records.append(record)
        records.sort(key=lambda r: r.updated_at or "", reverse=True)
        return records

    async def _load(self, key: str) -> Optional[CustomerRecord]:
        raw = await self._store.get(key)
        if raw is None:
            return None
        try:
            return CustomerRecord.model_validate(json.loads(raw))
        except (json.JSONDecodeError, ValidationError) as e:
            logger.error(
                "Stored customer record is unreadable, starting from defaults",
                extra_data={"key": key, "error": str(e)},
            )
            return None
