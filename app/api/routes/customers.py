"""
Customer access export
"""
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Response

from app.api.dependencies.export_auth import verify_export_key
from app.api.dependencies.pipeline import get_customer_store
from app.core.logging import get_logger
from app.domain.services.customer_store import CustomerRecordStore

logger = get_logger(__name__)

router = APIRouter()


@router.get(
    "",
    summary="Export customer access records",
    description=(
        "Every stored customer record, most recently updated first. "
        "Requires X-Export-Key unless the key is unset and DEBUG is on."
    ),
    responses={403: {"description": "Export key missing or invalid"}},
    tags=["Customers"],
)
async def export_customers(
    response: Response,
    _: None = Depends(verify_export_key),
    store: CustomerRecordStore = Depends(get_customer_store),
) -> dict:
    records = await store.list_records()
    response.headers["Cache-Control"] = "public, max-age=30"
    logger.info("Customer export served", extra_data={"count": len(records)})
    return {
        "ok": True,
        "generatedAt": datetime.now(timezone.utc).isoformat(),
        "count": len(records),
        "customers": [r.model_dump(by_alias=True, mode="json") for r in records],
    }
