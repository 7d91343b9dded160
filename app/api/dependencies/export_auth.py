"""
Access control for the customer export.

The caller sends ``X-Export-Key`` matching ``CUSTOMERS_EXPORT_KEY``.
When no key is configured the export is open in DEBUG only.

Usage:
    @router.get("")
    async def export_customers(_: None = Depends(verify_export_key)):
        ...
"""
import hmac

from fastapi import Depends, HTTPException, Security, status
from fastapi.security import APIKeyHeader

from app.core.config import Settings, get_settings
from app.core.logging import get_logger

logger = get_logger(__name__)

_export_key_header = APIKeyHeader(name="X-Export-Key", auto_error=False)


async def verify_export_key(
    provided: str | None = Security(_export_key_header),
    settings: Settings = Depends(get_settings),
) -> None:
    """
    - ``CUSTOMERS_EXPORT_KEY`` unset: allowed in DEBUG, 403 otherwise.
    - header missing or wrong: 401 Unauthorized.
    """
    expected = settings.CUSTOMERS_EXPORT_KEY
    if not expected:
        if settings.DEBUG:
            return
        logger.warning("Customer export requested but CUSTOMERS_EXPORT_KEY is not configured")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Customer export is disabled",
        )

    if not provided:
        logger.warning("Customer export request without X-Export-Key")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing export key",
        )

    # Constant-time comparison
    if not hmac.compare_digest(provided.encode(), expected.encode()):
        logger.warning("Customer export request with a wrong X-Export-Key")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid export key",
        )
