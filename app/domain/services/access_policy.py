"""
Access policy - the only place access state is decided.
"""
from typing import Optional

from app.domain.events import AccessState

# Subscription statuses that grant access
ACTIVE_STATUSES = frozenset({"active", "trialing"})


def derive_access(status: Optional[str], one_time_completion: bool = False) -> AccessState:
    """
    Derive access from a subscription status.

    A completed one-time checkout grants access immediately: no subscription
    event will ever follow to confirm it.
    """
    if one_time_completion:
        return AccessState.ACTIVE
    if status and status.strip().lower() in ACTIVE_STATUSES:
        return AccessState.ACTIVE
    return AccessState.LOCKED
