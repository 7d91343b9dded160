"""
Plan resolver - maps a price id (and optional checkout metadata) to a plan.
"""
from typing import Mapping, Optional

from app.core.config import PricePlan
from app.domain.events import PlanInfo


class PlanResolver:
    """
    Resolves (tier, planKey, planName).

    Metadata written onto the checkout session / subscription at creation time
    is authoritative; the static price table fills whatever the metadata leaves
    out (late subscription callbacks often carry no metadata at all).
    """

    def __init__(self, price_table: Mapping[str, PricePlan]) -> None:
        self._price_table = dict(price_table)

    def by_price(self, price_id: Optional[str]) -> PlanInfo:
        if not price_id:
            return PlanInfo()
        plan = self._price_table.get(price_id)
        if plan is None:
            return PlanInfo()
        return PlanInfo(tier=plan.tier, plan_key=plan.plan_key, plan_name=plan.plan_name)

    def resolve(
        self,
        price_id: Optional[str],
        metadata: Optional[Mapping[str, str]] = None,
    ) -> PlanInfo:
        metadata = metadata or {}
        from_price = self.by_price(price_id)
        return PlanInfo(
            tier=_clean(metadata.get("tier")) or from_price.tier,
            plan_key=_clean(metadata.get("planKey")) or from_price.plan_key,
            plan_name=_clean(metadata.get("planName")) or from_price.plan_name,
        )


def _clean(value: object) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None
