"""
billing/entitlements.py -- Tier -> feature set and usage ceilings.

The plan table is built once at import and exposed read-only
(MappingProxyType of frozen dataclasses), so nothing at runtime can widen a
tier's entitlements by mutating shared state.

Every check here is advisory. It drives upgrade prompts and disabled buttons;
the backend must enforce the same ceilings at the point of persistence.

Usage:
    engine = EntitlementEngine(store.read_subscription(user.id))
    engine.can_create("invoice", current_count=4)     # True on free (ceiling 5)
    engine.has_feature("api_access")                  # business only

    mirror = SubscriptionMirror(store)
    engine = await mirror.engine_for(session_manager.get_user())
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Protocol

from billing.models import (
    UNLIMITED,
    Feature,
    ResourceKind,
    SubscriptionRecord,
    Tier,
    free_subscription,
)

if TYPE_CHECKING:
    from collections.abc import Mapping

logger = logging.getLogger("honestinvoice.billing")


@dataclass(frozen=True)
class Plan:
    name: str
    price: int  # USD per month
    features: frozenset[Feature]
    limits: Mapping[ResourceKind, int]


# ---------------------------------------------------------------------------
# Plan table
# ---------------------------------------------------------------------------

_FREE_FEATURES = frozenset(
    {
        Feature.BASIC_TEMPLATES,
        Feature.EMAIL_SUPPORT,
        Feature.BASIC_CLIENT_MANAGEMENT,
    }
)
_PRO_FEATURES = _FREE_FEATURES | {
    Feature.CUSTOM_TEMPLATES,
    Feature.PRIORITY_SUPPORT,
    Feature.ADVANCED_REPORTING,
    Feature.CLIENT_PORTAL,
    Feature.PAYMENT_TRACKING,
}
_BUSINESS_FEATURES = _PRO_FEATURES | {
    Feature.MULTI_USER,
    Feature.API_ACCESS,
    Feature.CUSTOM_INTEGRATIONS,
    Feature.DEDICATED_SUPPORT,
    Feature.WHITE_LABEL,
}

_UNLIMITED_LIMITS = MappingProxyType({ResourceKind.INVOICE: UNLIMITED, ResourceKind.CLIENT: UNLIMITED})

PLANS: Mapping[Tier, Plan] = MappingProxyType(
    {
        Tier.FREE: Plan(
            name="Free",
            price=0,
            features=_FREE_FEATURES,
            limits=MappingProxyType({ResourceKind.INVOICE: 5, ResourceKind.CLIENT: 10}),
        ),
        Tier.PRO: Plan(name="Pro", price=9, features=_PRO_FEATURES, limits=_UNLIMITED_LIMITS),
        Tier.BUSINESS: Plan(name="Business", price=19, features=_BUSINESS_FEATURES, limits=_UNLIMITED_LIMITS),
    }
)


# ---------------------------------------------------------------------------
# Pure checks
# ---------------------------------------------------------------------------


def tier_allows(current: Tier, required: Tier) -> bool:
    """True when current is at or above required in free < pro < business."""
    return current.rank >= required.rank


def has_feature(tier: Tier, feature_name: str | Feature) -> bool:
    """True iff feature_name is in the tier's cumulative feature set.

    Unknown feature names are simply not granted -- there is no fuzzy match.
    """
    try:
        feature = Feature(feature_name)
    except ValueError:
        return False
    return feature in PLANS[tier].features


def can_create(tier: Tier, resource_kind: str | ResourceKind, current_count: int) -> bool:
    """True iff the tier's ceiling for resource_kind is unlimited or not yet reached.

    Raises ValueError for an unknown resource kind.
    """
    kind = ResourceKind(resource_kind)
    ceiling = PLANS[tier].limits[kind]
    return ceiling == UNLIMITED or current_count < ceiling


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class EntitlementEngine:
    """Entitlement checks bound to one mirrored subscription record.

    A missing record means the free tier. A tier given as a plain string is
    coerced to Tier, and an unrecognised one reads as free.
    """

    def __init__(self, record: SubscriptionRecord | None = None) -> None:
        record = record or free_subscription()
        self.record = replace(record, tier=Tier.parse(record.tier) or Tier.FREE)

    @property
    def tier(self) -> Tier:
        return self.record.tier

    @property
    def plan(self) -> Plan:
        return PLANS[self.tier]

    def is_subscribed(self) -> bool:
        return self.record.subscribed

    def can_create(self, resource_kind: str | ResourceKind, current_count: int) -> bool:
        return can_create(self.tier, resource_kind, current_count)

    def has_feature(self, feature_name: str | Feature) -> bool:
        return has_feature(self.tier, feature_name)

    def check_access(self, required_tier: Tier | str, feature: str | Feature | None = None) -> bool:
        """Gate a UI feature by tier hierarchy, falling back to a specific feature flag."""
        if tier_allows(self.tier, Tier(required_tier)):
            return True
        if feature is not None:
            return self.has_feature(feature)
        return False

    def usage_info(self) -> dict[str, Any]:
        """Plan summary for the billing page: name, price, features, limits."""
        plan = self.plan
        return {
            "tier": self.tier.value,
            "plan": plan.name,
            "price": plan.price,
            "subscribed": self.record.subscribed,
            "period_end": self.record.period_end,
            "features": sorted(f.value for f in plan.features),
            "limits": {k.value: v for k, v in plan.limits.items()},
        }


# ---------------------------------------------------------------------------
# Subscription mirror
# ---------------------------------------------------------------------------


class SubscriptionSource(Protocol):
    def read_subscription(self, user_id: str) -> SubscriptionRecord | None: ...


class SubscriptionMirror:
    """Reads the backend's subscription record for a user, defaulting to free.

    The user is passed in explicitly so billing/ stays independent of the
    session core. load() and engine_for() trust the user they are given, so
    callers pass one only after is_authenticated(); engine_for_session() does
    that check itself. Backend failures degrade to the free tier and are logged.
    """

    def __init__(self, backend: SubscriptionSource) -> None:
        self._backend = backend

    async def load(self, user: Any | None) -> SubscriptionRecord:
        if user is None:
            return free_subscription()
        try:
            record = await asyncio.to_thread(self._backend.read_subscription, user.id)
        except Exception:
            logger.exception("Error fetching subscription for user %s", user.id)
            return free_subscription(user.id)
        return record if record is not None else free_subscription(user.id)

    async def engine_for(self, user: Any | None) -> EntitlementEngine:
        return EntitlementEngine(await self.load(user))

    async def engine_for_session(self, session_manager: Any) -> EntitlementEngine:
        """Engine for whoever is signed in, or free when the session is absent or expired."""
        user = session_manager.get_user() if session_manager.is_authenticated() else None
        return await self.engine_for(user)
