"""
Subscription Tier Catalog

Static, read-only table of the four subscription tiers. Ordering, commission
modifiers and the role a tier grants all live here, so adding a tier never
touches control flow.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from types import MappingProxyType

from .models import PartnerType, Tier, UserRole


@dataclass(frozen=True)
class TierLimits:
    max_users: int
    max_runs_per_month: int
    max_exports_per_month: int
    storage_gb: int
    api_calls_per_month: int
    max_organizations: int | None = None  # only the top tier caps member orgs


@dataclass(frozen=True)
class TierConfig:
    tier: Tier
    rank: int
    name: str
    description: str
    price_monthly: int
    price_annual: int
    currency: str
    features: tuple[str, ...]
    limits: TierLimits
    commission_modifier: Decimal = Decimal('1.0')
    # Overrides commission_modifier for specific partner business types.
    partner_modifiers: MappingProxyType = field(default_factory=lambda: MappingProxyType({}))
    elevated_role: UserRole | None = None

    def modifier_for(self, business_type: PartnerType) -> Decimal:
        return self.partner_modifiers.get(business_type, self.commission_modifier)

    def to_dict(self) -> dict:
        limits = {
            'max_users': self.limits.max_users,
            'max_runs_per_month': self.limits.max_runs_per_month,
            'max_exports_per_month': self.limits.max_exports_per_month,
            'storage_gb': self.limits.storage_gb,
            'api_calls_per_month': self.limits.api_calls_per_month,
        }
        if self.limits.max_organizations is not None:
            limits['max_organizations'] = self.limits.max_organizations
        return {
            'tier': self.tier.value,
            'rank': self.rank,
            'name': self.name,
            'description': self.description,
            'price_monthly': self.price_monthly,
            'price_annual': self.price_annual,
            'currency': self.currency,
            'features': list(self.features),
            'limits': limits,
        }


TIER_CATALOG: MappingProxyType = MappingProxyType({
    Tier.L1: TierConfig(
        tier=Tier.L1,
        rank=1,
        name='Level 1',
        description='Basic threat intelligence assessment',
        price_monthly=9900,
        price_annual=95000,
        currency='USD',
        features=(
            'Basic threat assessment',
            'Weekly security reports',
            'Email alerts',
            'Basic API access',
        ),
        limits=TierLimits(
            max_users=5,
            max_runs_per_month=10,
            max_exports_per_month=5,
            storage_gb=1,
            api_calls_per_month=1000,
        ),
    ),
    Tier.L2: TierConfig(
        tier=Tier.L2,
        rank=2,
        name='Level 2',
        description='Advanced threat intelligence with enhanced features',
        price_monthly=19900,
        price_annual=191000,
        currency='USD',
        features=(
            'Advanced threat assessment',
            'Daily security reports',
            'Real-time alerts',
            'Advanced API access',
            'Custom integrations',
        ),
        limits=TierLimits(
            max_users=25,
            max_runs_per_month=50,
            max_exports_per_month=25,
            storage_gb=10,
            api_calls_per_month=10000,
        ),
    ),
    Tier.L3: TierConfig(
        tier=Tier.L3,
        rank=3,
        name='Level 3',
        description='Enterprise-grade threat intelligence platform',
        price_monthly=49900,
        price_annual=479000,
        currency='USD',
        features=(
            'Enterprise threat assessment',
            'Real-time monitoring',
            'Custom dashboards',
            'Full API access',
            'Dedicated support',
            'White-label options',
        ),
        limits=TierLimits(
            max_users=100,
            max_runs_per_month=200,
            max_exports_per_month=100,
            storage_gb=50,
            api_calls_per_month=50000,
        ),
        commission_modifier=Decimal('1.1'),
    ),
    Tier.LE: TierConfig(
        tier=Tier.LE,
        rank=4,
        name='Law Enforcement',
        description='Specialized tier for law enforcement agencies with multi-org access',
        price_monthly=99900,
        price_annual=959000,
        currency='USD',
        features=(
            'All L3 features',
            'Multi-organization access',
            'Law enforcement tools',
            'Evidence management',
            'Compliance reporting',
            'Priority support',
            'Custom training',
        ),
        limits=TierLimits(
            max_users=500,
            max_runs_per_month=1000,
            max_exports_per_month=500,
            storage_gb=200,
            api_calls_per_month=200000,
            max_organizations=10,
        ),
        commission_modifier=Decimal('1.2'),
        partner_modifiers=MappingProxyType({PartnerType.LAW_ENFORCEMENT: Decimal('1.5')}),
        elevated_role=UserRole.LE_ADMIN,
    ),
})


def resolve_tier(value) -> TierConfig | None:
    """Look up a tier by enum or raw string; None when unknown."""
    try:
        tier = Tier(value)
    except ValueError:
        return None
    return TIER_CATALOG.get(tier)


def tier_rank(tier: Tier) -> int:
    config = TIER_CATALOG.get(tier)
    return config.rank if config else 0
