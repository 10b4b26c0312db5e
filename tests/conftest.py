from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from billing_engine import BillingEngine
from billing_engine.config import BillingSettings
from billing_engine.models import (
    Partner, PartnerCode, PartnerStatus, PartnerType, Payment, PaymentMethod,
    PaymentStatus, Tier, User, UserRole,
)
from billing_engine.store import InMemoryEntityStore, InMemoryUserDirectory


class FixedClock:
    """Controllable clock injected wherever the engine reads the time."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock():
    return FixedClock(datetime(2025, 6, 15, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def store():
    return InMemoryEntityStore()


@pytest.fixture
def users():
    return InMemoryUserDirectory([
        User(email='analyst@agency.gov', role=UserRole.USER),
        User(email='admin@acme.com', role=UserRole.ORG_ADMIN),
    ])


@pytest.fixture
def engine(store, users, clock):
    return BillingEngine(store=store, users=users, settings=BillingSettings(), clock=clock)


@pytest.fixture
def make_payment(clock):
    """Factory for Payment entities not persisted anywhere."""

    def _make(total_amount=3000, status=PaymentStatus.PAID, tier=Tier.L1, created_at=None, **kwargs):
        return Payment(
            payment_id=kwargs.pop('payment_id', 'pay_test'),
            tier=tier,
            org_id=kwargs.pop('org_id', 'org-1'),
            user_email=kwargs.pop('user_email', 'buyer@acme.com'),
            amount=kwargs.pop('amount', total_amount),
            tax_amount=kwargs.pop('tax_amount', 0),
            total_amount=total_amount,
            payment_method=PaymentMethod.CARD,
            status=status,
            created_at=created_at or clock(),
            **kwargs,
        )

    return _make


@pytest.fixture
def make_partner():
    def _make(partner_id='partner-1', rate='15.0', business_type=PartnerType.RESELLER,
              status=PartnerStatus.ACTIVE, **kwargs):
        return Partner(
            partner_id=partner_id,
            company_name=kwargs.pop('company_name', 'Acme Resellers'),
            contact_email=kwargs.pop('contact_email', f'{partner_id}@partners.com'),
            business_type=business_type,
            commission_rate=Decimal(rate),
            status=status,
            **kwargs,
        )

    return _make


@pytest.fixture
def make_code():
    def _make(code='ABCD1234', partner_id='partner-1', **kwargs):
        return PartnerCode(code=code, partner_id=partner_id, **kwargs)

    return _make
