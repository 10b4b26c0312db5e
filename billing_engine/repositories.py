"""
Repositories

Map domain entities onto the entity store. Every update is a conditional
write keyed on the version that was read, so a concurrent writer makes the
second write fail with ConcurrencyConflictError instead of losing an update.
"""

from .models import (
    CommissionPayout, Partner, PartnerCode, Payment, ReferralAttribution,
    Subscription, utcnow,
)
from .store import EntityStore


class BaseRepository:
    """Shared create/save logic over one store table."""

    table: str = ''
    entity_cls = None

    def __init__(self, store: EntityStore):
        self.store = store

    def _key(self, entity) -> str:
        raise NotImplementedError

    def _load(self, key: str):
        data = self.store.get(self.table, key)
        return self.entity_cls.from_dict(data) if data is not None else None

    def create(self, entity):
        """Insert a new entity at version 1."""
        entity.version = 1
        self.store.put(self.table, self._key(entity), entity.to_dict(), expected_version=None)
        return entity

    def save(self, entity):
        """Write back an entity read earlier; bumps its version on success."""
        read_version = entity.version
        entity.version = read_version + 1
        if hasattr(entity, 'updated_at'):
            entity.updated_at = utcnow()
        try:
            self.store.put(self.table, self._key(entity), entity.to_dict(), expected_version=read_version)
        except Exception:
            entity.version = read_version
            raise
        return entity

    def delete(self, key: str) -> None:
        self.store.delete(self.table, key)

    def remove(self, entity) -> None:
        self.store.delete(self.table, self._key(entity))

    def _query(self, predicate) -> list:
        return [self.entity_cls.from_dict(row) for row in self.store.query(self.table, predicate)]


class PaymentRepository(BaseRepository):
    table = 'Payments'
    entity_cls = Payment

    def _key(self, entity: Payment) -> str:
        return entity.payment_id

    def find_by_id(self, payment_id: str) -> Payment | None:
        return self._load(payment_id)

    def find_by_org(self, org_id: str) -> list[Payment]:
        payments = self._query(lambda row: row['org_id'] == org_id)
        return sorted(payments, key=lambda p: p.created_at)


class SubscriptionRepository(BaseRepository):
    """Keyed by organization id: at most one subscription per org."""

    table = 'Subscriptions'
    entity_cls = Subscription

    def _key(self, entity: Subscription) -> str:
        return entity.org_id

    def find_by_org(self, org_id: str) -> Subscription | None:
        return self._load(org_id)


class PartnerRepository(BaseRepository):
    table = 'Partners'
    entity_cls = Partner

    def _key(self, entity: Partner) -> str:
        return entity.partner_id

    def find_by_id(self, partner_id: str) -> Partner | None:
        return self._load(partner_id)

    def find_by_email(self, email: str) -> Partner | None:
        email = email.lower()
        matches = self._query(lambda row: row['contact_email'].lower() == email)
        return matches[0] if matches else None


class PartnerCodeRepository(BaseRepository):
    table = 'PartnerCodes'
    entity_cls = PartnerCode

    def _key(self, entity: PartnerCode) -> str:
        return entity.code

    def find_by_code(self, code: str) -> PartnerCode | None:
        return self._load(code)

    def find_by_partner(self, partner_id: str) -> list[PartnerCode]:
        return self._query(lambda row: row['partner_id'] == partner_id)


class AttributionRepository(BaseRepository):
    """Keyed by referred user email: one attribution per user."""

    table = 'ReferralAttributions'
    entity_cls = ReferralAttribution

    def _key(self, entity: ReferralAttribution) -> str:
        return entity.user_email.lower()

    def find_by_email(self, email: str) -> ReferralAttribution | None:
        return self._load(email.lower())


class PayoutRepository(BaseRepository):
    """
    Payouts carrying an idempotency key are stored under that key, so a
    second insert with the same key conflicts instead of paying twice.
    Other payouts are stored under their unique record id.
    """

    table = 'CommissionPayouts'
    entity_cls = CommissionPayout

    @staticmethod
    def idempotency_slot(partner_id: str, idempotency_key: str) -> str:
        return f"idem:{partner_id}:{idempotency_key}"

    def _key(self, entity: CommissionPayout) -> str:
        if entity.idempotency_key:
            return self.idempotency_slot(entity.partner_id, entity.idempotency_key)
        return entity.record_id

    def find_by_idempotency_key(self, partner_id: str, idempotency_key: str) -> CommissionPayout | None:
        return self._load(self.idempotency_slot(partner_id, idempotency_key))

    def find_by_partner(self, partner_id: str) -> list[CommissionPayout]:
        payouts = self._query(lambda row: row['partner_id'] == partner_id)
        return sorted(payouts, key=lambda p: p.created_at)
