"""
Referral attribution lookup.

Conversion needs to find which partner referred a paying user. Where that
record lives is a deployment concern, so the lookup sits behind an
interface. UnavailableAttributionLookup is the explicit "no attribution data"
capability: it never finds anything, and conversions become no-ops.
"""

from abc import ABC, abstractmethod

from .models import ReferralAttribution
from .repositories import AttributionRepository


class AttributionLookup(ABC):
    available = True

    @abstractmethod
    def find_by_email(self, email: str) -> ReferralAttribution | None:
        ...

    @abstractmethod
    def record(self, attribution: ReferralAttribution) -> ReferralAttribution:
        """Insert a new attribution; raises ConcurrencyConflictError if the user already has one."""
        ...

    @abstractmethod
    def update(self, attribution: ReferralAttribution) -> ReferralAttribution:
        ...

    @abstractmethod
    def remove(self, email: str) -> None:
        ...


class StoreAttributionLookup(AttributionLookup):
    def __init__(self, repository: AttributionRepository):
        self.repository = repository

    def find_by_email(self, email: str) -> ReferralAttribution | None:
        return self.repository.find_by_email(email)

    def record(self, attribution: ReferralAttribution) -> ReferralAttribution:
        return self.repository.create(attribution)

    def update(self, attribution: ReferralAttribution) -> ReferralAttribution:
        return self.repository.save(attribution)

    def remove(self, email: str) -> None:
        self.repository.delete(email.lower())


class UnavailableAttributionLookup(AttributionLookup):
    available = False

    def find_by_email(self, email: str) -> ReferralAttribution | None:
        return None

    def record(self, attribution: ReferralAttribution) -> ReferralAttribution:
        return attribution

    def update(self, attribution: ReferralAttribution) -> ReferralAttribution:
        return attribution

    def remove(self, email: str) -> None:
        return None
