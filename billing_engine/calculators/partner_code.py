"""
Partner Code Validator

Decides whether a referral code may be used right now.
"""

from datetime import datetime
from typing import Callable

from ..models import CodeValidation, utcnow
from ..repositories import PartnerCodeRepository, PartnerRepository


class PartnerCodeValidator:
    """
    Checks a code against four rules, in order, stopping at the first failure:

    1. The code exists and is active
    2. If it expires, the expiry is strictly in the future
    3. If it has a usage limit, current_uses < max_uses
    4. The owning partner exists and is ACTIVE

    Callers only learn valid/invalid, never which rule failed.
    """

    def __init__(
        self,
        codes: PartnerCodeRepository,
        partners: PartnerRepository,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.codes = codes
        self.partners = partners
        self.clock = clock

    def validate(self, code: str) -> CodeValidation:
        partner_code = self.codes.find_by_code(code) if code else None
        if partner_code is None or not partner_code.is_active:
            return CodeValidation(is_valid=False)

        if partner_code.expires_at is not None and partner_code.expires_at <= self.clock():
            return CodeValidation(is_valid=False)

        if partner_code.is_exhausted:
            return CodeValidation(is_valid=False)

        partner = self.partners.find_by_id(partner_code.partner_id)
        if partner is None or not partner.is_active:
            return CodeValidation(is_valid=False)

        return CodeValidation(
            is_valid=True,
            partner_id=partner_code.partner_id,
            expiration_date=partner_code.expires_at,
        )
