"""
Input Validation for the Billing Engine

Validates request data before any entity is touched.
Raises ValidationFailedError with clear messages for any constraint violations.
"""

from datetime import datetime
from decimal import Decimal

from .errors import ValidationFailedError
from .models import (
    PartnerRequest, PartnerStatus, PartnerType, PaymentMethod, PaymentRequest, PayoutMethod, parse_datetime,
)


class InputValidator:
    """Validates billing requests according to business rules."""

    MAX_COMMISSION_RATE = Decimal('100')

    def require_fields(self, data, *fields: str) -> None:
        """Check a raw request body carries every named field."""
        if not isinstance(data, dict):
            raise ValidationFailedError("Request body must be a JSON object", code='INVALID_BODY')
        missing = [name for name in fields if data.get(name) in (None, '')]
        if missing:
            raise ValidationFailedError(
                f"Missing required field(s): {', '.join(missing)}",
                code='MISSING_FIELD',
                details={'missing': missing},
            )

    def validate_payment_request(self, request: PaymentRequest) -> None:
        """
        Run all payment-request checks. Tier resolution happens in the
        payment processor against the catalog.
        """
        self._validate_amount(request.amount, 'amount')
        if not request.org_id or not str(request.org_id).strip():
            raise ValidationFailedError("org_id is required", code='INVALID_ORG_ID')
        self._validate_email(request.user_email, 'user_email')
        self._validate_choice(request.payment_method, PaymentMethod, 'payment_method')

    def validate_partner_request(self, request: PartnerRequest) -> None:
        if not isinstance(request.company_name, str) or not request.company_name.strip():
            raise ValidationFailedError("company_name is required", code='INVALID_COMPANY_NAME')
        self._validate_email(request.contact_email, 'contact_email')
        self._validate_choice(request.business_type, PartnerType, 'business_type')
        self._validate_choice(request.status, PartnerStatus, 'status')
        if request.commission_rate is not None:
            self.validate_commission_rate(request.commission_rate)

    def validate_commission_rate(self, rate: Decimal) -> None:
        if not rate.is_finite() or not (0 <= rate <= self.MAX_COMMISSION_RATE):
            raise ValidationFailedError(
                f"commission_rate must be between 0 and 100, got: {rate}",
                code='INVALID_COMMISSION_RATE',
            )

    def validate_payout(self, amount, payment_method: str) -> None:
        self._validate_amount(amount, 'amount')
        self._validate_choice(payment_method, PayoutMethod, 'payment_method')

    def validate_max_uses(self, max_uses) -> None:
        if max_uses is None:
            return
        if isinstance(max_uses, bool) or not isinstance(max_uses, int) or max_uses < 1:
            raise ValidationFailedError(
                f"max_uses must be a positive integer, got: {max_uses}",
                code='INVALID_MAX_USES',
            )

    def parse_timestamp(self, value, field_name: str) -> datetime | None:
        """Parse an optional ISO-8601 timestamp field from a request body."""
        if value is None:
            return None
        if not isinstance(value, str):
            raise ValidationFailedError(
                f"{field_name} must be an ISO-8601 timestamp string, got: {value!r}",
                code=f"INVALID_{field_name.upper()}",
            )
        try:
            return parse_datetime(value)
        except ValueError:
            raise ValidationFailedError(
                f"{field_name} is not a valid ISO-8601 timestamp: {value!r}",
                code=f"INVALID_{field_name.upper()}",
            ) from None

    def _validate_amount(self, amount, field_name: str) -> None:
        # bool is an int subclass; reject it explicitly
        if isinstance(amount, bool) or not isinstance(amount, int):
            raise ValidationFailedError(
                f"{field_name} must be an integer number of minor units, got: {amount!r}",
                code='INVALID_AMOUNT',
            )
        if amount <= 0:
            raise ValidationFailedError(f"{field_name} must be positive, got: {amount}", code='INVALID_AMOUNT')

    def _validate_email(self, email, field_name: str) -> None:
        if not isinstance(email, str) or '@' not in email:
            raise ValidationFailedError(f"{field_name} must be a valid email, got: {email!r}", code='INVALID_EMAIL')

    def _validate_choice(self, value, enum_cls, field_name: str) -> None:
        allowed = [member.value for member in enum_cls]
        if value not in allowed:
            raise ValidationFailedError(
                f"Invalid {field_name}: {value}. Must be one of {', '.join(allowed)}",
                code=f"INVALID_{field_name.upper()}",
            )
