"""
Error taxonomy for the Billing Engine.

Every error raised by the engine carries a machine-readable kind and code,
a human-readable message and the HTTP status the transports answer with.
"""

from typing import Any


class BillingError(Exception):
    """Base class for all billing errors."""

    kind = 'billing_error'
    status_code = 500
    retryable = False

    def __init__(self, message: str, code: str | None = None, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.kind.upper()
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            'error': self.message,
            'code': self.code,
            'kind': self.kind,
            'retryable': self.retryable,
            'details': self.details,
        }


class NotFoundError(BillingError):
    """Payment, subscription, partner or partner code is absent."""

    kind = 'not_found'
    status_code = 404


class ValidationFailedError(BillingError):
    kind = 'validation_failed'
    status_code = 400


class ProcessingFailedError(BillingError):
    """Raised after a failed payment-processing attempt has been compensated."""

    kind = 'processing_failed'
    status_code = 400

    def __init__(self, payment_id: str, reason: str):
        super().__init__(
            f"Payment processing failed for ID '{payment_id}': {reason}",
            code='PAYMENT_PROCESSING_FAILED',
            details={'payment_id': payment_id, 'reason': reason},
        )


class ConcurrencyConflictError(BillingError):
    """A conditional write lost against a concurrent writer. Safe to retry."""

    kind = 'conflict'
    status_code = 409
    retryable = True

    def __init__(self, table: str, key: str, expected_version: int | None, actual_version: int | None):
        super().__init__(
            f"Version conflict on {table}/{key}: expected {expected_version}, found {actual_version}",
            code='VERSION_CONFLICT',
            details={
                'table': table,
                'key': key,
                'expected_version': expected_version,
                'actual_version': actual_version,
            },
        )
