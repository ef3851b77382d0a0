"""Domain errors for the purchase/payment lifecycle.

Every error is an ``HTTPException`` so routers can let it propagate, and
carries a stable ``error_code`` used for support triage and logs.
"""
from fastapi import HTTPException, status


class BeatstoreError(HTTPException):
    error_code = "INTERNAL_ERROR"
    retryable = False

    def __init__(self, status_code: int, detail, headers: dict | None = None):
        super().__init__(status_code=status_code, detail=detail, headers=headers)


# ---------------------------------------------------------------------------
# Ledger / payments
# ---------------------------------------------------------------------------

class DuplicateActivePurchaseError(BeatstoreError):
    error_code = "DUPLICATE_ACTIVE_PURCHASE"

    def __init__(self, user_id: str, beat_id: str, existing_id: str):
        self.existing_id = existing_id
        super().__init__(
            status.HTTP_409_CONFLICT,
            f"User {user_id} already has an active purchase ({existing_id}) for beat {beat_id}",
        )


class InvalidTransitionError(BeatstoreError):
    error_code = "INVALID_TRANSITION"

    def __init__(self, entity: str, entity_id: str, current: str, attempted: str):
        self.current = current
        self.attempted = attempted
        super().__init__(
            status.HTTP_409_CONFLICT,
            f"{entity} {entity_id} is '{current}', cannot apply '{attempted}'",
        )


class PurchaseNotPendingError(BeatstoreError):
    error_code = "PURCHASE_NOT_PENDING"

    def __init__(self, purchase_id: str, current: str):
        super().__init__(
            status.HTTP_409_CONFLICT,
            f"Purchase {purchase_id} is '{current}' and no longer accepts payments",
        )


class ExclusivityViolationError(BeatstoreError):
    error_code = "EXCLUSIVITY_VIOLATION"

    def __init__(self, beat_id: str, detail: str):
        self.beat_id = beat_id
        super().__init__(status.HTTP_409_CONFLICT, f"Beat {beat_id}: {detail}")


class PaymentAmountMismatchError(BeatstoreError):
    error_code = "PAYMENT_AMOUNT_MISMATCH"

    def __init__(self, payment_id: str, expected: str, received: str):
        super().__init__(
            422,
            f"Payment {payment_id} expected {expected}, provider reported {received}",
        )


class TransactionTimeoutError(BeatstoreError):
    """The store could not complete a ledger transaction in time. Safe to retry."""

    error_code = "TRANSACTION_TIMEOUT"
    retryable = True

    def __init__(self, key: str, timeout_seconds: float):
        super().__init__(
            status.HTTP_503_SERVICE_UNAVAILABLE,
            f"Timed out after {timeout_seconds:g}s waiting on {key}; retry the request",
            headers={"Retry-After": "1"},
        )


class CheckoutDeclinedError(BeatstoreError):
    """Generic user-facing decline; only the internal code is exposed."""

    error_code = "CHECKOUT_DECLINED"

    def __init__(self, internal_code: str):
        self.internal_code = internal_code
        super().__init__(
            status.HTTP_402_PAYMENT_REQUIRED,
            {"message": "Checkout was declined", "error_code": internal_code},
        )


# ---------------------------------------------------------------------------
# Not found
# ---------------------------------------------------------------------------

class PurchaseNotFoundError(BeatstoreError):
    error_code = "PURCHASE_NOT_FOUND"

    def __init__(self, purchase_id: str):
        super().__init__(status.HTTP_404_NOT_FOUND, f"Purchase {purchase_id} not found")


class PaymentRecordNotFoundError(BeatstoreError):
    error_code = "PAYMENT_NOT_FOUND"

    def __init__(self, payment_id: str):
        super().__init__(status.HTTP_404_NOT_FOUND, f"Payment record {payment_id} not found")


class ExclusiveRequestNotFoundError(BeatstoreError):
    error_code = "EXCLUSIVE_REQUEST_NOT_FOUND"

    def __init__(self, request_id: str):
        super().__init__(status.HTTP_404_NOT_FOUND, f"Exclusive purchase request {request_id} not found")


class BeatNotFoundError(BeatstoreError):
    error_code = "BEAT_NOT_FOUND"

    def __init__(self, beat_id: str):
        super().__init__(status.HTTP_404_NOT_FOUND, f"Beat {beat_id} not found")


# ---------------------------------------------------------------------------
# Verification codes
# ---------------------------------------------------------------------------

class CodeNotFoundError(BeatstoreError):
    error_code = "CODE_NOT_FOUND"

    def __init__(self):
        super().__init__(status.HTTP_400_BAD_REQUEST, "Invalid or expired verification code")


class CodeExpiredError(BeatstoreError):
    error_code = "CODE_EXPIRED"

    def __init__(self):
        super().__init__(
            status.HTTP_400_BAD_REQUEST,
            "This verification code has expired. Request a new one.",
        )


class CodeMismatchError(BeatstoreError):
    error_code = "CODE_MISMATCH"

    def __init__(self, attempts_left: int):
        self.attempts_left = attempts_left
        super().__init__(
            status.HTTP_400_BAD_REQUEST,
            f"The verification code is incorrect. {attempts_left} attempt(s) left.",
        )


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------

class UnauthorizedError(BeatstoreError):
    error_code = "UNAUTHORIZED"

    def __init__(self, detail: str = "Invalid or missing authentication"):
        super().__init__(status.HTTP_401_UNAUTHORIZED, detail)


class ForbiddenError(BeatstoreError):
    error_code = "FORBIDDEN"

    def __init__(self, detail: str = "Admin access required"):
        super().__init__(status.HTTP_403_FORBIDDEN, detail)
