from beatstore.models.user import User
from beatstore.models.beat import Beat
from beatstore.models.purchase import Purchase
from beatstore.models.payment import PaymentRecord
from beatstore.models.exclusive_request import ExclusivePurchaseRequest
from beatstore.models.verification_code import VerificationCode
from beatstore.models.payment_callback import PaymentCallback
from beatstore.models.audit_log import AuditLog

__all__ = [
    "User",
    "Beat",
    "Purchase",
    "PaymentRecord",
    "ExclusivePurchaseRequest",
    "VerificationCode",
    "PaymentCallback",
    "AuditLog",
]
