from app.core.models.student import Student
from app.core.models.payment import Payment
from app.core.models.fee_audit_log import FeeAuditLog

__all__ = [
    "Student",
    "Payment",
    "FeeAuditLog",
]
