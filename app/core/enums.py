from enum import Enum


class UserRole(str, Enum):
    ADMIN = "admin"
    PARENT = "parent"


class StudentClass(str, Enum):
    PLAY_GROUP = "Play Group"
    NURSERY = "Nursery"
    LKG = "LKG"
    UKG = "UKG"


class PaymentStatus(str, Enum):
    pending = "pending"
    completed = "completed"
    failed = "failed"
    cancelled = "cancelled"


class PaymentMethod(str, Enum):
    upi = "upi"
    cash = "cash"
    bank_transfer = "bank_transfer"
