from enum import Enum


class UserRole(str, Enum):
    ADMIN = "ADMIN"
    STUDENT = "STUDENT"


class AttendanceStatus(str, Enum):
    PRESENT = "PRESENT"
    SICK = "SICK"
    PERMISSION = "PERMISSION"
    ABSENT = "ABSENT"


class AttendanceMethod(str, Enum):
    QR = "QR"
    MANUAL = "MANUAL"


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class PaymentMethod(str, Enum):
    TRANSFER = "TRANSFER"
    CASH = "CASH"
    QRIS = "QRIS"
    OTHER = "OTHER"
