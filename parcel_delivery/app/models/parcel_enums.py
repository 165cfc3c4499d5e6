"""
Parcel Status Enumerations.
"""

import enum


class DeliveryStatus(str, enum.Enum):
    """
    Parcel delivery status.

    Status flow:
        PENDING → PAID → IN_TRANSIT → DELIVERED
        Any status can transition to CANCELLED
    """
    PENDING = "pending"
    PAID = "paid"
    IN_TRANSIT = "in-transit"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentStatus(str, enum.Enum):
    """
    Parcel payment status.

    UNPAID → PAID happens exactly once, through the payment ledger.
    """
    UNPAID = "unpaid"
    PAID = "paid"


def enum_values(enum_cls):
    """Persist enum values rather than member names."""
    return [member.value for member in enum_cls]
