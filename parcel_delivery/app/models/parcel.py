"""
Parcel database model.

Senders create parcels; the payment ledger marks them paid.
"""

from sqlalchemy import Column, Integer, String, Float, DateTime, Enum, JSON
from sqlalchemy.sql import func
from parcel_delivery.app.db.session import Base
from parcel_delivery.app.models.parcel_enums import DeliveryStatus, PaymentStatus, enum_values


class Parcel(Base):
    """
    Parcel model for the delivery platform.

    A parcel is a shipment owned by the sender who created it.
    ``payment_status`` moves from UNPAID to PAID once and only through
    the payment ledger.
    """
    __tablename__ = "parcels"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Ownership - email of the sender who created the parcel
    created_by = Column(String(255), nullable=False, index=True)

    # Descriptive fields
    title = Column(String(200), nullable=False)
    parcel_type = Column(String(50), nullable=True)
    weight_kg = Column(Float, nullable=True)
    cost = Column(Integer, nullable=True)  # minor currency units
    sender_name = Column(String(200), nullable=True)
    receiver_name = Column(String(200), nullable=True)
    receiver_address = Column(String(500), nullable=True)
    details = Column(JSON, nullable=True)

    # Status
    delivery_status = Column(
        Enum(DeliveryStatus, values_callable=enum_values, native_enum=False, length=20),
        default=DeliveryStatus.PENDING,
        nullable=False,
        index=True
    )
    payment_status = Column(
        Enum(PaymentStatus, values_callable=enum_values, native_enum=False, length=20),
        default=PaymentStatus.UNPAID,
        nullable=False,
        index=True
    )

    # Timestamps
    creation_date = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<Parcel(id={self.id}, created_by='{self.created_by}', payment_status='{self.payment_status.value}')>"
