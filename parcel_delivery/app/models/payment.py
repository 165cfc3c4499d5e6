"""
Payment database model.

Immutable record of one completed transaction against one parcel.
"""

from sqlalchemy import Column, Integer, String, ForeignKey, DateTime
from parcel_delivery.app.db.session import Base


class Payment(Base):
    """
    Payment model.

    ``transaction_id`` carries a unique index: it is the store-level guard
    against two concurrent requests recording the same transaction.
    NO updates or deletions allowed.
    """
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Externally issued idempotency key
    transaction_id = Column(String(255), unique=True, nullable=False, index=True)

    # Linkage
    parcel_id = Column(Integer, ForeignKey('parcels.id'), nullable=False, index=True)
    email = Column(String(255), nullable=False, index=True)

    # Financials
    amount = Column(Integer, nullable=False)  # minor currency units
    payment_method = Column(String(100), nullable=False)

    # Timestamps (Immutable - no updated_at)
    paid_at = Column(DateTime(timezone=True), nullable=False, index=True)

    def __repr__(self):
        return f"<Payment(id={self.id}, transaction_id='{self.transaction_id}', parcel_id={self.parcel_id})>"
