"""
Payment Reconciliation Model.

Stores payments that could not be written after their parcel was already
marked paid, so they can be replayed by an admin.
"""

from sqlalchemy import Column, Integer, String, Text, DateTime, JSON, Enum
from sqlalchemy.sql import func
from parcel_delivery.app.db.session import Base
from parcel_delivery.app.models.parcel_enums import enum_values
import enum


class ReconciliationStatus(str, enum.Enum):
    OPEN = "OPEN"
    RESOLVED = "RESOLVED"


class PaymentReconciliation(Base):
    """
    Reconciliation marker table.
    One row per orphaned "paid but unrecorded" parcel state.
    """
    __tablename__ = "payment_reconciliations"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    parcel_id = Column(Integer, nullable=False, index=True)
    transaction_id = Column(String(255), nullable=False, index=True)
    error_message = Column(Text, nullable=False)
    payload = Column(JSON, nullable=False)  # The payment that should have been written

    status = Column(
        Enum(ReconciliationStatus, values_callable=enum_values, native_enum=False, length=20),
        default=ReconciliationStatus.OPEN,
        nullable=False,
        index=True
    )

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    resolved_at = Column(DateTime(timezone=True), nullable=True)
    resolved_by = Column(String(255), nullable=True)

    def __repr__(self):
        return f"<PaymentReconciliation(id={self.id}, transaction_id='{self.transaction_id}', status='{self.status}')>"
