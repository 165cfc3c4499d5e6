"""
Tracking Event database model.

Append-only log of delivery progress for a parcel.
"""

from sqlalchemy import Column, Integer, String, ForeignKey, DateTime
from sqlalchemy.sql import func
from parcel_delivery.app.db.session import Base


class TrackingEvent(Base):
    __tablename__ = "tracking_events"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    parcel_id = Column(Integer, ForeignKey('parcels.id'), nullable=False, index=True)

    status = Column(String(50), nullable=False)
    message = Column(String(500), nullable=True)
    created_by = Column(String(255), nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<TrackingEvent(id={self.id}, parcel_id={self.parcel_id}, status='{self.status}')>"
