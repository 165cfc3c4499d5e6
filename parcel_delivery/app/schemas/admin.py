"""
Admin schemas for payment reconciliation.
"""

from pydantic import BaseModel
from datetime import datetime
from typing import Optional, List, Dict, Any
from parcel_delivery.app.models.reconciliation import ReconciliationStatus


class ReconciliationResponse(BaseModel):
    id: int
    parcel_id: int
    transaction_id: str
    error_message: str
    payload: Dict[str, Any]
    status: ReconciliationStatus
    created_at: datetime
    resolved_at: Optional[datetime]
    resolved_by: Optional[str]

    class Config:
        from_attributes = True


class ReconciliationListResponse(BaseModel):
    items: List[ReconciliationResponse]
    total: int
