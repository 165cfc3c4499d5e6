"""
Parcel Pydantic schemas.

Defines request and response models for parcel management and tracking.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List, Dict, Any
from parcel_delivery.app.models.parcel_enums import DeliveryStatus, PaymentStatus


class ParcelCreate(BaseModel):
    """Schema for creating a new parcel."""
    title: str = Field(..., min_length=1, max_length=200, description="Parcel title")
    parcel_type: Optional[str] = Field(None, max_length=50, description="document / non-document")
    weight_kg: Optional[float] = Field(None, gt=0, description="Weight in kilograms")
    cost: Optional[int] = Field(None, gt=0, description="Delivery cost in minor currency units")
    sender_name: Optional[str] = Field(None, max_length=200)
    receiver_name: Optional[str] = Field(None, max_length=200)
    receiver_address: Optional[str] = Field(None, max_length=500)
    details: Optional[Dict[str, Any]] = Field(None, description="Free-form descriptive fields")


class ParcelCreatedResponse(BaseModel):
    message: str
    inserted_id: int = Field(..., alias="insertedId")

    class Config:
        populate_by_name = True


class ParcelResponse(BaseModel):
    """Schema for parcel response."""
    id: int
    created_by: str
    title: str
    parcel_type: Optional[str]
    weight_kg: Optional[float]
    cost: Optional[int]
    sender_name: Optional[str]
    receiver_name: Optional[str]
    receiver_address: Optional[str]
    details: Optional[Dict[str, Any]]
    delivery_status: DeliveryStatus
    payment_status: PaymentStatus
    creation_date: datetime

    class Config:
        from_attributes = True


class ParcelListResponse(BaseModel):
    """Schema for paginated parcel list."""
    data: List[ParcelResponse]
    total: int
    page: int
    limit: int


class ParcelDeletedResponse(BaseModel):
    deleted_count: int = Field(..., alias="deletedCount")

    class Config:
        populate_by_name = True


class TrackingEventCreate(BaseModel):
    status: str = Field(..., min_length=1, max_length=50)
    message: Optional[str] = Field(None, max_length=500)


class TrackingEventResponse(BaseModel):
    id: int
    parcel_id: int
    status: str
    message: Optional[str]
    created_by: str
    created_at: datetime

    class Config:
        from_attributes = True
