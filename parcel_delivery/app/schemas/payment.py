"""
Payment Pydantic schemas.

Request and response bodies use the camelCase keys the web client sends.
"""

from pydantic import BaseModel, EmailStr, Field
from datetime import datetime
from typing import List


class PaymentCreate(BaseModel):
    """Schema for recording a completed payment."""
    parcel_id: int = Field(..., alias="parcelId", gt=0, description="Parcel being paid")
    email: EmailStr = Field(..., description="Payer email")
    amount: int = Field(..., gt=0, description="Amount in minor currency units")
    payment_method: str = Field(..., alias="paymentMethod", min_length=1, max_length=100)
    transaction_id: str = Field(..., alias="transactionId", min_length=1, max_length=255)

    class Config:
        populate_by_name = True


class PaymentCreatedResponse(BaseModel):
    message: str
    inserted_id: int = Field(..., alias="insertedId")

    class Config:
        populate_by_name = True


class PaymentResponse(BaseModel):
    """Schema for displaying a payment."""
    id: int
    transaction_id: str = Field(..., alias="transactionId")
    parcel_id: int = Field(..., alias="parcelId")
    email: str
    amount: int
    payment_method: str = Field(..., alias="paymentMethod")
    paid_at: datetime

    class Config:
        populate_by_name = True


class PaymentListResponse(BaseModel):
    """Schema for paginated payment history."""
    data: List[PaymentResponse]
    total: int
    page: int
    limit: int


class PaymentIntentCreate(BaseModel):
    amount: int = Field(..., gt=0, description="Amount in minor currency units")


class PaymentIntentResponse(BaseModel):
    client_secret: str
