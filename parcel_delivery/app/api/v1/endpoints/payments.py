"""
Payment API Endpoints.

Records completed payments through the payment ledger, lists payment
history and creates gateway payment intents.
"""

from contextlib import asynccontextmanager
from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from parcel_delivery.app.core.config import settings
from parcel_delivery.app.core.dependencies import get_current_user
from parcel_delivery.app.core.exceptions import InsufficientPermissionsError
from parcel_delivery.app.core.guards import is_privileged
from parcel_delivery.app.db.session import get_db, get_session_factory
from parcel_delivery.app.domain.payments.ledger import LedgerStores, PaymentLedger, WriteScope
from parcel_delivery.app.domain.payments.stores import SqlParcelStore, SqlPaymentStore
from parcel_delivery.app.schemas.payment import (
    PaymentCreate, PaymentCreatedResponse, PaymentResponse, PaymentListResponse,
    PaymentIntentCreate, PaymentIntentResponse
)
from parcel_delivery.app.services.payment_gateway import get_payment_gateway
from parcel_delivery.app.services.reconciliation import ReconciliationRecorder

router = APIRouter(tags=["Payments"])


def sql_write_scope(session_factory: async_sessionmaker) -> WriteScope:
    """Ledger writes on a session of their own, closed when the write ends."""

    @asynccontextmanager
    async def scope():
        async with session_factory() as session:
            yield LedgerStores(
                parcels=SqlParcelStore(session),
                payments=SqlPaymentStore(session),
                reconciliation=ReconciliationRecorder(session),
            )

    return scope


async def get_payment_ledger(
    db: AsyncSession = Depends(get_db),
    session_factory: async_sessionmaker = Depends(get_session_factory)
) -> PaymentLedger:
    """Build a ledger reading through the request's session and writing on its own."""
    return PaymentLedger(
        parcels=SqlParcelStore(db),
        payments=SqlPaymentStore(db),
        reconciliation=ReconciliationRecorder(db),
        lookup_timeout=settings.payment_lookup_timeout_seconds,
        max_page_size=settings.max_page_size,
        write_scope=sql_write_scope(session_factory),
    )


@router.post("/payments", response_model=PaymentCreatedResponse, status_code=status.HTTP_201_CREATED)
async def record_payment(
    payment_data: PaymentCreate,
    current_user: dict = Depends(get_current_user),
    ledger: PaymentLedger = Depends(get_payment_ledger)
):
    """
    Record a completed payment and mark the parcel paid.

    - 409 if the transaction id was already recorded or the parcel is already paid
    - 404 if the parcel does not exist
    - 500 (ERR_PAY_003) if the parcel was marked paid but the record could not be saved
    """
    if not is_privileged(current_user) and payment_data.email != current_user.get("email"):
        raise InsufficientPermissionsError("You may only record payments for your own email")

    payment_id = await ledger.record_payment(
        parcel_id=payment_data.parcel_id,
        payer_email=payment_data.email,
        amount=payment_data.amount,
        payment_method=payment_data.payment_method,
        transaction_id=payment_data.transaction_id,
    )

    return PaymentCreatedResponse(
        message="Payment saved & parcel marked as paid",
        inserted_id=payment_id
    )


@router.get("/payments", response_model=PaymentListResponse)
async def list_payments(
    email: Optional[str] = Query(None, description="Payer email (defaults to the caller)"),
    page: int = Query(1, ge=1, description="Page number"),
    limit: int = Query(settings.default_page_size, ge=1, le=settings.max_page_size, description="Items per page"),
    current_user: dict = Depends(get_current_user),
    ledger: PaymentLedger = Depends(get_payment_ledger)
):
    """
    Payment history, newest first.

    Non-admins may only list their own payments.
    """
    result = await ledger.list_payments(current_user, email=email, page=page, page_size=limit)

    return PaymentListResponse(
        data=[
            PaymentResponse(
                id=p.id,
                transaction_id=p.transaction_id,
                parcel_id=p.parcel_id,
                email=p.email,
                amount=p.amount,
                payment_method=p.payment_method,
                paid_at=p.paid_at,
            )
            for p in result.items
        ],
        total=result.total,
        page=result.page,
        limit=result.page_size
    )


@router.post("/create-payment-intent", response_model=PaymentIntentResponse)
async def create_payment_intent(
    intent_data: PaymentIntentCreate,
    current_user: dict = Depends(get_current_user),
    gateway=Depends(get_payment_gateway)
):
    """Create a card payment intent and return its client secret."""
    client_secret = await gateway.create_payment_intent(intent_data.amount)
    return PaymentIntentResponse(client_secret=client_secret)
