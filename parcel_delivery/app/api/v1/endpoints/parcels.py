"""
Parcel Management API Endpoints.

Senders create and manage their own parcels; admins see all of them.
Riders and admins append tracking events.
"""

from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, status, Query, Path
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from parcel_delivery.app.core.config import settings
from parcel_delivery.app.core.dependencies import get_current_user
from parcel_delivery.app.core.exceptions import ParcelNotFoundError, ParcelAlreadyPaidError
from parcel_delivery.app.core.guards import require_role, OwnershipGuard
from parcel_delivery.app.db.session import get_db
from parcel_delivery.app.domain.payments.stores import SqlParcelStore
from parcel_delivery.app.models.enums import UserRole
from parcel_delivery.app.models.parcel import Parcel
from parcel_delivery.app.models.parcel_enums import DeliveryStatus, PaymentStatus
from parcel_delivery.app.models.tracking_event import TrackingEvent
from parcel_delivery.app.schemas.parcel import (
    ParcelCreate, ParcelCreatedResponse, ParcelResponse, ParcelListResponse,
    ParcelDeletedResponse, TrackingEventCreate, TrackingEventResponse
)
from parcel_delivery.app.services.audit import log_event, AuditAction

router = APIRouter(prefix="/parcels", tags=["Parcels"])
ownership_guard = OwnershipGuard()


@router.get("", response_model=ParcelListResponse)
async def list_parcels(
    email: Optional[str] = Query(None, description="Owner email (defaults to the caller)"),
    page: int = Query(1, ge=1, description="Page number"),
    limit: int = Query(settings.default_page_size, ge=1, le=settings.max_page_size, description="Items per page"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    List parcels, newest first.

    Non-admins only see parcels they created.
    """
    owner_filter = ownership_guard.filter_by_ownership(current_user, email)
    parcels, total = await SqlParcelStore(db).list_by_creator(
        owner_filter, skip=(page - 1) * limit, limit=limit
    )

    return ParcelListResponse(
        data=[ParcelResponse.model_validate(p) for p in parcels],
        total=total,
        page=page,
        limit=limit
    )


@router.post("", response_model=ParcelCreatedResponse, status_code=status.HTTP_201_CREATED)
async def create_parcel(
    parcel_data: ParcelCreate,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Create a new parcel owned by the caller.

    New parcels start PENDING / UNPAID.
    """
    parcel = await SqlParcelStore(db).create(Parcel(
        created_by=current_user["email"],
        delivery_status=DeliveryStatus.PENDING,
        payment_status=PaymentStatus.UNPAID,
        **parcel_data.model_dump()
    ))

    await log_event(
        db=db,
        action=AuditAction.PARCEL_CREATED,
        actor_email=current_user["email"],
        resource_id=parcel.id,
        metadata={"title": parcel.title, "cost": parcel.cost}
    )

    return ParcelCreatedResponse(message="Parcel added successfully", inserted_id=parcel.id)


@router.get("/{parcel_id}", response_model=ParcelResponse)
async def get_parcel(
    parcel_id: int = Path(..., description="Parcel ID"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Get details of a parcel (owner or admin)."""
    parcel = await SqlParcelStore(db).find_by_id(parcel_id)
    if not parcel:
        raise ParcelNotFoundError(parcel_id)

    ownership_guard.enforce(parcel.created_by, current_user, "parcel")

    return ParcelResponse.model_validate(parcel)


@router.delete("/{parcel_id}", response_model=ParcelDeletedResponse)
async def delete_parcel(
    parcel_id: int = Path(..., description="Parcel ID"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Delete an unpaid parcel (owner or admin).

    Paid parcels are referenced by their payment record and cannot be deleted.
    """
    store = SqlParcelStore(db)
    parcel = await store.find_by_id(parcel_id)
    if not parcel:
        raise ParcelNotFoundError(parcel_id)

    ownership_guard.enforce(parcel.created_by, current_user, "parcel")

    if parcel.payment_status == PaymentStatus.PAID:
        raise ParcelAlreadyPaidError(parcel_id, message="Paid parcels cannot be deleted")

    deleted = await store.delete(parcel_id)
    if deleted == 0:
        # Paid or removed between the lookup and the delete
        if await store.find_by_id(parcel_id) is not None:
            raise ParcelAlreadyPaidError(parcel_id, message="Paid parcels cannot be deleted")
        raise ParcelNotFoundError(parcel_id)

    await log_event(
        db=db,
        action=AuditAction.PARCEL_DELETED,
        actor_email=current_user["email"],
        resource_id=parcel_id,
        metadata={"deleted_count": deleted}
    )

    return ParcelDeletedResponse(deleted_count=deleted)


@router.post(
    "/{parcel_id}/tracking",
    response_model=TrackingEventResponse,
    status_code=status.HTTP_201_CREATED
)
async def add_tracking_event(
    event_data: TrackingEventCreate,
    parcel_id: int = Path(..., description="Parcel ID"),
    current_user: dict = Depends(require_role([UserRole.ADMIN, UserRole.RIDER])),
    db: AsyncSession = Depends(get_db)
):
    """Append a tracking event to a parcel (rider or admin)."""
    parcel = await SqlParcelStore(db).find_by_id(parcel_id)
    if not parcel:
        raise ParcelNotFoundError(parcel_id)

    event = TrackingEvent(
        parcel_id=parcel_id,
        status=event_data.status,
        message=event_data.message,
        created_by=current_user["email"]
    )
    db.add(event)
    await db.commit()
    await db.refresh(event)

    return TrackingEventResponse.model_validate(event)


@router.get("/{parcel_id}/tracking", response_model=list[TrackingEventResponse])
async def list_tracking_events(
    parcel_id: int = Path(..., description="Parcel ID"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Tracking history in insertion order (owner, rider or admin)."""
    parcel = await SqlParcelStore(db).find_by_id(parcel_id)
    if not parcel:
        raise ParcelNotFoundError(parcel_id)

    if current_user.get("role") != UserRole.RIDER.value:
        ownership_guard.enforce(parcel.created_by, current_user, "parcel")

    result = await db.execute(
        select(TrackingEvent)
        .where(TrackingEvent.parcel_id == parcel_id)
        .order_by(TrackingEvent.id)
    )
    return [TrackingEventResponse.model_validate(e) for e in result.scalars().all()]
