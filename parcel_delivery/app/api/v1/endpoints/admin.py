"""
Admin Operations API Endpoints.

Manual reconciliation of parcels that were marked paid without a stored
payment record.
"""

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession

from parcel_delivery.app.core.guards import require_admin
from parcel_delivery.app.db.session import get_db
from parcel_delivery.app.schemas.admin import ReconciliationResponse, ReconciliationListResponse
from parcel_delivery.app.services.audit import log_event, AuditAction
from parcel_delivery.app.services.reconciliation import list_open_reconciliations, replay_reconciliation

router = APIRouter(prefix="/admin", tags=["Admin - Reconciliation"])


@router.get("/reconciliations", response_model=ReconciliationListResponse)
async def list_reconciliations(
    limit: int = Query(100, ge=1, le=500),
    admin: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """List OPEN reconciliation markers, oldest first."""
    items = await list_open_reconciliations(db, limit=limit)
    return ReconciliationListResponse(
        items=[ReconciliationResponse.model_validate(item) for item in items],
        total=len(items)
    )


@router.post("/reconciliations/{reconciliation_id}/replay", response_model=ReconciliationResponse)
async def replay(
    reconciliation_id: int = Path(..., description="Reconciliation ID"),
    admin: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    Write the missing payment record for a marker and resolve it.
    """
    marker = await replay_reconciliation(db, reconciliation_id, resolved_by=admin["email"])
    response = ReconciliationResponse.model_validate(marker)

    await log_event(
        db=db,
        action=AuditAction.RECONCILIATION_REPLAYED,
        actor_email=admin["email"],
        resource_id=marker.parcel_id,
        metadata={"reconciliation_id": marker.id, "transaction_id": marker.transaction_id}
    )

    return response
