"""
Reconciliation service for orphaned payment states.

When a parcel has been marked paid but its payment record could not be
stored, the ledger flags it here. Admins list the open markers and replay
them, which writes the missing payment record.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from parcel_delivery.app.core.exceptions import (
    ResourceNotFoundError, InputValidationError, ReconciliationConflictError
)
from parcel_delivery.app.domain.payments.stores import SqlPaymentStore, DuplicateKeyError
from parcel_delivery.app.models.payment import Payment
from parcel_delivery.app.models.reconciliation import PaymentReconciliation, ReconciliationStatus

logger = logging.getLogger("parcel_delivery.reconciliation")


class ReconciliationRecorder:
    """Writes reconciliation markers for the payment ledger."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def flag(
        self,
        parcel_id: int,
        transaction_id: str,
        payload: Dict[str, Any],
        error: Exception
    ) -> Optional[int]:
        """
        Record an orphaned payment.

        Returns the marker id, or None when the marker itself could not be
        written. The caller is already failing; this never raises.
        """
        marker = PaymentReconciliation(
            parcel_id=parcel_id,
            transaction_id=transaction_id,
            payload=payload,
            error_message=f"{type(error).__name__}: {error}",
            status=ReconciliationStatus.OPEN
        )
        try:
            # A failed transaction must be discarded before the marker is written
            transaction = self.db.get_transaction()
            if transaction is not None and not transaction.is_active:
                await self.db.rollback()
            # Nothing the failed write left pending may be committed with the marker
            for pending in list(self.db.new):
                self.db.expunge(pending)
            self.db.add(marker)
            await self.db.commit()
            await self.db.refresh(marker)
        except (SQLAlchemyError, OSError):
            logger.exception(
                "Could not write reconciliation marker",
                extra={"parcel_id": parcel_id, "transaction_id": transaction_id, "payload": payload}
            )
            return None
        return marker.id


async def list_open_reconciliations(db: AsyncSession, limit: int = 100) -> List[PaymentReconciliation]:
    query = (
        select(PaymentReconciliation)
        .where(PaymentReconciliation.status == ReconciliationStatus.OPEN)
        .order_by(PaymentReconciliation.created_at, PaymentReconciliation.id)
        .limit(limit)
    )
    result = await db.execute(query)
    return result.scalars().all()


async def replay_reconciliation(
    db: AsyncSession,
    reconciliation_id: int,
    resolved_by: str
) -> PaymentReconciliation:
    """
    Write the payment stored on an OPEN marker and resolve it.

    If the transaction was recorded in the meantime for the same parcel the
    marker is simply resolved. If it was recorded for a different parcel the
    marker's parcel is still paid without a record: the marker stays OPEN.

    Raises:
        ResourceNotFoundError: unknown marker
        InputValidationError: marker already resolved
        ReconciliationConflictError: transaction recorded against another parcel
    """
    result = await db.execute(
        select(PaymentReconciliation).where(PaymentReconciliation.id == reconciliation_id)
    )
    marker = result.scalar_one_or_none()
    if not marker:
        raise ResourceNotFoundError("Reconciliation", reconciliation_id)
    if marker.status == ReconciliationStatus.RESOLVED:
        raise InputValidationError("Reconciliation is already resolved", field="status")

    payments = SqlPaymentStore(db)
    reconciliation_id = marker.id
    parcel_id = marker.parcel_id
    payload = marker.payload
    transaction_id = marker.transaction_id

    recorded = await payments.find_by_transaction_id(transaction_id)
    if recorded is None:
        try:
            await payments.insert(Payment(
                transaction_id=transaction_id,
                parcel_id=parcel_id,
                email=payload["email"],
                amount=payload["amount"],
                payment_method=payload["payment_method"],
                paid_at=datetime.fromisoformat(payload["paid_at"])
            ))
        except DuplicateKeyError:
            recorded = await payments.find_by_transaction_id(transaction_id)
            await db.refresh(marker)

    if recorded is not None and recorded.parcel_id != parcel_id:
        logger.error(
            "Reconciliation transaction belongs to another parcel",
            extra={
                "reconciliation_id": reconciliation_id,
                "transaction_id": transaction_id,
                "parcel_id": parcel_id,
                "recorded_parcel_id": recorded.parcel_id
            }
        )
        raise ReconciliationConflictError(reconciliation_id, transaction_id, parcel_id, recorded.parcel_id)

    if recorded is not None:
        logger.info(
            "Reconciliation transaction already recorded",
            extra={"reconciliation_id": reconciliation_id, "transaction_id": transaction_id}
        )

    marker.status = ReconciliationStatus.RESOLVED
    marker.resolved_at = datetime.now(timezone.utc)
    marker.resolved_by = resolved_by
    await db.commit()
    await db.refresh(marker)

    logger.info(
        "Reconciliation resolved",
        extra={"reconciliation_id": reconciliation_id, "transaction_id": transaction_id}
    )
    return marker
