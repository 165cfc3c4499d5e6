"""
Payment Ledger (Domain Logic).

Records payments against parcels across two independent stores.

Guarantees:
- a transaction id is recorded at most once (duplicate lookup, backed by
  the unique index on ``payments.transaction_id``)
- a parcel moves unpaid -> paid at most once (conditional update)
- the parcel transition happens before the payment insert and is never
  reversed; if the insert fails afterwards the orphaned state is flagged
  for reconciliation and reported as its own error.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import AsyncContextManager, Callable, List, Optional, Set

from parcel_delivery.app.core.exceptions import (
    DuplicateTransactionError,
    InputValidationError,
    InsufficientPermissionsError,
    ParcelAlreadyPaidError,
    ParcelNotFoundError,
    PaymentPersistFailedAfterStateChangeError,
    StoreUnavailableError,
)
from parcel_delivery.app.core.guards import is_privileged
from parcel_delivery.app.domain.payments.stores import ParcelStore, PaymentStore
from parcel_delivery.app.models.payment import Payment
from parcel_delivery.app.services.reconciliation import ReconciliationRecorder

logger = logging.getLogger("parcel_delivery.ledger")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class PaymentPage:
    items: List[Payment]
    total: int
    page: int
    page_size: int


@dataclass
class LedgerStores:
    """Stores used for the parcel transition and payment insert."""
    parcels: ParcelStore
    payments: PaymentStore
    reconciliation: Optional[ReconciliationRecorder] = None


# Opens stores that outlive the request, e.g. on their own session
WriteScope = Callable[[], AsyncContextManager[LedgerStores]]

# Writes still running after their request was cancelled
_detached_writes: Set["asyncio.Task[int]"] = set()


def _report_detached_write(task: "asyncio.Task[int]") -> None:
    _detached_writes.discard(task)
    if task.cancelled():
        logger.error("Detached payment write was cancelled before completing")
        return
    exc = task.exception()
    if exc is not None:
        logger.error(
            "Payment write failed after its request was cancelled",
            extra={"error": repr(exc)}
        )
        return
    logger.info(
        "Payment write completed after its request was cancelled",
        extra={"payment_id": task.result()}
    )


class PaymentLedger:

    def __init__(
        self,
        parcels: ParcelStore,
        payments: PaymentStore,
        reconciliation: Optional[ReconciliationRecorder] = None,
        lookup_timeout: Optional[float] = None,
        max_page_size: int = 100,
        clock: Callable[[], datetime] = utc_now,
        write_scope: Optional[WriteScope] = None,
    ):
        self.parcels = parcels
        self.payments = payments
        self.reconciliation = reconciliation
        self.lookup_timeout = lookup_timeout
        self.max_page_size = max_page_size
        self.clock = clock
        self.write_scope = write_scope

    async def record_payment(
        self,
        parcel_id: int,
        payer_email: str,
        amount: int,
        payment_method: str,
        transaction_id: str,
    ) -> int:
        """
        Record a completed payment and mark its parcel paid.

        Flow:
        1. Duplicate check on transaction id (may time out; nothing changed yet)
        2. Conditional unpaid -> paid update on the parcel
        3. Insert the payment record

        Steps 2 and 3 are shielded from cancellation so an aborted request
        cannot stop between them. With a ``write_scope`` they run on stores
        of their own, so the write survives the request closing its session.

        Returns:
            ID of the new payment record

        Raises:
            InputValidationError: malformed input
            DuplicateTransactionError: transaction id already recorded
            ParcelNotFoundError: no parcel with this id
            ParcelAlreadyPaidError: parcel was already paid
            StoreUnavailableError: store unreachable before any change
            PaymentPersistFailedAfterStateChangeError: parcel paid, payment not stored
        """
        transaction_id = self._require_text(transaction_id, "transactionId")
        payer_email = self._require_text(payer_email, "email")
        payment_method = self._require_text(payment_method, "paymentMethod")
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise InputValidationError("amount must be a positive integer in minor currency units", field="amount")
        if isinstance(parcel_id, bool) or not isinstance(parcel_id, int) or parcel_id <= 0:
            raise InputValidationError("parcelId must be a positive integer", field="parcelId")

        # 1. Duplicate check
        lookup = self.payments.find_by_transaction_id(transaction_id)
        try:
            if self.lookup_timeout:
                existing = await asyncio.wait_for(lookup, timeout=self.lookup_timeout)
            else:
                existing = await lookup
        except asyncio.TimeoutError:
            raise StoreUnavailableError("payment lookup")

        if existing is not None:
            logger.warning(
                "Duplicate transaction rejected",
                extra={"transaction_id": transaction_id, "parcel_id": parcel_id}
            )
            raise DuplicateTransactionError(transaction_id)

        # 2 + 3. Past this point the sequence must run to completion
        write = asyncio.ensure_future(
            self._write(parcel_id, payer_email, amount, payment_method, transaction_id)
        )
        try:
            return await asyncio.shield(write)
        except asyncio.CancelledError:
            _detached_writes.add(write)
            write.add_done_callback(_report_detached_write)
            raise

    async def _write(
        self,
        parcel_id: int,
        payer_email: str,
        amount: int,
        payment_method: str,
        transaction_id: str,
    ) -> int:
        if self.write_scope is None:
            stores = LedgerStores(self.parcels, self.payments, self.reconciliation)
            return await self._transition_and_record(
                stores, parcel_id, payer_email, amount, payment_method, transaction_id
            )
        async with self.write_scope() as stores:
            return await self._transition_and_record(
                stores, parcel_id, payer_email, amount, payment_method, transaction_id
            )

    async def _transition_and_record(
        self,
        stores: LedgerStores,
        parcel_id: int,
        payer_email: str,
        amount: int,
        payment_method: str,
        transaction_id: str,
    ) -> int:
        result = await stores.parcels.conditionally_mark_paid(parcel_id)
        if not result.matched:
            raise ParcelNotFoundError(parcel_id)
        if not result.modified:
            logger.warning(
                "Payment for already paid parcel rejected",
                extra={"transaction_id": transaction_id, "parcel_id": parcel_id}
            )
            raise ParcelAlreadyPaidError(parcel_id)

        paid_at = self.clock()
        payment = Payment(
            transaction_id=transaction_id,
            parcel_id=parcel_id,
            email=payer_email,
            amount=amount,
            payment_method=payment_method,
            paid_at=paid_at,
        )
        payload = {
            "transaction_id": transaction_id,
            "parcel_id": parcel_id,
            "email": payer_email,
            "amount": amount,
            "payment_method": payment_method,
            "paid_at": paid_at.isoformat(),
        }

        try:
            payment_id = await stores.payments.insert(payment)
        except Exception as exc:
            logger.critical(
                "Parcel marked paid but payment record was not saved; manual reconciliation required",
                extra={"transaction_id": transaction_id, "parcel_id": parcel_id, "error": repr(exc)}
            )
            reconciliation_id = None
            if stores.reconciliation is not None:
                reconciliation_id = await stores.reconciliation.flag(parcel_id, transaction_id, payload, exc)
            raise PaymentPersistFailedAfterStateChangeError(
                parcel_id, transaction_id, reconciliation_id
            ) from exc

        logger.info(
            "Payment recorded",
            extra={"transaction_id": transaction_id, "parcel_id": parcel_id, "payment_id": payment_id}
        )
        return payment_id

    async def list_payments(
        self,
        requester: dict,
        email: Optional[str] = None,
        page: int = 1,
        page_size: int = 10,
    ) -> PaymentPage:
        """
        List payments newest first.

        A non-privileged requester only sees its own payments: no email
        means its own, another email is forbidden.
        """
        if page < 1:
            raise InputValidationError("page must be at least 1", field="page")
        if page_size < 1 or page_size > self.max_page_size:
            raise InputValidationError(
                f"limit must be between 1 and {self.max_page_size}", field="limit"
            )

        if not is_privileged(requester):
            own_email = requester.get("email")
            if email is not None and email != own_email:
                raise InsufficientPermissionsError(
                    "You may only list your own payments",
                    details={"email": email}
                )
            email = own_email

        items, total = await self.payments.list_by_email(
            email, skip=(page - 1) * page_size, limit=page_size
        )
        return PaymentPage(items=list(items), total=total, page=page, page_size=page_size)

    @staticmethod
    def _require_text(value: Optional[str], field: str) -> str:
        if not isinstance(value, str) or not value.strip():
            raise InputValidationError(f"{field} is required", field=field)
        return value.strip()
