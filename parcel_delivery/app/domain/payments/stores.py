"""
Parcel and Payment stores.

The payment ledger depends on the two protocols below; the SQL classes
implement them over an ``AsyncSession``. Every mutating call commits its
own unit of work: the two stores never share a transaction.
"""

from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import List, Optional, Protocol, Tuple

from sqlalchemy import select, update, delete, func
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from parcel_delivery.app.core.exceptions import StoreUnavailableError
from parcel_delivery.app.models.parcel import Parcel
from parcel_delivery.app.models.parcel_enums import DeliveryStatus, PaymentStatus
from parcel_delivery.app.models.payment import Payment
from parcel_delivery.app.models.tracking_event import TrackingEvent


class DuplicateKeyError(Exception):
    """Raised when an insert violates the unique index on transaction_id."""


@dataclass(frozen=True)
class MarkPaidResult:
    matched: bool
    modified: bool


class ParcelStore(Protocol):
    async def find_by_id(self, parcel_id: int) -> Optional[Parcel]: ...

    async def conditionally_mark_paid(self, parcel_id: int) -> MarkPaidResult: ...


class PaymentStore(Protocol):
    async def find_by_transaction_id(self, transaction_id: str) -> Optional[Payment]: ...

    async def insert(self, payment: Payment) -> int: ...

    async def list_by_email(
        self, email: Optional[str], skip: int, limit: int
    ) -> Tuple[List[Payment], int]: ...


@asynccontextmanager
async def store_call(db: AsyncSession, operation: str):
    """Translate connection-level failures into StoreUnavailableError."""
    try:
        yield
    except (OperationalError, InterfaceError, OSError) as exc:
        await db.rollback()
        raise StoreUnavailableError(operation) from exc


class SqlParcelStore:
    """Parcel store backed by the ``parcels`` table."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_by_id(self, parcel_id: int) -> Optional[Parcel]:
        async with store_call(self.db, "parcel lookup"):
            result = await self.db.execute(select(Parcel).where(Parcel.id == parcel_id))
            return result.scalar_one_or_none()

    async def conditionally_mark_paid(self, parcel_id: int) -> MarkPaidResult:
        """
        Atomically move an unpaid parcel to paid.

        The WHERE clause makes this a compare-and-set on the single row:
        two concurrent calls can never both modify it.
        """
        async with store_call(self.db, "parcel payment update"):
            result = await self.db.execute(
                update(Parcel)
                .where(Parcel.id == parcel_id, Parcel.payment_status == PaymentStatus.UNPAID)
                .values(payment_status=PaymentStatus.PAID, delivery_status=DeliveryStatus.PAID)
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()

            if result.rowcount == 1:
                return MarkPaidResult(matched=True, modified=True)

            exists = await self.db.execute(select(Parcel.id).where(Parcel.id == parcel_id))
            return MarkPaidResult(matched=exists.scalar_one_or_none() is not None, modified=False)

    async def create(self, parcel: Parcel) -> Parcel:
        async with store_call(self.db, "parcel insert"):
            self.db.add(parcel)
            await self.db.commit()
            await self.db.refresh(parcel)
            return parcel

    async def list_by_creator(
        self, email: Optional[str], skip: int, limit: int
    ) -> Tuple[List[Parcel], int]:
        """Parcels newest first, with the total count matching ``email``."""
        async with store_call(self.db, "parcel listing"):
            count_query = select(func.count(Parcel.id))
            query = select(Parcel).order_by(Parcel.creation_date.desc(), Parcel.id.desc())
            if email is not None:
                count_query = count_query.where(Parcel.created_by == email)
                query = query.where(Parcel.created_by == email)

            total = (await self.db.execute(count_query)).scalar()
            result = await self.db.execute(query.offset(skip).limit(limit))
            return result.scalars().all(), total

    async def delete(self, parcel_id: int) -> int:
        """
        Delete an unpaid parcel together with its tracking history.

        Both statements repeat the unpaid condition, so a parcel paid
        concurrently is left untouched and 0 is returned.
        """
        unpaid = select(Parcel.id).where(
            Parcel.id == parcel_id, Parcel.payment_status == PaymentStatus.UNPAID
        )
        async with store_call(self.db, "parcel delete"):
            await self.db.execute(
                delete(TrackingEvent)
                .where(TrackingEvent.parcel_id.in_(unpaid))
                .execution_options(synchronize_session=False)
            )
            result = await self.db.execute(
                delete(Parcel)
                .where(Parcel.id == parcel_id, Parcel.payment_status == PaymentStatus.UNPAID)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                await self.db.rollback()
                return 0
            await self.db.commit()
            return result.rowcount


class SqlPaymentStore:
    """Append-only payment store backed by the ``payments`` table."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_by_transaction_id(self, transaction_id: str) -> Optional[Payment]:
        async with store_call(self.db, "payment lookup"):
            result = await self.db.execute(
                select(Payment).where(Payment.transaction_id == transaction_id)
            )
            return result.scalar_one_or_none()

    async def insert(self, payment: Payment) -> int:
        transaction_id = payment.transaction_id
        async with store_call(self.db, "payment insert"):
            self.db.add(payment)
            try:
                await self.db.commit()
            except IntegrityError as exc:
                await self.db.rollback()
                raise DuplicateKeyError(transaction_id) from exc
            await self.db.refresh(payment)
            return payment.id

    async def list_by_email(
        self, email: Optional[str], skip: int, limit: int
    ) -> Tuple[List[Payment], int]:
        """Payments by ``paid_at`` descending, with the total count matching ``email``."""
        async with store_call(self.db, "payment listing"):
            count_query = select(func.count(Payment.id))
            query = select(Payment).order_by(Payment.paid_at.desc(), Payment.id.desc())
            if email is not None:
                count_query = count_query.where(Payment.email == email)
                query = query.where(Payment.email == email)

            total = (await self.db.execute(count_query)).scalar()
            result = await self.db.execute(query.offset(skip).limit(limit))
            return result.scalars().all(), total
