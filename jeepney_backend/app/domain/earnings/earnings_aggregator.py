"""
Earnings Aggregator (Domain Logic).

Folds the append-only earnings ledger into today/week/month/year/all-time
figures. Nothing is stored: every summary is recomputed from the ledger
and ``as_of``.

Windows (all on ``transaction_date``, the 05:00-boundary business day):
- today: the business day containing as_of
- week: the 7 business days ending today, inclusive
- month/year: calendar month/year containing as_of, up to and including
  the business day (empty between 00:00 and 05:00 on the 1st)
- all-time: unrestricted
"""

import logging
from datetime import date, datetime, timedelta
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, case, and_
from sqlalchemy.exc import SQLAlchemyError

from jeepney_backend.app.core.clock import business_day, to_local
from jeepney_backend.app.core.exceptions import LedgerWriteError
from jeepney_backend.app.models.earnings_record import EarningsRecord
from jeepney_backend.app.schemas.earnings import (
    EarningsBucket, AllTimeBucket, EarningsSummary, EarningsRecordResponse, TransactionPage
)

logger = logging.getLogger(__name__)


def _bucket_columns(condition):
    trips = func.coalesce(
        func.sum(case((and_(condition, EarningsRecord.counts_as_trip == True), 1), else_=0)), 0
    )
    amount = func.coalesce(func.sum(case((condition, EarningsRecord.final_fare), else_=0.0)), 0.0)
    return trips, amount


class EarningsAggregator:

    @staticmethod
    async def get_summary(db: AsyncSession, driver_id: int, as_of: Optional[datetime] = None) -> EarningsSummary:
        """
        Compute every window in a single indexed pass over the driver's rows.

        ``trip_count`` counts rows with counts_as_trip; ``total_amount`` sums
        final_fare over all rows, so fare-only payments add revenue without
        adding trips.

        ``average_fare`` is revenue per counted trip: all-time
        ``total_amount / trip_count``, 0.0 with no trips. It is not a mean
        over ledger rows, since a completion row carries 0.00 and the fare
        it pays for may arrive as a separate row.
        """
        as_of = to_local(as_of)
        today = business_day(as_of)
        week_start = today - timedelta(days=6)
        month_start = as_of.date().replace(day=1)
        year_start = as_of.date().replace(month=1, day=1)

        tx_date = EarningsRecord.transaction_date
        windows = [
            tx_date == today,
            and_(tx_date >= week_start, tx_date <= today),
            and_(tx_date >= month_start, tx_date <= today),
            and_(tx_date >= year_start, tx_date <= today),
        ]
        columns = []
        for condition in windows:
            columns.extend(_bucket_columns(condition))
        columns.extend([
            func.coalesce(func.sum(case((EarningsRecord.counts_as_trip == True, 1), else_=0)), 0),
            func.coalesce(func.sum(EarningsRecord.final_fare), 0.0),
        ])

        row = (await db.execute(
            select(*columns).where(EarningsRecord.driver_id == driver_id)
        )).one()

        buckets = [
            EarningsBucket(trip_count=int(row[i]), total_amount=round(float(row[i + 1]), 2))
            for i in range(0, 8, 2)
        ]
        all_trips = int(row[8])
        all_amount = round(float(row[9]), 2)

        return EarningsSummary(
            driver_id=driver_id,
            as_of=as_of,
            business_date=today,
            today=buckets[0],
            week=buckets[1],
            month=buckets[2],
            year=buckets[3],
            all_time=AllTimeBucket(
                trip_count=all_trips,
                total_amount=all_amount,
                average_fare=round(all_amount / all_trips, 2) if all_trips else 0.0,
            ),
        )

    @staticmethod
    async def get_day_totals(db: AsyncSession, driver_id: int, day: date) -> EarningsBucket:
        """Totals for one business day, whatever the current time."""
        trips, amount = _bucket_columns(EarningsRecord.transaction_date == day)
        row = (await db.execute(
            select(trips, amount).where(EarningsRecord.driver_id == driver_id)
        )).one()
        return EarningsBucket(trip_count=int(row[0]), total_amount=round(float(row[1]), 2))

    @staticmethod
    async def record_earnings(
        db: AsyncSession,
        driver_id: int,
        final_fare: float,
        trip_id: Optional[str] = None,
        passenger_id: Optional[str] = None,
        original_fare: Optional[float] = None,
        discount_amount: float = 0.0,
        counts_as_trip: bool = False,
        payment_method: str = "cash",
        pickup_location: Optional[str] = None,
        destination: Optional[str] = None,
        idempotency_key: Optional[str] = None,
        created_at: Optional[datetime] = None,
        commit: bool = True
    ) -> EarningsRecord:
        """
        Append one ledger line.

        A line with an already-used ``idempotency_key`` is returned as is.
        Storage failures surface as a retryable LedgerWriteError; the engine
        never retries on its own.
        """
        try:
            if idempotency_key:
                existing = (await db.execute(
                    select(EarningsRecord).where(EarningsRecord.idempotency_key == idempotency_key)
                )).scalar_one_or_none()
                if existing is not None:
                    return existing

            created_at = to_local(created_at)
            record = EarningsRecord(
                driver_id=driver_id,
                trip_id=trip_id,
                passenger_id=passenger_id,
                amount=final_fare,
                original_fare=original_fare if original_fare is not None else final_fare + discount_amount,
                discount_amount=discount_amount,
                final_fare=final_fare,
                counts_as_trip=counts_as_trip,
                payment_method=payment_method,
                pickup_location=pickup_location,
                destination=destination,
                transaction_date=business_day(created_at),
                idempotency_key=idempotency_key,
                created_at=created_at,
            )
            db.add(record)
            await db.flush()
            if commit:
                await db.commit()
                await db.refresh(record)
        except SQLAlchemyError as exc:
            await db.rollback()
            logger.error("Ledger write failed for driver %s (key=%s): %s", driver_id, idempotency_key, exc)
            raise LedgerWriteError(
                details={"driver_id": driver_id, "trip_id": trip_id, "idempotency_key": idempotency_key}
            ) from exc

        return record

    @staticmethod
    async def get_transactions(db: AsyncSession, driver_id: int, page: int = 1, per_page: int = 20) -> TransactionPage:
        """Ledger lines for a driver, newest first."""
        page = max(page, 1)
        total = (await db.execute(
            select(func.count(EarningsRecord.id)).where(EarningsRecord.driver_id == driver_id)
        )).scalar() or 0

        result = await db.execute(
            select(EarningsRecord)
            .where(EarningsRecord.driver_id == driver_id)
            .order_by(EarningsRecord.created_at.desc(), EarningsRecord.id.desc())
            .offset((page - 1) * per_page)
            .limit(per_page)
        )
        return TransactionPage(
            driver_id=driver_id,
            page=page,
            per_page=per_page,
            total=total,
            items=[EarningsRecordResponse.model_validate(r) for r in result.scalars().all()],
        )
