"""
Shift Service (Domain Logic).

Brackets a driver's on-duty period. One ShiftWindow row per driver per
business day; restarting on the same day reuses it. Start/end use a
version check instead of row locks.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from jeepney_backend.app.core.clock import business_day, to_local
from jeepney_backend.app.models.shift_window import ShiftWindow
from jeepney_backend.app.models.earnings_enums import ShiftStatus, ShiftAction
from jeepney_backend.app.schemas.earnings import ShiftResult, ShiftResponse, ShiftStatusResponse
from jeepney_backend.app.services.driver_directory import get_driver
from jeepney_backend.app.domain.earnings.earnings_aggregator import EarningsAggregator

logger = logging.getLogger(__name__)


class ShiftService:

    @staticmethod
    async def _open_shift(db: AsyncSession, driver_id: int) -> Optional[ShiftWindow]:
        result = await db.execute(
            select(ShiftWindow).where(
                ShiftWindow.driver_id == driver_id,
                ShiftWindow.status == ShiftStatus.ACTIVE
            ).order_by(ShiftWindow.start_time.desc()).limit(1)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def _close(db: AsyncSession, shift: ShiftWindow, end_time: datetime) -> Optional[ShiftWindow]:
        """
        Close with a snapshot of the shift's own business day totals.

        Returns None when the version check loses.
        """
        totals = await EarningsAggregator.get_day_totals(db, shift.driver_id, shift.shift_date)
        result = await db.execute(
            update(ShiftWindow).where(
                ShiftWindow.id == shift.id,
                ShiftWindow.version == shift.version
            ).values(
                status=ShiftStatus.ENDED,
                end_time=end_time,
                total_earnings=totals.total_amount,
                total_trips=totals.trip_count,
                version=shift.version + 1
            )
        )
        if result.rowcount == 0:
            return None
        await db.refresh(shift)
        return shift

    @staticmethod
    async def start_shift(db: AsyncSession, driver_id: int, now: Optional[datetime] = None) -> ShiftResult:
        """
        Open the driver's shift for the current business day.

        Returns:
            started / restarted, or already_active (no-op) when a shift is open
        """
        await get_driver(db, driver_id)
        now = to_local(now)
        today = business_day(now)

        open_shift = await ShiftService._open_shift(db, driver_id)
        if open_shift is not None:
            if open_shift.shift_date == today:
                return ShiftResult(
                    driver_id=driver_id,
                    action=ShiftAction.ALREADY_ACTIVE,
                    shift=ShiftResponse.model_validate(open_shift)
                )
            # Left open on an earlier business day
            logger.info("Closing stale shift %s for driver %s (%s)", open_shift.id, driver_id, open_shift.shift_date)
            if await ShiftService._close(db, open_shift, now) is None:
                await db.rollback()
                return ShiftResult(driver_id=driver_id, action=ShiftAction.CONCURRENT_UPDATE)

        existing = (await db.execute(
            select(ShiftWindow).where(
                ShiftWindow.driver_id == driver_id,
                ShiftWindow.shift_date == today
            )
        )).scalar_one_or_none()

        if existing is not None:
            result = await db.execute(
                update(ShiftWindow).where(
                    ShiftWindow.id == existing.id,
                    ShiftWindow.version == existing.version
                ).values(
                    status=ShiftStatus.ACTIVE,
                    start_time=now,
                    end_time=None,
                    total_earnings=0.0,
                    total_trips=0,
                    version=existing.version + 1
                )
            )
            if result.rowcount == 0:
                await db.rollback()
                return ShiftResult(driver_id=driver_id, action=ShiftAction.CONCURRENT_UPDATE)
            await db.commit()
            await db.refresh(existing)
            return ShiftResult(
                driver_id=driver_id,
                action=ShiftAction.RESTARTED,
                shift=ShiftResponse.model_validate(existing)
            )

        shift = ShiftWindow(
            driver_id=driver_id,
            shift_date=today,
            start_time=now,
            status=ShiftStatus.ACTIVE,
            version=1
        )
        db.add(shift)
        try:
            await db.commit()
        except IntegrityError:
            # Another request created today's row first
            await db.rollback()
            return ShiftResult(driver_id=driver_id, action=ShiftAction.CONCURRENT_UPDATE)
        await db.refresh(shift)

        logger.info("Driver %s started shift for %s", driver_id, today)
        return ShiftResult(driver_id=driver_id, action=ShiftAction.STARTED, shift=ShiftResponse.model_validate(shift))

    @staticmethod
    async def end_shift(db: AsyncSession, driver_id: int, now: Optional[datetime] = None) -> ShiftResult:
        """
        Close the open shift and snapshot the business-day totals.

        Returns:
            ended with final_today_summary, or no_active_shift (no-op)
        """
        await get_driver(db, driver_id)
        now = to_local(now)

        open_shift = await ShiftService._open_shift(db, driver_id)
        if open_shift is None:
            return ShiftResult(driver_id=driver_id, action=ShiftAction.NO_ACTIVE_SHIFT)

        closed = await ShiftService._close(db, open_shift, now)
        if closed is None:
            await db.rollback()
            return ShiftResult(driver_id=driver_id, action=ShiftAction.CONCURRENT_UPDATE)
        await db.commit()

        summary = await EarningsAggregator.get_summary(db, driver_id, as_of=now)
        logger.info(
            "Driver %s ended shift: %d trips, %.2f earned",
            driver_id, summary.today.trip_count, summary.today.total_amount
        )
        return ShiftResult(
            driver_id=driver_id,
            action=ShiftAction.ENDED,
            shift=ShiftResponse.model_validate(closed),
            final_today_summary=summary.today
        )

    @staticmethod
    async def get_shift_status(db: AsyncSession, driver_id: int) -> ShiftStatusResponse:
        await get_driver(db, driver_id)
        open_shift = await ShiftService._open_shift(db, driver_id)
        shift = open_shift
        if shift is None:
            shift = (await db.execute(
                select(ShiftWindow).where(ShiftWindow.driver_id == driver_id)
                .order_by(ShiftWindow.shift_date.desc()).limit(1)
            )).scalar_one_or_none()
        return ShiftStatusResponse(
            driver_id=driver_id,
            on_shift=open_shift is not None,
            shift=ShiftResponse.model_validate(shift) if shift is not None else None
        )
