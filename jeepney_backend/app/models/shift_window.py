"""
Shift Window database model.
"""

from sqlalchemy import Column, Integer, Float, Date, DateTime, Enum, ForeignKey, UniqueConstraint
from jeepney_backend.app.db.session import Base
from jeepney_backend.app.models.earnings_enums import ShiftStatus


class ShiftWindow(Base):
    """
    A driver's on-duty period for one business day.

    Restarting on the same business day reuses the row. ``version`` guards
    concurrent start/end calls.
    """
    __tablename__ = "shift_windows"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    driver_id = Column(Integer, ForeignKey('drivers.id'), nullable=False, index=True)
    shift_date = Column(Date, nullable=False)

    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=True)

    # Snapshot taken at end_shift
    total_earnings = Column(Float, default=0.0, nullable=False)
    total_trips = Column(Integer, default=0, nullable=False)

    status = Column(Enum(ShiftStatus), default=ShiftStatus.ACTIVE, nullable=False)
    version = Column(Integer, default=1, nullable=False)

    __table_args__ = (
        UniqueConstraint('driver_id', 'shift_date', name='uq_shift_driver_date'),
    )

    def __repr__(self):
        return f"<ShiftWindow(driver={self.driver_id}, date={self.shift_date}, status='{self.status.value}')>"
