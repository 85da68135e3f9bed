"""
Earnings Record database model.

Append-only ledger of driver earnings.
"""

from sqlalchemy import Column, Integer, String, Float, Boolean, Date, DateTime, ForeignKey, Index
from jeepney_backend.app.db.session import Base
from jeepney_backend.app.core.clock import local_now


class EarningsRecord(Base):
    """
    Earnings Record model.

    Immutable record of a driver earning event.
    ``counts_as_trip`` is False for fare-only payments so they add revenue
    without inflating the trip counter.
    NO updates or deletions allowed.
    """
    __tablename__ = "earnings_records"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    driver_id = Column(Integer, ForeignKey('drivers.id'), nullable=False)
    trip_id = Column(String(64), nullable=True, index=True)
    passenger_id = Column(String(100), nullable=True)

    # Financials
    amount = Column(Float, nullable=False, default=0.0)
    original_fare = Column(Float, nullable=False, default=0.0)
    discount_amount = Column(Float, nullable=False, default=0.0)
    final_fare = Column(Float, nullable=False, default=0.0)

    counts_as_trip = Column(Boolean, default=False, nullable=False)
    payment_method = Column(String(30), nullable=False, default="cash")

    pickup_location = Column(String(150), nullable=True)
    destination = Column(String(150), nullable=True)

    # Business day of created_at (05:00 boundary)
    transaction_date = Column(Date, nullable=False)

    # Retried writes carry the same key
    idempotency_key = Column(String(120), unique=True, nullable=True)

    # Timestamps (Immutable - no updated_at)
    created_at = Column(DateTime, default=local_now, nullable=False)

    __table_args__ = (
        Index('ix_earnings_driver_date', 'driver_id', 'transaction_date'),
    )

    def __repr__(self):
        return (
            f"<EarningsRecord(id={self.id}, driver={self.driver_id}, "
            f"final_fare={self.final_fare}, counts_as_trip={self.counts_as_trip})>"
        )
