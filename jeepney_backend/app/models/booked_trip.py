"""
Booked Trip database model.

A passenger's reservation on a driver's jeepney. Mutated only by the trip
lifecycle service.
"""

from sqlalchemy import Column, Integer, String, Float, DateTime, Enum, ForeignKey, Index
from jeepney_backend.app.db.session import Base
from jeepney_backend.app.models.trip_enums import TripStatus, CompletionMethod
from jeepney_backend.app.core.clock import local_now


class BookedTrip(Base):
    """
    Booked Trip model.

    Status only moves forward: booked -> in_progress -> completed, or to
    cancelled from either open state. ``version`` is bumped on each change.
    """
    __tablename__ = "booked_trips"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    trip_id = Column(String(64), unique=True, index=True, nullable=False)

    passenger_id = Column(String(100), nullable=False, index=True)
    driver_id = Column(Integer, ForeignKey('drivers.id'), nullable=False)
    route_id = Column(Integer, ForeignKey('routes.id'), nullable=False)

    # Names as entered by the passenger app
    pickup_location = Column(String(150), nullable=False)
    destination = Column(String(150), nullable=False)
    # Resolved at booking time, null when the name matched nothing
    destination_checkpoint_id = Column(Integer, ForeignKey('checkpoints.id'), nullable=True)

    fare = Column(Float, nullable=False)

    status = Column(Enum(TripStatus), default=TripStatus.BOOKED, nullable=False)
    completion_method = Column(Enum(CompletionMethod), nullable=True)

    booked_at = Column(DateTime, default=local_now, nullable=False)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)

    version = Column(Integer, default=1, nullable=False)

    __table_args__ = (
        Index('ix_booked_trips_driver_status', 'driver_id', 'status', 'booked_at'),
    )

    def __repr__(self):
        return f"<BookedTrip(trip_id='{self.trip_id}', driver={self.driver_id}, status='{self.status.value}')>"
