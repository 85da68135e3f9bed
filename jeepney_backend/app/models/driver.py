"""
Driver database model.

Read-only driver directory consumed by the dispatch core. Account
management lives in an external service.
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey
from jeepney_backend.app.db.session import Base
from jeepney_backend.app.core.clock import local_now


class Driver(Base):
    """
    Driver profile.

    ``assigned_route_id`` is the route a driver currently runs; scans that do
    not name a route are resolved against it.
    """
    __tablename__ = "drivers"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    username = Column(String(100), unique=True, index=True, nullable=False)
    full_name = Column(String(150), nullable=True)
    plate_number = Column(String(20), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    assigned_route_id = Column(Integer, ForeignKey('routes.id'), nullable=True)

    created_at = Column(DateTime, default=local_now, nullable=False)

    def __repr__(self):
        return f"<Driver(id={self.id}, username='{self.username}', route={self.assigned_route_id})>"
