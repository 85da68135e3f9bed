"""
Route database model.

A Route is one directed traversal of checkpoints. A physical jeepney line
is modelled as two Route rows pointing at each other.
"""

from sqlalchemy import Column, Integer, String, DateTime, Enum, ForeignKey
from jeepney_backend.app.db.session import Base
from jeepney_backend.app.models.route_enums import RecordStatus
from jeepney_backend.app.core.clock import local_now


class Route(Base):
    """
    Route model.

    ``opposite_route_id`` links the reverse direction; fare writes are
    mirrored onto it.
    """
    __tablename__ = "routes"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    name = Column(String(150), nullable=False)
    origin = Column(String(150), nullable=False)
    destination = Column(String(150), nullable=False)

    opposite_route_id = Column(Integer, ForeignKey('routes.id'), nullable=True)

    status = Column(Enum(RecordStatus), default=RecordStatus.ACTIVE, nullable=False)

    created_at = Column(DateTime, default=local_now, nullable=False)

    def __repr__(self):
        return f"<Route(id={self.id}, name='{self.name}', opposite={self.opposite_route_id})>"
