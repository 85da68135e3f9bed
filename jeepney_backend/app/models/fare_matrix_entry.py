"""
Fare Matrix Entry database model.

Price for travelling between two checkpoints on a route.
"""

from sqlalchemy import Column, Integer, Float, Boolean, Date, DateTime, Enum, ForeignKey, Index
from jeepney_backend.app.db.session import Base
from jeepney_backend.app.models.route_enums import RecordStatus
from jeepney_backend.app.core.clock import local_now, local_today


class FareMatrixEntry(Base):
    """
    Fare Matrix Entry model.

    At most one active, non-expired entry per (route, from, to) triple.
    Older duplicates are deactivated, not deleted.
    """
    __tablename__ = "fare_matrix_entries"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    route_id = Column(Integer, ForeignKey('routes.id'), nullable=False)
    from_checkpoint_id = Column(Integer, ForeignKey('checkpoints.id', ondelete='CASCADE'), nullable=False)
    to_checkpoint_id = Column(Integer, ForeignKey('checkpoints.id', ondelete='CASCADE'), nullable=False)

    fare_amount = Column(Float, nullable=False)
    is_base_fare = Column(Boolean, default=False, nullable=False)

    # Validity window
    effective_date = Column(Date, default=local_today, nullable=False)
    expiry_date = Column(Date, nullable=True)
    status = Column(Enum(RecordStatus), default=RecordStatus.ACTIVE, nullable=False)

    created_at = Column(DateTime, default=local_now, nullable=False)
    updated_at = Column(DateTime, default=local_now, onupdate=local_now, nullable=False)

    __table_args__ = (
        Index('ix_fare_matrix_triple', 'route_id', 'from_checkpoint_id', 'to_checkpoint_id', 'status'),
    )

    def __repr__(self):
        return (
            f"<FareMatrixEntry(id={self.id}, route={self.route_id}, "
            f"{self.from_checkpoint_id}->{self.to_checkpoint_id}, fare={self.fare_amount})>"
        )
