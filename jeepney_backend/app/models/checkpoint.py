"""
Checkpoint database models.

Checkpoints are the QR-coded stops along a route, ordered by
``sequence_order``. Aliases map data-entry variants of a place name
(truncations, missing diacritics) onto the canonical checkpoint name.
"""

from sqlalchemy import Column, Integer, String, Float, Boolean, DateTime, Enum, ForeignKey, UniqueConstraint
from jeepney_backend.app.db.session import Base
from jeepney_backend.app.models.route_enums import RecordStatus
from jeepney_backend.app.core.clock import local_now


class Checkpoint(Base):
    """
    Checkpoint model.

    Sequence positions are unique and strictly increasing within a route.
    """
    __tablename__ = "checkpoints"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    route_id = Column(Integer, ForeignKey('routes.id'), nullable=False, index=True)
    name = Column(String(150), nullable=False)
    sequence_order = Column(Integer, nullable=False)

    is_origin = Column(Boolean, default=False, nullable=False)
    is_destination = Column(Boolean, default=False, nullable=False)

    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)

    status = Column(Enum(RecordStatus), default=RecordStatus.ACTIVE, nullable=False)
    created_at = Column(DateTime, default=local_now, nullable=False)

    __table_args__ = (
        UniqueConstraint('route_id', 'sequence_order', name='uq_checkpoint_route_sequence'),
        UniqueConstraint('route_id', 'name', name='uq_checkpoint_route_name'),
    )

    def __repr__(self):
        return f"<Checkpoint(id={self.id}, route={self.route_id}, seq={self.sequence_order}, name='{self.name}')>"


class CheckpointAlias(Base):
    """
    Checkpoint name alias.

    ``prefix`` is stored normalized (lowercase, no diacritics). Any name whose
    normalized form starts with it resolves to ``canonical_name``.
    """
    __tablename__ = "checkpoint_aliases"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    prefix = Column(String(150), unique=True, nullable=False)
    canonical_name = Column(String(150), nullable=False)

    def __repr__(self):
        return f"<CheckpointAlias(prefix='{self.prefix}', canonical='{self.canonical_name}')>"
