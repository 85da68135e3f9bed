"""
Checkpoint Scan database model.

Every QR scan by a driver is stored as a new fact. A driver's current
position is the most recent scan, computed on read.
"""

from sqlalchemy import Column, Integer, String, Float, DateTime, ForeignKey, Index, UniqueConstraint
from jeepney_backend.app.db.session import Base
from jeepney_backend.app.core.clock import local_now


class CheckpointScan(Base):
    """
    Checkpoint Scan model.

    Append-only. The (driver, checkpoint, scanned_at) key makes replays of
    the same scan event detectable.
    """
    __tablename__ = "checkpoint_scans"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    driver_id = Column(Integer, ForeignKey('drivers.id'), nullable=False)
    route_id = Column(Integer, ForeignKey('routes.id'), nullable=False)
    checkpoint_id = Column(Integer, ForeignKey('checkpoints.id'), nullable=False)

    # Denormalized for diagnostics
    checkpoint_name = Column(String(150), nullable=False)
    sequence_order = Column(Integer, nullable=False)

    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)

    scanned_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=local_now, nullable=False)

    __table_args__ = (
        UniqueConstraint('driver_id', 'checkpoint_id', 'scanned_at', name='uq_scan_event'),
        Index('ix_scans_checkpoint_time', 'checkpoint_id', 'scanned_at'),
        Index('ix_scans_driver_time', 'driver_id', 'scanned_at'),
    )

    def __repr__(self):
        return f"<CheckpointScan(driver={self.driver_id}, checkpoint={self.checkpoint_id}, at={self.scanned_at})>"
