"""
Checkpoint directory service.

Read-only access to routes and their ordered checkpoints.
"""

from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from jeepney_backend.app.core.exceptions import ResourceNotFoundError
from jeepney_backend.app.models.route import Route
from jeepney_backend.app.models.checkpoint import Checkpoint, CheckpointAlias
from jeepney_backend.app.models.route_enums import RecordStatus
from jeepney_backend.app.services.checkpoint_names import NameResolver


async def get_route(db: AsyncSession, route_id: int) -> Route:
    """
    Fetch a route by ID.

    Raises:
        ResourceNotFoundError: If the route does not exist
    """
    route = await db.get(Route, route_id)
    if not route:
        raise ResourceNotFoundError("Route", route_id)
    return route


async def get_checkpoint(db: AsyncSession, checkpoint_id: int) -> Checkpoint:
    """
    Fetch a checkpoint by ID.

    Raises:
        ResourceNotFoundError: If the checkpoint does not exist
    """
    checkpoint = await db.get(Checkpoint, checkpoint_id)
    if not checkpoint:
        raise ResourceNotFoundError("Checkpoint", checkpoint_id)
    return checkpoint


async def list_checkpoints(db: AsyncSession, route_id: int) -> List[Checkpoint]:
    """Active checkpoints of a route ordered by sequence position."""
    result = await db.execute(
        select(Checkpoint).where(
            Checkpoint.route_id == route_id,
            Checkpoint.status == RecordStatus.ACTIVE
        ).order_by(Checkpoint.sequence_order)
    )
    return list(result.scalars().all())


async def load_name_resolver(db: AsyncSession) -> NameResolver:
    result = await db.execute(select(CheckpointAlias.prefix, CheckpointAlias.canonical_name))
    return NameResolver(result.all())


async def find_checkpoints_by_name(
    db: AsyncSession,
    name: str,
    resolver: Optional[NameResolver] = None
) -> List[Checkpoint]:
    """Every active checkpoint, on any route, that ``name`` resolves to."""
    if resolver is None:
        resolver = await load_name_resolver(db)
    result = await db.execute(
        select(Checkpoint).where(Checkpoint.status == RecordStatus.ACTIVE).order_by(
            Checkpoint.route_id, Checkpoint.sequence_order
        )
    )
    by_route = {}
    for checkpoint in result.scalars().all():
        by_route.setdefault(checkpoint.route_id, []).append(checkpoint)

    matches = []
    for checkpoints in by_route.values():
        match = resolver.match(checkpoints, name)
        if match is not None:
            matches.append(match)
    return matches
