"""
Fare Matrix Engine.

Prices any checkpoint pair on a route.
Resolution priority:
1. Active entry for (route, from, to)
2. Active entry for (route, to, from), the matrix is symmetric
3. Tiered distance formula over the sequence gap

Writes are mirrored onto the opposite-direction route in the same
transaction.
"""

import logging
from datetime import date
from typing import List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, delete, func, or_, case
from sqlalchemy.orm import aliased

from jeepney_backend.app.core.clock import local_now, local_today
from jeepney_backend.app.core.exceptions import (
    ResourceNotFoundError, UnresolvableFareError, FareValidationError
)
from jeepney_backend.app.models.checkpoint import Checkpoint
from jeepney_backend.app.models.fare_matrix_entry import FareMatrixEntry
from jeepney_backend.app.models.route import Route
from jeepney_backend.app.models.route_enums import RecordStatus, FareMethod, MirrorStatus
from jeepney_backend.app.schemas.fare import (
    CheckpointRef, FareQuote, FareEntryResponse, FareUpsertResult,
    MatrixGenerateResult, FareMatrixRow, FareMatrixStats, RouteFareStats
)
from jeepney_backend.app.services import checkpoint_directory as directory
from jeepney_backend.app.services import fare_cache
from jeepney_backend.app.services.audit import log_event, get_entity_history, AuditAction, AuditEntity
from jeepney_backend.app.services.checkpoint_names import NameResolver
from jeepney_backend.app.domain.fares.tiered_fare import FareSchedule, calculate_tiered_fare, to_money

logger = logging.getLogger(__name__)


def _active_clause(today: date):
    return (
        FareMatrixEntry.status == RecordStatus.ACTIVE,
        FareMatrixEntry.effective_date <= today,
        or_(FareMatrixEntry.expiry_date.is_(None), FareMatrixEntry.expiry_date >= today),
    )


class FareMatrixEngine:

    @staticmethod
    async def _find_active_entry(
        db: AsyncSession, route_id: int, from_id: int, to_id: int, today: Optional[date] = None
    ) -> Optional[FareMatrixEntry]:
        today = today or local_today()
        result = await db.execute(
            select(FareMatrixEntry).where(
                FareMatrixEntry.route_id == route_id,
                FareMatrixEntry.from_checkpoint_id == from_id,
                FareMatrixEntry.to_checkpoint_id == to_id,
                *_active_clause(today)
            ).order_by(FareMatrixEntry.updated_at.desc(), FareMatrixEntry.id.desc()).limit(1)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def _latest_active_entry(db: AsyncSession, route_id: int, from_id: int, to_id: int) -> Optional[FareMatrixEntry]:
        # Writes target the live row regardless of its validity window
        result = await db.execute(
            select(FareMatrixEntry).where(
                FareMatrixEntry.route_id == route_id,
                FareMatrixEntry.from_checkpoint_id == from_id,
                FareMatrixEntry.to_checkpoint_id == to_id,
                FareMatrixEntry.status == RecordStatus.ACTIVE
            ).order_by(FareMatrixEntry.updated_at.desc(), FareMatrixEntry.id.desc()).limit(1)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def _checkpoint_on_route(
        db: AsyncSession,
        route: Route,
        ref: CheckpointRef,
        checkpoints: List[Checkpoint],
        resolver: NameResolver
    ) -> Checkpoint:
        if isinstance(ref, int):
            checkpoint = await directory.get_checkpoint(db, ref)
            if checkpoint.route_id != route.id:
                raise UnresolvableFareError(
                    f"Checkpoint {checkpoint.name} is not on route {route.id}",
                    details={"route_id": route.id, "checkpoint_id": checkpoint.id}
                )
            return checkpoint

        checkpoint = resolver.match(checkpoints, ref)
        if checkpoint is not None:
            return checkpoint
        if await directory.find_checkpoints_by_name(db, ref, resolver):
            raise UnresolvableFareError(
                f"Checkpoint '{ref}' is not on route {route.id}",
                details={"route_id": route.id, "checkpoint": ref}
            )
        raise ResourceNotFoundError("Checkpoint", ref)

    @staticmethod
    async def _infer_route(
        db: AsyncSession, from_ref: CheckpointRef, to_ref: CheckpointRef, resolver: NameResolver
    ) -> Route:
        if isinstance(from_ref, int):
            checkpoint = await directory.get_checkpoint(db, from_ref)
            return await directory.get_route(db, checkpoint.route_id)

        candidates = await directory.find_checkpoints_by_name(db, from_ref, resolver)
        if not candidates:
            raise ResourceNotFoundError("Checkpoint", from_ref)

        fallback = None
        for origin in candidates:
            checkpoints = await directory.list_checkpoints(db, origin.route_id)
            target = (
                next((cp for cp in checkpoints if cp.id == to_ref), None)
                if isinstance(to_ref, int) else resolver.match(checkpoints, to_ref)
            )
            if target is None:
                continue
            # Prefer the direction that travels forward from origin to target
            if target.sequence_order >= origin.sequence_order:
                return await directory.get_route(db, origin.route_id)
            fallback = fallback or origin.route_id

        if fallback is None:
            raise UnresolvableFareError(
                "No single route carries both checkpoints",
                details={"from": from_ref, "to": to_ref}
            )
        return await directory.get_route(db, fallback)

    @staticmethod
    async def resolve_pair(
        db: AsyncSession,
        route_id: Optional[int],
        from_checkpoint: CheckpointRef,
        to_checkpoint: CheckpointRef,
        resolver: Optional[NameResolver] = None
    ) -> Tuple[Route, Checkpoint, Checkpoint]:
        """Resolve a route and two checkpoint references (IDs or names) on it."""
        resolver = resolver or await directory.load_name_resolver(db)
        if route_id is None:
            route = await FareMatrixEngine._infer_route(db, from_checkpoint, to_checkpoint, resolver)
        else:
            route = await directory.get_route(db, route_id)

        checkpoints = await directory.list_checkpoints(db, route.id)
        if not checkpoints:
            raise UnresolvableFareError(f"Route {route.id} has no checkpoints", details={"route_id": route.id})

        origin = await FareMatrixEngine._checkpoint_on_route(db, route, from_checkpoint, checkpoints, resolver)
        target = await FareMatrixEngine._checkpoint_on_route(db, route, to_checkpoint, checkpoints, resolver)
        return route, origin, target

    @staticmethod
    async def resolve_fare(
        db: AsyncSession,
        route_id: Optional[int],
        from_checkpoint: CheckpointRef,
        to_checkpoint: CheckpointRef,
        redis=None,
        today: Optional[date] = None
    ) -> FareQuote:
        """
        Price a trip between two checkpoints.

        Raises:
            ResourceNotFoundError: Unknown route or checkpoint
            UnresolvableFareError: Checkpoints not on the same route
        """
        route, origin, target = await FareMatrixEngine.resolve_pair(db, route_id, from_checkpoint, to_checkpoint)

        cached = await fare_cache.get_cached_quote(redis, route.id, origin.id, target.id)
        if cached is not None:
            return FareQuote(**cached)

        segments = abs(target.sequence_order - origin.sequence_order)

        method = FareMethod.EXACT_ENTRY
        entry = await FareMatrixEngine._find_active_entry(db, route.id, origin.id, target.id, today)
        if entry is None:
            method = FareMethod.REVERSE_ENTRY
            entry = await FareMatrixEngine._find_active_entry(db, route.id, target.id, origin.id, today)

        if entry is not None:
            amount = float(to_money(entry.fare_amount))
            is_base_fare = bool(entry.is_base_fare)
        else:
            method = FareMethod.TIERED_DISTANCE
            amount = calculate_tiered_fare(segments, FareSchedule.from_settings())
            is_base_fare = origin.id == target.id

        quote = FareQuote(
            route_id=route.id,
            from_checkpoint_id=origin.id,
            to_checkpoint_id=target.id,
            from_checkpoint=origin.name,
            to_checkpoint=target.name,
            segments=segments,
            amount=amount,
            is_base_fare=is_base_fare,
            method=method,
            entry_id=entry.id if entry is not None else None,
        )
        await fare_cache.cache_quote(redis, route.id, origin.id, target.id, quote.model_dump(mode="json"))
        return quote

    @staticmethod
    async def _write_entry(
        db: AsyncSession, route_id: int, origin: Checkpoint, target: Checkpoint, amount: float
    ) -> Tuple[str, FareMatrixEntry, Optional[float]]:
        existing = await FareMatrixEngine._latest_active_entry(db, route_id, origin.id, target.id)
        if existing is not None:
            previous = existing.fare_amount
            if to_money(previous) == to_money(amount):
                return "unchanged", existing, previous
            existing.fare_amount = amount
            existing.is_base_fare = origin.id == target.id
            existing.updated_at = local_now()
            await db.flush()
            return "updated", existing, previous

        entry = FareMatrixEntry(
            route_id=route_id,
            from_checkpoint_id=origin.id,
            to_checkpoint_id=target.id,
            fare_amount=amount,
            is_base_fare=origin.id == target.id,
            effective_date=local_today(),
            status=RecordStatus.ACTIVE,
        )
        db.add(entry)
        await db.flush()
        return "created", entry, None

    @staticmethod
    async def _audit_write(db, status, entry, previous, actor_id, actor_username, **extra):
        if status == "unchanged":
            return
        await log_event(
            db,
            action=AuditAction.FARE_ENTRY_CREATED if status == "created" else AuditAction.FARE_ENTRY_UPDATED,
            entity_type=AuditEntity.FARE_ENTRY,
            entity_id=entry.id,
            actor_id=actor_id,
            actor_username=actor_username,
            metadata={
                "route_id": entry.route_id,
                "from_checkpoint_id": entry.from_checkpoint_id,
                "to_checkpoint_id": entry.to_checkpoint_id,
                "old_amount": previous,
                "new_amount": entry.fare_amount,
                **extra,
            }
        )

    @staticmethod
    async def upsert_fare_entry(
        db: AsyncSession,
        route_id: int,
        from_checkpoint_id: int,
        to_checkpoint_id: int,
        fare_amount: float,
        actor_id: Optional[int] = None,
        actor_username: Optional[str] = None,
        redis=None
    ) -> FareUpsertResult:
        """
        Create or update one fare entry and its opposite-direction mirror.

        Flow:
        1. Validate amount against the base fare
        2. Write primary entry (no-op when the amount is unchanged)
        3. Locate the mirrored checkpoints by name on the opposite route
        4. Write the mirror, or report why it was skipped
        5. Audit and commit as one unit
        """
        schedule = FareSchedule.from_settings()
        amount = float(to_money(fare_amount))
        if to_money(amount) < schedule.base:
            raise FareValidationError(
                f"Fare {amount:.2f} is below the base fare {schedule.base}",
                details={"fare_amount": amount, "base_fare": float(schedule.base)}
            )

        route = await directory.get_route(db, route_id)
        origin = await directory.get_checkpoint(db, from_checkpoint_id)
        target = await directory.get_checkpoint(db, to_checkpoint_id)
        for checkpoint in (origin, target):
            if checkpoint.route_id != route.id:
                raise UnresolvableFareError(
                    f"Checkpoint {checkpoint.name} is not on route {route.id}",
                    details={"route_id": route.id, "checkpoint_id": checkpoint.id}
                )

        status, entry, previous = await FareMatrixEngine._write_entry(db, route.id, origin, target, amount)

        mirror_entry = None
        if route.opposite_route_id is None:
            mirror_status = MirrorStatus.NO_OPPOSITE_ROUTE
        else:
            resolver = await directory.load_name_resolver(db)
            opposite = await directory.list_checkpoints(db, route.opposite_route_id)
            # Reverse direction: opposite (to -> from)
            mirror_from = resolver.match(opposite, target.name)
            mirror_to = resolver.match(opposite, origin.name)
            if mirror_from is None or mirror_to is None:
                mirror_status = MirrorStatus.MIRROR_SKIPPED
                logger.warning(
                    "Fare mirror skipped: route %s has no match for %s -> %s",
                    route.opposite_route_id, target.name, origin.name
                )
            else:
                mirror_write, mirror_entry, mirror_previous = await FareMatrixEngine._write_entry(
                    db, route.opposite_route_id, mirror_from, mirror_to, amount
                )
                mirror_status = (
                    MirrorStatus.MIRROR_UNCHANGED if mirror_write == "unchanged" else MirrorStatus.MIRRORED
                )
                await FareMatrixEngine._audit_write(
                    db, mirror_write, mirror_entry, mirror_previous, actor_id, actor_username,
                    mirrored_from_entry_id=entry.id
                )

        await FareMatrixEngine._audit_write(
            db, status, entry, previous, actor_id, actor_username, mirror_status=mirror_status.value
        )

        if status != "unchanged" or mirror_status == MirrorStatus.MIRRORED:
            await db.commit()
            await fare_cache.invalidate_route(redis, route.id, route.opposite_route_id)
            await db.refresh(entry)
            if mirror_entry is not None:
                await db.refresh(mirror_entry)

        logger.info(
            "Fare entry %s on route %s (%s -> %s): %s, %s",
            entry.id, route.id, origin.name, target.name, status, mirror_status.value
        )

        return FareUpsertResult(
            status=status,
            entry=FareEntryResponse.model_validate(entry),
            previous_amount=previous,
            mirror_status=mirror_status,
            mirror_entry=FareEntryResponse.model_validate(mirror_entry) if mirror_entry is not None else None,
        )

    @staticmethod
    async def generate_matrix_for_route(
        db: AsyncSession,
        route_id: int,
        base_fare: Optional[float] = None,
        actor_id: Optional[int] = None,
        actor_username: Optional[str] = None,
        redis=None
    ) -> MatrixGenerateResult:
        """
        Rebuild a route's matrix from the tiered formula.

        Existing active entries are removed, then every ordered checkpoint
        pair (including same-checkpoint base fares) is inserted.
        """
        if base_fare is not None and base_fare <= 0:
            raise FareValidationError("Base fare must be positive", details={"base_fare": base_fare})

        route = await directory.get_route(db, route_id)
        checkpoints = await directory.list_checkpoints(db, route.id)
        if not checkpoints:
            raise UnresolvableFareError(f"Route {route.id} has no checkpoints", details={"route_id": route.id})

        schedule = FareSchedule.from_settings().with_base(base_fare)

        deleted = await db.execute(
            delete(FareMatrixEntry).where(
                FareMatrixEntry.route_id == route.id,
                FareMatrixEntry.status == RecordStatus.ACTIVE
            )
        )

        today = local_today()
        entries = [
            FareMatrixEntry(
                route_id=route.id,
                from_checkpoint_id=origin.id,
                to_checkpoint_id=target.id,
                fare_amount=calculate_tiered_fare(target.sequence_order - origin.sequence_order, schedule),
                is_base_fare=origin.id == target.id,
                effective_date=today,
                status=RecordStatus.ACTIVE,
            )
            for origin in checkpoints
            for target in checkpoints
        ]
        db.add_all(entries)

        await log_event(
            db,
            action=AuditAction.FARE_MATRIX_GENERATED,
            entity_type=AuditEntity.ROUTE,
            entity_id=route.id,
            actor_id=actor_id,
            actor_username=actor_username,
            metadata={"entries": len(entries), "deleted": deleted.rowcount, "base_fare": float(schedule.base)}
        )
        await db.commit()
        await fare_cache.invalidate_route(redis, route.id)

        logger.info("Generated %d fare entries for route %s", len(entries), route.id)

        return MatrixGenerateResult(
            route_id=route.id,
            checkpoint_count=len(checkpoints),
            entries_created=len(entries),
            entries_deleted=deleted.rowcount or 0,
            base_fare=float(schedule.base),
        )

    @staticmethod
    async def get_route_matrix(db: AsyncSession, route_id: int) -> List[FareMatrixRow]:
        """Active entries of a route with checkpoint names, ordered by from/to sequence."""
        await directory.get_route(db, route_id)
        origin = aliased(Checkpoint)
        target = aliased(Checkpoint)
        result = await db.execute(
            select(FareMatrixEntry, origin, target)
            .join(origin, FareMatrixEntry.from_checkpoint_id == origin.id)
            .join(target, FareMatrixEntry.to_checkpoint_id == target.id)
            .where(FareMatrixEntry.route_id == route_id, *_active_clause(local_today()))
            .order_by(origin.sequence_order, target.sequence_order)
        )
        return [
            FareMatrixRow(
                entry_id=entry.id,
                from_checkpoint_id=src.id,
                from_checkpoint=src.name,
                from_sequence=src.sequence_order,
                to_checkpoint_id=dst.id,
                to_checkpoint=dst.name,
                to_sequence=dst.sequence_order,
                fare_amount=entry.fare_amount,
                is_base_fare=entry.is_base_fare,
            )
            for entry, src, dst in result.all()
        ]

    @staticmethod
    async def list_entries(
        db: AsyncSession,
        route_id: Optional[int] = None,
        status: Optional[RecordStatus] = None,
        limit: int = 500
    ) -> List[FareMatrixEntry]:
        query = select(FareMatrixEntry)
        if route_id is not None:
            query = query.where(FareMatrixEntry.route_id == route_id)
        if status is not None:
            query = query.where(FareMatrixEntry.status == status)
        query = query.order_by(
            FareMatrixEntry.route_id, FareMatrixEntry.from_checkpoint_id, FareMatrixEntry.to_checkpoint_id
        ).limit(limit)
        result = await db.execute(query)
        return list(result.scalars().all())

    @staticmethod
    async def delete_entry(
        db: AsyncSession,
        entry_id: int,
        actor_id: Optional[int] = None,
        actor_username: Optional[str] = None,
        redis=None
    ) -> FareMatrixEntry:
        """Retire an entry. The row is kept inactive so its history stays readable."""
        entry = await db.get(FareMatrixEntry, entry_id)
        if not entry:
            raise ResourceNotFoundError("Fare entry", entry_id)

        entry.status = RecordStatus.INACTIVE
        entry.expiry_date = local_today()
        await log_event(
            db,
            action=AuditAction.FARE_ENTRY_DELETED,
            entity_type=AuditEntity.FARE_ENTRY,
            entity_id=entry.id,
            actor_id=actor_id,
            actor_username=actor_username,
            metadata={"route_id": entry.route_id, "old_amount": entry.fare_amount}
        )
        await db.commit()
        await db.refresh(entry)
        await fare_cache.invalidate_route(redis, entry.route_id)
        return entry

    @staticmethod
    async def cleanup_duplicates(db: AsyncSession, redis=None) -> int:
        """Keep the newest active entry per triple and deactivate the rest."""
        result = await db.execute(
            select(FareMatrixEntry).where(FareMatrixEntry.status == RecordStatus.ACTIVE).order_by(
                FareMatrixEntry.route_id,
                FareMatrixEntry.from_checkpoint_id,
                FareMatrixEntry.to_checkpoint_id,
                FareMatrixEntry.updated_at.desc(),
                FareMatrixEntry.id.desc()
            )
        )
        seen = set()
        stale_ids = []
        touched_routes = set()
        for entry in result.scalars().all():
            key = (entry.route_id, entry.from_checkpoint_id, entry.to_checkpoint_id)
            if key in seen:
                stale_ids.append(entry.id)
                touched_routes.add(entry.route_id)
            else:
                seen.add(key)

        if not stale_ids:
            return 0

        await db.execute(
            update(FareMatrixEntry).where(FareMatrixEntry.id.in_(stale_ids)).values(
                status=RecordStatus.INACTIVE, updated_at=local_now()
            )
        )
        await log_event(
            db,
            action=AuditAction.FARE_DUPLICATES_CLEANED,
            metadata={"deactivated_entry_ids": stale_ids}
        )
        await db.commit()
        await fare_cache.invalidate_route(redis, *sorted(touched_routes))
        logger.info("Deactivated %d duplicate fare entries", len(stale_ids))
        return len(stale_ids)

    @staticmethod
    async def get_stats(db: AsyncSession) -> FareMatrixStats:
        active = FareMatrixEntry.status == RecordStatus.ACTIVE
        totals = (await db.execute(
            select(
                func.count(FareMatrixEntry.id),
                func.coalesce(func.sum(case((FareMatrixEntry.is_base_fare == True, 1), else_=0)), 0)
            ).where(active)
        )).one()

        per_route = await db.execute(
            select(
                FareMatrixEntry.route_id,
                func.count(FareMatrixEntry.id),
                func.min(FareMatrixEntry.fare_amount),
                func.max(FareMatrixEntry.fare_amount),
                func.avg(FareMatrixEntry.fare_amount)
            ).where(active).group_by(FareMatrixEntry.route_id).order_by(FareMatrixEntry.route_id)
        )

        return FareMatrixStats(
            total_entries=totals[0] or 0,
            base_fare_entries=int(totals[1] or 0),
            routes=[
                RouteFareStats(
                    route_id=row[0],
                    entries=row[1],
                    min_fare=round(row[2], 2),
                    max_fare=round(row[3], 2),
                    avg_fare=round(float(row[4]), 2),
                )
                for row in per_route.all()
            ]
        )

    @staticmethod
    async def get_entry_history(db: AsyncSession, entry_id: int):
        entry = await db.get(FareMatrixEntry, entry_id)
        if not entry:
            raise ResourceNotFoundError("Fare entry", entry_id)
        return await get_entity_history(db, AuditEntity.FARE_ENTRY, entry_id)
