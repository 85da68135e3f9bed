"""
Database seeding script for the SM Epza <-> SM Dasmariñas line.

Creates both route directions with their 17 checkpoints, checkpoint name
aliases and demo drivers, then generates the fare matrices.
Run this script after database is set up but before first use.
"""

import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import select

from jeepney_backend.app.db.session import AsyncSessionLocal, engine, Base
from jeepney_backend.app.models.route import Route
from jeepney_backend.app.models.checkpoint import Checkpoint, CheckpointAlias
from jeepney_backend.app.models.driver import Driver
from jeepney_backend.app.domain.fares.fare_engine import FareMatrixEngine
from jeepney_backend.app.services.checkpoint_names import normalize_name

# Route 1 order (origin first); route 2 is the reverse
LINE_CHECKPOINTS = [
    "SM Epza",
    "Robinson Tejero",
    "Malabon",
    "Riverside",
    "Lancaster New City",
    "Pasong Camachile I",
    "Open Canal",
    "Santiago",
    "Bella Vista",
    "San Francisco",
    "Country Meadow",
    "Pabahay",
    "Monterey",
    "Langkaan",
    "Tierra Vista",
    "Robinson Dasmariñas",
    "SM Dasmariñas",
]

# Data-entry variants seen from the passenger app
ALIASES = [
    ("SM Das", "SM Dasmariñas"),
    ("SM Dasma", "SM Dasmariñas"),
    ("Robinson Das", "Robinson Dasmariñas"),
    ("Robinsons Das", "Robinson Dasmariñas"),
    ("Lancaster", "Lancaster New City"),
]

DRIVERS = [
    ("driver_juan", "Juan Dela Cruz", "NBC 1234"),
    ("driver_maria", "Maria Santos", "TXY 5678"),
    ("driver_pedro", "Pedro Reyes", "ABJ 9012"),
]


def build_checkpoints(route_id: int, names: list) -> list:
    last = len(names)
    return [
        Checkpoint(
            route_id=route_id,
            name=name,
            sequence_order=position,
            is_origin=position == 1,
            is_destination=position == last,
        )
        for position, name in enumerate(names, start=1)
    ]


async def seed_routes():
    """
    Seed the demo line.

    Creates:
    - Route 1 SM Epza -> SM Dasmariñas and Route 2 in reverse
    - 17 checkpoints per route
    - Name aliases
    - 3 drivers assigned to route 1
    - Tiered fare matrices for both routes
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as db:
        print("🌱 Starting route seeding...")

        existing = (await db.execute(select(Route).limit(1))).scalar_one_or_none()
        if existing:
            print("ℹ️  Routes already exist, skipping seeding")
            return

        outbound = Route(name="SM Epza - SM Dasmariñas", origin="SM Epza", destination="SM Dasmariñas")
        inbound = Route(name="SM Dasmariñas - SM Epza", origin="SM Dasmariñas", destination="SM Epza")
        db.add_all([outbound, inbound])
        await db.flush()
        outbound.opposite_route_id = inbound.id
        inbound.opposite_route_id = outbound.id

        db.add_all(build_checkpoints(outbound.id, LINE_CHECKPOINTS))
        db.add_all(build_checkpoints(inbound.id, list(reversed(LINE_CHECKPOINTS))))
        print(f"✅ Created routes {outbound.id} and {inbound.id} with {len(LINE_CHECKPOINTS)} checkpoints each")

        db.add_all([
            CheckpointAlias(prefix=normalize_name(prefix), canonical_name=canonical)
            for prefix, canonical in ALIASES
        ])
        print(f"✅ Created {len(ALIASES)} checkpoint aliases")

        db.add_all([
            Driver(username=username, full_name=full_name, plate_number=plate, assigned_route_id=outbound.id)
            for username, full_name, plate in DRIVERS
        ])
        await db.commit()
        print(f"✅ Created {len(DRIVERS)} drivers")

        for route in (outbound, inbound):
            result = await FareMatrixEngine.generate_matrix_for_route(db, route.id, actor_username="seed")
            print(f"✅ Generated {result.entries_created} fare entries for route {route.id}")

        print("\n🎉 Route seeding completed successfully!")


if __name__ == "__main__":
    asyncio.run(seed_routes())
