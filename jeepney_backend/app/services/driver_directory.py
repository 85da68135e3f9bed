"""
Driver directory service.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from jeepney_backend.app.core.exceptions import ResourceNotFoundError
from jeepney_backend.app.models.driver import Driver


async def get_driver(db: AsyncSession, driver_id: int) -> Driver:
    """
    Fetch an active driver.

    Raises:
        ResourceNotFoundError: If the driver is unknown or deactivated
    """
    driver = await db.get(Driver, driver_id)
    if not driver or not driver.is_active:
        raise ResourceNotFoundError("Driver", driver_id)
    return driver
