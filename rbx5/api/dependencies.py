"""
FastAPI Dependencies - Shared services for the /api/* routes.

NO DICTIONARIES - All dependencies return typed objects.
"""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from rbx5.db.session import get_db
from rbx5.services.catalog import CatalogService
from rbx5.services.roblox_gateway import RobloxGateway

# One gateway (and its connection pool) per process
_roblox_gateway: RobloxGateway | None = None


def get_roblox_gateway() -> RobloxGateway:
    """
    FastAPI dependency returning the process-wide Roblox gateway.

    Usage:
        @router.get("/endpoint")
        async def endpoint(gateway: RobloxGateway = Depends(get_roblox_gateway)):
            ...
    """
    global _roblox_gateway
    if _roblox_gateway is None:
        _roblox_gateway = RobloxGateway()
    return _roblox_gateway


async def close_roblox_gateway() -> None:
    """Close the gateway's HTTP client (for graceful shutdown)."""
    global _roblox_gateway
    if _roblox_gateway is not None:
        await _roblox_gateway.close()
        _roblox_gateway = None


def get_catalog_service(db: AsyncSession = Depends(get_db)) -> CatalogService:
    """FastAPI dependency for a request-scoped CatalogService."""
    return CatalogService(db)
