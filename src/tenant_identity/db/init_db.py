"""
tenant_identity.db.init_db

DB initialization helper for dev/test (production uses Alembic migrations).
"""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncEngine

from tenant_identity.db import models  # noqa: F401  # register tables on Base.metadata
from tenant_identity.db.base import Base


async def init_db(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
