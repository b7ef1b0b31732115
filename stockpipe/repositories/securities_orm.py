"""Security repository using SQLAlchemy ORM.

Securities are written by the upsert merger; this module only reads them.

Usage:
    from stockpipe.repositories import securities_orm

    security = await securities_orm.get_security("2330")
    active = await securities_orm.list_securities()
"""

from __future__ import annotations

from collections.abc import Sequence

from sqlalchemy import select

from stockpipe.core.logging import get_logger
from stockpipe.database.connection import get_session
from stockpipe.database.orm import Security


logger = get_logger("repositories.securities_orm")


async def get_security(code: str) -> Security | None:
    """Get a security by code."""
    async with get_session() as session:
        return await session.scalar(select(Security).where(Security.code == code.upper()))


async def list_securities(
    include_suspended: bool = False,
    market_id: int | None = None,
    codes: Sequence[str] | None = None,
) -> Sequence[Security]:
    """List securities ordered by code.

    Args:
        include_suspended: Also return suspended securities
        market_id: Restrict to one market
        codes: Restrict to these codes
    """
    async with get_session() as session:
        stmt = select(Security).order_by(Security.code)
        if not include_suspended:
            stmt = stmt.where(Security.suspended.is_(False))
        if market_id is not None:
            stmt = stmt.where(Security.market_id == market_id)
        if codes is not None:
            stmt = stmt.where(Security.code.in_([c.upper() for c in codes]))
        result = await session.execute(stmt)
        return result.scalars().all()


async def list_security_codes(include_suspended: bool = False) -> list[str]:
    async with get_session() as session:
        stmt = select(Security.code).order_by(Security.code)
        if not include_suspended:
            stmt = stmt.where(Security.suspended.is_(False))
        result = await session.execute(stmt)
        return list(result.scalars().all())
