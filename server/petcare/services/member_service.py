"""Member directory lookups."""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.exceptions import NotFoundError
from ..models.member import Member

logger = logging.getLogger(__name__)


class MemberDirectory:
    """Read access to registered members, plus registration for seeding and admin tooling."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, member_id: str) -> Member | None:
        return await self.db.get(Member, member_id)

    async def exists(self, member_id: str) -> bool:
        result = await self.db.execute(
            select(Member.member_id).where(Member.member_id == member_id, Member.active.is_(True))
        )
        return result.scalar_one_or_none() is not None

    async def require(self, member_id: str) -> Member:
        """
        Return an active member.

        Raises:
            NotFoundError: If the member is unknown or deactivated
        """
        member = await self.get(member_id)
        if member is None or not member.active:
            raise NotFoundError(resource_type="member", resource_id=member_id)
        return member

    async def register(self, member_id: str, display_name: str | None = None) -> Member:
        """Create a member if missing; existing members are returned unchanged."""
        member = await self.get(member_id)
        if member is not None:
            return member

        member = Member(member_id=member_id, display_name=display_name or member_id, active=True)
        self.db.add(member)
        await self.db.commit()
        logger.info("Member registered", extra={"member_id": member_id})
        return member
