"""Member directory operations."""

import logging
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.exceptions import NotFoundError
from ..models.member import Member
from ..schemas.member import TokenClaims

logger = logging.getLogger(__name__)


class MemberService:
    """Service for the member profiles mirrored from the identity provider."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_member(self, member_id: UUID) -> Member | None:
        stmt = select(Member).where(Member.id == member_id).execution_options(populate_existing=True)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_member_or_raise(self, member_id: UUID) -> Member:
        member = await self.get_member(member_id)
        if not member:
            raise NotFoundError(resource_type="member", resource_id=str(member_id))
        return member

    async def sync_member(self, claims: TokenClaims) -> Member:
        """
        Insert or refresh the member row described by token claims.

        Args:
            claims: Verified token claims

        Returns:
            The persisted member
        """
        member = await self.get_member(claims.sub)
        if member is None:
            member = Member(
                id=claims.sub,
                email=claims.email,
                first_name=claims.first_name,
                last_name=claims.last_name,
                role=claims.role,
            )
            self.db.add(member)
            try:
                await self.db.commit()
            except IntegrityError:
                # Another request created the same member first
                await self.db.rollback()
                return await self.get_member_or_raise(claims.sub)

            logger.info(
                "Member registered from token",
                extra={"member_id": str(member.id), "role": claims.role.value}
            )
            return member

        changes = {
            "email": claims.email,
            "first_name": claims.first_name,
            "last_name": claims.last_name,
            "role": claims.role,
        }
        changed = [field for field, value in changes.items() if getattr(member, field) != value]
        if changed:
            for field in changed:
                setattr(member, field, changes[field])
            await self.db.commit()
            logger.info(
                "Member profile updated from token",
                extra={"member_id": str(member.id), "fields": changed}
            )
        return member
