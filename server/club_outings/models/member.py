"""Member model definition."""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import CheckConstraint, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from ..core.clock import utc_now
from ..core.database import Base


class MemberRole(str, Enum):
    """Club role carried by a member's token."""
    ADMIN = "admin"
    ORGANIZER = "organizer"
    MEMBER = "member"


STAFF_ROLES = (MemberRole.ADMIN, MemberRole.ORGANIZER)


class Member(Base):
    """Directory entry for a club member, keyed by the auth subject."""

    __tablename__ = "members"

    # Same id as the bearer token subject
    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True)

    email: Mapped[str] = mapped_column(String(320), nullable=False, index=True)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    last_name: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    role: Mapped[MemberRole] = mapped_column(
        String(20),
        nullable=False,
        default=MemberRole.MEMBER
    )

    created_at: Mapped[datetime] = mapped_column(nullable=False, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(nullable=False, default=utc_now, onupdate=utc_now)

    __table_args__ = (
        CheckConstraint("length(email) > 0", name="ck_member_email_not_empty"),
        CheckConstraint("role in ('admin', 'organizer', 'member')", name="ck_member_role_valid"),
    )

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip() or self.email

    def __repr__(self) -> str:
        return f"<Member(id={self.id}, email='{self.email}', role={self.role})>"
