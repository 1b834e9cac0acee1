"""Member identity schemas."""

from uuid import UUID

from pydantic import BaseModel, Field

from ..models.member import MemberRole

# Highest role wins when a token carries several
ROLE_PRECEDENCE = (MemberRole.ADMIN, MemberRole.ORGANIZER, MemberRole.MEMBER)


class TokenClaims(BaseModel):
    """Claims read from a verified member bearer token."""

    sub: UUID = Field(..., description="Member ID")
    email: str = Field(..., min_length=3, max_length=320, description="Member email address")
    first_name: str = Field("", max_length=100, description="Given name")
    last_name: str = Field("", max_length=100, description="Family name")
    roles: list[str] = Field(default_factory=list, description="Club roles granted to the member")

    @property
    def role(self) -> MemberRole:
        granted = {role.lower() for role in self.roles}
        for role in ROLE_PRECEDENCE:
            if role.value in granted:
                return role
        return MemberRole.MEMBER

