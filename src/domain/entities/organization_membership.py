"""
OrganizationMembership Entity

Links an identity-provider user to an Organization.
"""

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlmodel import Column, DateTime, Field, Index, Relationship, SQLModel

from src.domain.base import utcnow

from .enums import MembershipStatus

if TYPE_CHECKING:
    from .organization import Organization


class OrganizationMembership(SQLModel, table=True):
    """
    OrganizationMembership entity - links a user to an organization.

    Business Rules:
    - One user can be member of multiple organizations
    - (user_id, organization_id) must be unique
    - Only active memberships grant tenant access
    """

    __tablename__ = "organization_memberships"

    id: UUID = Field(default_factory=uuid4, primary_key=True)

    user_id: str = Field(nullable=False, index=True, max_length=255)
    organization_id: str = Field(foreign_key="organizations.id", nullable=False, index=True)

    role: str = Field(default="member", max_length=50)
    status: MembershipStatus = Field(default=MembershipStatus.active)

    # Timestamps
    created_at: datetime = Field(default_factory=utcnow, sa_column=Column(DateTime))

    # Relationships
    organization: "Organization" = Relationship(back_populates="memberships")

    __table_args__ = (
        Index("idx_org_membership_user_org", "user_id", "organization_id", unique=True),
        Index("idx_org_membership_status", "status"),
    )
