"""
Organization Entity

Tenant boundary for audit events and isolation checks.
"""

from datetime import datetime
from typing import TYPE_CHECKING

from sqlmodel import Column, DateTime, Field, Relationship, SQLModel

from src.domain.base import utcnow

if TYPE_CHECKING:
    from .organization_membership import OrganizationMembership


class Organization(SQLModel, table=True):
    """
    Organization entity - isolated tenant mirrored from the identity provider.

    Business Rules:
    - id is the identity provider's organization id (e.g. "org_2abc...")
    - Tenant isolation checks compare against a user's active memberships
    """

    __tablename__ = "organizations"

    id: str = Field(primary_key=True, max_length=255)
    name: str = Field(max_length=255)

    # Timestamps
    created_at: datetime = Field(default_factory=utcnow, sa_column=Column(DateTime))

    # Relationships
    memberships: list["OrganizationMembership"] = Relationship(back_populates="organization")
