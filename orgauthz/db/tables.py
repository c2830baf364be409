"""SQLAlchemy table definitions.

These map to the frozen dataclass domain models in orgauthz/models/.
Repos convert between rows and dataclasses; nothing outside
orgauthz/repos/pg_*.py touches a Row class.

The two authorization tables are org_memberships and
organization_permissions.  profiles and organizations exist so the
foreign keys and display names have something to point at.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from orgauthz.db.engine import Base


class ProfileRow(Base):
    __tablename__ = "profiles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    role: Mapped[str] = mapped_column(
        String(50), nullable=False
    )  # TEACHER|STUDENT|PARENT|ADMIN


class OrganizationRow(Base):
    __tablename__ = "organizations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    main_admin_profile_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("profiles.id"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


class OrgMembershipRow(Base):
    __tablename__ = "org_memberships"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    profile_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("profiles.id"), nullable=False
    )
    organization_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("organizations.id"), nullable=False
    )
    role: Mapped[str] = mapped_column(
        String(50), nullable=False
    )  # MAIN_ADMIN|SUB_ADMIN|STUDENT|PARENT
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("profile_id", "organization_id", name="uq_profile_org"),
        Index("ix_org_memberships_role", "role"),
        # One MAIN_ADMIN per organization
        Index(
            "uq_org_memberships_main_admin",
            "organization_id",
            unique=True,
            postgresql_where=text("role = 'MAIN_ADMIN'"),
        ),
    )


class PermissionGrantRow(Base):
    __tablename__ = "organization_permissions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    organization_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("organizations.id"), nullable=False
    )
    profile_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("profiles.id"), nullable=False
    )
    permission: Mapped[str] = mapped_column(String(100), nullable=False)
    granted_by_profile_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("profiles.id"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    __table_args__ = (
        UniqueConstraint(
            "organization_id",
            "profile_id",
            "permission",
            name="uq_org_profile_permission",
        ),
        Index("ix_organization_permissions_permission", "permission"),
    )
