"""
SQLAlchemy ORM Models for the Blacklist Registry

Tables:
1. users - Registered accounts (company owners and administrators)
2. companies - Tenants; each company is owned by exactly one user
3. blacklist_entries - Flagged individuals filed by a company
4. activity_logs - Append-only audit trail of user actions

Column types are kept portable (JSON with a JSONB variant, integer keys) so the
same schema runs on PostgreSQL in production and SQLite in the test suite.
"""

from datetime import datetime, timezone
from enum import Enum as PyEnum
from typing import List, Optional

from sqlalchemy import (
    String, Integer, Boolean, DateTime, Text,
    ForeignKey, Index, CheckConstraint, Enum, JSON
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship, declarative_base, Mapped, mapped_column

# Base class for all models
Base = declarative_base()

JSONType = JSON().with_variant(JSONB, "postgresql")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================
# ENUMS
# ============================================

class BlacklistStatus(str, PyEnum):
    """Lifecycle status of a blacklist entry"""
    ACTIVE = "active"
    INACTIVE = "inactive"
    PENDING = "pending"
    RESOLVED = "resolved"


class ActivityAction(str, PyEnum):
    """Actions recorded in the activity log for blacklist entries"""
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"
    BLACKLISTED = "blacklisted"
    UNBLACKLISTED = "unblacklisted"


BLACKLIST_ENTRY_RESOURCE = "blacklist_entry"


# ============================================
# MIXIN CLASSES
# ============================================

class TimestampMixin:
    """Mixin for created_at and updated_at timestamps"""
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False
    )


# ============================================
# ACCOUNT MODELS
# ============================================

class User(Base, TimestampMixin):
    """
    Registered account.

    Credentials, 2FA secrets and sessions live with the authentication
    service; this table only carries what authorization and display need.
    """
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)
    first_name: Mapped[str] = mapped_column(String(200), nullable=False)
    last_name: Mapped[str] = mapped_column(String(200), nullable=False)
    phone: Mapped[str] = mapped_column(String(50), nullable=False, default="")
    is_admin: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    company: Mapped[Optional["Company"]] = relationship(
        "Company",
        back_populates="owner",
        uselist=False
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email='{self.email}', is_admin={self.is_admin})>"


class Company(Base, TimestampMixin):
    """
    Tenant. Every blacklist entry belongs to exactly one company.
    """
    __tablename__ = "companies"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        unique=True
    )
    name: Mapped[str] = mapped_column(String(300), nullable=False)
    legal_representative_name: Mapped[str] = mapped_column(String(300), nullable=False)
    phone: Mapped[str] = mapped_column(String(50), nullable=False)
    address: Mapped[str] = mapped_column(String(500), nullable=False)
    city: Mapped[str] = mapped_column(String(200), nullable=False)
    association_membership: Mapped[Optional[str]] = mapped_column(String(300), nullable=True)

    owner: Mapped["User"] = relationship("User", back_populates="company")
    entries: Mapped[List["BlacklistEntry"]] = relationship(
        "BlacklistEntry",
        back_populates="company",
        passive_deletes=True
    )

    def __repr__(self) -> str:
        return f"<Company(id={self.id}, name='{self.name}')>"


# ============================================
# BLACKLIST MODELS
# ============================================

class BlacklistEntry(Base, TimestampMixin):
    """
    Flagged individual filed by a company.

    ``company_id`` is fixed at creation and ``blacklist_score`` is always
    derived from (reason, id_document_urls, face_image_url); neither is
    ever taken from caller input.
    """
    __tablename__ = "blacklist_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Ownership
    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id"),
        nullable=False,
        index=True
    )
    company_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False
    )

    # Subject
    first_name: Mapped[str] = mapped_column(String(200), nullable=False)
    last_name: Mapped[str] = mapped_column(String(200), nullable=False)
    id_number: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    email: Mapped[Optional[str]] = mapped_column(String(320), nullable=True)

    # Evidence
    face_image_url: Mapped[Optional[str]] = mapped_column(String(2000), nullable=True)
    id_document_urls: Mapped[List[str]] = mapped_column(JSONType, nullable=False, default=list)

    # Classification
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[BlacklistStatus] = mapped_column(
        Enum(
            BlacklistStatus,
            name="blacklist_status",
            values_callable=lambda enum: [member.value for member in enum]
        ),
        nullable=False,
        default=BlacklistStatus.ACTIVE
    )
    is_blacklisted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    blacklist_score: Mapped[int] = mapped_column(Integer, nullable=False, default=50)

    company: Mapped["Company"] = relationship("Company", back_populates="entries")

    __table_args__ = (
        Index('ix_blacklist_company_created', 'company_id', 'created_at'),
        Index('ix_blacklist_status', 'status'),
        Index('ix_blacklist_score', 'blacklist_score'),
        CheckConstraint(
            'blacklist_score >= 0 AND blacklist_score <= 100',
            name='ck_blacklist_score_range'
        ),
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def __repr__(self) -> str:
        return (
            f"<BlacklistEntry(id={self.id}, company_id={self.company_id}, "
            f"score={self.blacklist_score}, status='{self.status.value if self.status else None}')>"
        )


# ============================================
# AUDIT MODELS
# ============================================

class ActivityLog(Base):
    """
    Append-only record of a user action.

    Rows are never updated; ``created_at`` is the only timestamp.
    """
    __tablename__ = "activity_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id"),
        nullable=False
    )
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    resource_type: Mapped[str] = mapped_column(String(100), nullable=False)
    resource_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    details: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    ip_address: Mapped[Optional[str]] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False
    )

    user: Mapped["User"] = relationship("User")

    __table_args__ = (
        Index('ix_activity_user_created', 'user_id', 'created_at'),
        Index('ix_activity_resource', 'resource_type', 'resource_id'),
        Index('ix_activity_action', 'action'),
    )

    def __repr__(self) -> str:
        return f"<ActivityLog(id={self.id}, action='{self.action}', user_id={self.user_id})>"
