"""
Pydantic request/response schemas for the Blacklist Registry API

Request models carry the input contract (non-empty names, email shape,
score and pagination bounds); the services assume validated input.
"""

import re
from datetime import datetime
from typing import ClassVar, FrozenSet, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from database.models import BlacklistStatus

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def _require_text(value: str) -> str:
    if not value.strip():
        raise ValueError("must not be blank")
    return value.strip()


def _validate_email(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    if not EMAIL_PATTERN.match(value):
        raise ValueError("must be a valid email address")
    return value


# ============================================
# REQUESTS
# ============================================

class EntryCreateRequest(BaseModel):
    """Request schema for filing a blacklist entry.

    The risk score and owning company are derived server-side and cannot
    be supplied.
    """
    model_config = ConfigDict(extra="forbid")

    first_name: str = Field(..., min_length=1, max_length=200, description="Subject first name")
    last_name: str = Field(..., min_length=1, max_length=200, description="Subject last name")
    id_number: str = Field(..., min_length=1, max_length=100, description="National ID or passport number")
    phone: Optional[str] = Field(default=None, max_length=50, description="Contact phone")
    email: Optional[str] = Field(default=None, max_length=320, description="Contact email")
    face_image_url: Optional[str] = Field(default=None, max_length=2000, description="Stored face image URL")
    id_document_urls: List[str] = Field(default_factory=list, description="Stored ID document URLs")
    reason: str = Field(..., min_length=1, description="Why the subject is flagged")
    is_blacklisted: bool = Field(default=True, description="Initial blacklist flag")

    @field_validator("first_name", "last_name", "id_number", "reason")
    @classmethod
    def not_blank(cls, v: str) -> str:
        return _require_text(v)

    @field_validator("email")
    @classmethod
    def email_shape(cls, v: Optional[str]) -> Optional[str]:
        return _validate_email(v)


class EntryUpdateRequest(BaseModel):
    """Partial update of a blacklist entry.

    Omitted keys are left untouched. ``phone``, ``email`` and
    ``face_image_url`` accept an explicit null to clear the value; every
    other field rejects null.
    """
    model_config = ConfigDict(extra="forbid")

    first_name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    last_name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    id_number: Optional[str] = Field(default=None, min_length=1, max_length=100)
    phone: Optional[str] = Field(default=None, max_length=50)
    email: Optional[str] = Field(default=None, max_length=320)
    face_image_url: Optional[str] = Field(default=None, max_length=2000)
    id_document_urls: Optional[List[str]] = None
    reason: Optional[str] = Field(default=None, min_length=1)
    status: Optional[BlacklistStatus] = None
    is_blacklisted: Optional[bool] = None

    NULLABLE_FIELDS: ClassVar[FrozenSet[str]] = frozenset({"phone", "email", "face_image_url"})

    @field_validator("first_name", "last_name", "id_number", "reason")
    @classmethod
    def not_blank(cls, v: Optional[str]) -> Optional[str]:
        return v if v is None else _require_text(v)

    @field_validator("email")
    @classmethod
    def email_shape(cls, v: Optional[str]) -> Optional[str]:
        return _validate_email(v)

    @model_validator(mode="after")
    def reject_null_required_fields(self) -> "EntryUpdateRequest":
        for name in self.model_fields_set - self.NULLABLE_FIELDS:
            if getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self

    def provided(self) -> dict:
        """Only the keys the client actually sent."""
        return {name: getattr(self, name) for name in self.model_fields_set}


class StatusToggleRequest(BaseModel):
    """Request schema for setting the blacklist flag."""
    is_blacklisted: bool = Field(..., description="True blacklists (active), false lifts it (inactive)")


# ============================================
# RESPONSES
# ============================================

class EntryResponse(BaseModel):
    """Blacklist entry as returned to clients."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int = Field(..., description="User who filed the entry")
    company_id: int = Field(..., description="Owning company")
    first_name: str
    last_name: str
    id_number: str
    phone: Optional[str] = None
    email: Optional[str] = None
    face_image_url: Optional[str] = None
    id_document_urls: List[str] = Field(default_factory=list)
    reason: str
    status: BlacklistStatus
    is_blacklisted: bool
    blacklist_score: int = Field(..., ge=0, le=100, description="Derived risk score (0-100)")
    created_at: datetime
    updated_at: datetime


class EntryListResponse(BaseModel):
    """Page of blacklist entries."""
    entries: List[EntryResponse] = Field(default_factory=list)
    total: int = Field(..., ge=0, description="Total matches ignoring pagination")
    page: int = Field(..., ge=1)
    limit: int = Field(..., ge=1, le=100)


class SearchResponse(BaseModel):
    """Search results."""
    entries: List[EntryResponse] = Field(default_factory=list)
    total: int = Field(..., ge=0)


class SuggestionResponse(BaseModel):
    """Type-ahead suggestion."""
    type: str = Field(..., description="name, id_number, email or phone")
    value: str
    entry_id: int


class DeleteResponse(BaseModel):
    success: bool


class ActivityLogResponse(BaseModel):
    """Activity log row."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    action: str
    resource_type: str
    resource_id: Optional[int] = None
    details: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: datetime


class ActivityLogListResponse(BaseModel):
    """Page of activity logs."""
    logs: List[ActivityLogResponse] = Field(default_factory=list)
    total: int = Field(..., ge=0)
    page: int = Field(..., ge=1)
    limit: int = Field(..., ge=1, le=100)


class ScoreBucket(BaseModel):
    range: str = Field(..., description="Inclusive score range, e.g. '81-100'")
    count: int = Field(..., ge=0)


class RecentActivityResponse(BaseModel):
    id: int
    action: str
    resource_type: str
    user_name: str = Field(..., description="Full name of the acting user")
    created_at: datetime


class DashboardResponse(BaseModel):
    """Dashboard analytics for the caller's scope."""
    total_entries: int = Field(..., ge=0)
    active_blacklisted: int = Field(..., ge=0)
    pending_entries: int = Field(..., ge=0)
    resolved_entries: int = Field(..., ge=0)
    risk_score_distribution: List[ScoreBucket]
    recent_activities: List[RecentActivityResponse] = Field(default_factory=list)


class RoleResponse(BaseModel):
    role: str = Field(..., description="'admin' or 'user'")
    permissions: List[str] = Field(default_factory=list)


class HealthResponse(BaseModel):
    """Response schema for health check endpoint."""
    status: str = Field(default="healthy", description="Service status")
    database: dict = Field(default_factory=dict, description="Database health and pool statistics")
    version: str = Field(..., description="API version")
    uptime_seconds: Optional[int] = Field(default=None, description="Server uptime in seconds")


class ErrorDetail(BaseModel):
    """Detailed error information."""
    code: str = Field(..., description="Error code for programmatic handling")
    message: str = Field(..., description="Human-readable error message")
    field: Optional[str] = Field(default=None, description="Field that caused error")
    suggestion: Optional[str] = Field(default=None, description="How to fix the error")
    timestamp: str = Field(..., description="Error timestamp (ISO 8601)")


class ErrorResponse(BaseModel):
    """Standardized error response format."""
    error: ErrorDetail
