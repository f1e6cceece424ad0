"""
Session and Profile Models

The signed-in user, their profile and company are held in an explicit
SessionContext that is created on sign-in and cleared on sign-out. Handlers
receive the context as an argument; there is no module-level "current user".
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator


class UserType(str, Enum):
    """Kind of account a profile belongs to."""
    INDIVIDUAL = "individual"
    ORGANIZATION = "organization"
    ACCOUNTANT = "accountant"


class UserRole(str, Enum):
    """Access role. Anything not stored as admin is a plain user."""
    ADMIN = "admin"
    USER = "user"


class AuthUser(BaseModel):
    """The authenticated identity as reported by the auth provider."""

    id: UUID
    email: Optional[str] = None
    metadata: dict[str, Any] = Field(
        default_factory=dict,
        description="Sign-up metadata (full_name, user_type, company_name, gst_number)"
    )


class Company(BaseModel):
    """One row of `companies`."""

    model_config = ConfigDict(str_strip_whitespace=True)

    id: Optional[UUID] = None
    name: str = Field(..., min_length=1, max_length=200)
    gst_number: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_record(self) -> dict:
        return self.model_dump(mode="json", exclude_none=True)


class Profile(BaseModel):
    """
    One row of `profiles`.

    The profile id IS the auth user id, which makes the primary key the
    uniqueness guard for provisioning.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID
    email: str
    full_name: Optional[str] = None
    role: UserRole = UserRole.USER
    user_type: UserType = UserType.INDIVIDUAL
    company_id: Optional[UUID] = None
    company_name: Optional[str] = None
    gst_number: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("role", mode="before")
    @classmethod
    def normalize_role(cls, v: Any) -> UserRole:
        return UserRole.ADMIN if getattr(v, "value", v) == "admin" else UserRole.USER

    def to_record(self) -> dict:
        return self.model_dump(mode="json", exclude_none=True)


class SessionContext(BaseModel):
    """
    Per-session state passed explicitly to handlers.

    Lifecycle: built by SessionManager.sign_in (or restore) and emptied by
    SessionManager.sign_out. A cleared context is inactive and must not be
    used for writes.
    """

    model_config = ConfigDict(validate_assignment=True)

    user: Optional[AuthUser] = None
    profile: Optional[Profile] = None
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    started_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def is_active(self) -> bool:
        return self.user is not None

    @property
    def user_id(self) -> UUID:
        """Owner id for row-scoped writes. Raises if the session has ended."""
        if self.user is None:
            raise RuntimeError("Session is not active")
        return self.user.id

    def clear(self) -> None:
        """Teardown: drop identity and tokens."""
        self.user = None
        self.profile = None
        self.access_token = None
        self.refresh_token = None
