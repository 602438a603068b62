"""
User and identity models.

Users are created out of band (the library imports its reader list in bulk);
this API only reads them. ``Identity`` is what upstream authentication hands
to every request: who is calling and with which role.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class Role(str, Enum):
    """Access role of a caller, ordered from least to most privileged."""

    ANONYMOUS = "anonymous"
    USER = "user"
    STAFF = "staff"
    ADMIN = "admin"

    @property
    def rank(self) -> int:
        return _ROLE_RANK[self]

    def at_least(self, other: "Role") -> bool:
        """Check whether this role carries the privileges of ``other``."""
        return self.rank >= other.rank


_ROLE_RANK = {
    Role.ANONYMOUS: 0,
    Role.USER: 1,
    Role.STAFF: 2,
    Role.ADMIN: 3,
}


class User(BaseModel):
    """A library member or staff account."""

    id: str = Field(..., pattern=r"^user_[a-zA-Z0-9]{6,}$")
    name: str = Field(..., min_length=1, max_length=200)
    student_id: str | None = Field(None, max_length=50)
    email: str = Field(..., max_length=255)
    phone: str | None = Field(None, max_length=30)
    role: Role = Role.USER

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


class UserSummary(BaseModel):
    """Compact user reference embedded in borrow records, fines and reviews."""

    id: str
    name: str
    student_id: str | None = None

    model_config = ConfigDict(from_attributes=True)


class Identity(BaseModel):
    """Authenticated caller as supplied by the auth middleware."""

    user_id: str | None = None
    role: Role = Role.ANONYMOUS

    model_config = ConfigDict(frozen=True)

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None and self.role != Role.ANONYMOUS
