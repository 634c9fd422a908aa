"""
User Schema.

Value object handed to callers. It is a copy of the stored row plus a
freshly minted capability token, never a live reference into storage.
"""

from pydantic import BaseModel, ConfigDict, Field


class User(BaseModel):
    """Account holder as seen by callers."""

    id: int = Field(description="Storage-assigned identity")
    username: str = Field(description="Unique username")
    phone: str = Field(description="Unique phone number")
    password_hash: str = Field(repr=False, exclude=True, description="bcrypt digest")
    token: str | None = Field(default=None, repr=False, description="User claim token")

    model_config = ConfigDict(from_attributes=True, frozen=True)
