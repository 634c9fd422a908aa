"""
Note Schemas.

Value objects for notes, pages of notes, and the home view.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, computed_field

from smscp.core.utils import preview
from smscp.schemas.user import User


class Note(BaseModel):
    """Immutable note as seen by callers."""

    id: int = Field(description="Storage-assigned identity")
    user_id: int = Field(description="Owning user's identity")
    text: str = Field(description="Note body")
    created_at: datetime = Field(description="Storage-assigned creation time (UTC)")
    token: str | None = Field(default=None, repr=False, description="Note claim token")

    model_config = ConfigDict(from_attributes=True, frozen=True)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def short(self) -> str:
        """First 50 code points of the body. Never stored."""
        return preview(self.text)


class NotePage(BaseModel):
    """One window of a user's notes, newest first."""

    notes: list[Note]
    has_more: bool

    model_config = ConfigDict(frozen=True)


class Dashboard(BaseModel):
    """Data for a signed-in user's home view."""

    user: User
    page: NotePage
    recent: Note | None = None
