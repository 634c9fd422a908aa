"""
Note Model.

Database model for notes. Rows are immutable once written.
"""

from sqlalchemy import ForeignKey, Index, Text
from sqlalchemy.orm import Mapped, mapped_column

from smscp.models.base import Base, IntegerIDMixin, TimestampMixin


class NoteRow(IntegerIDMixin, TimestampMixin, Base):
    """Note database model, owned by exactly one user."""

    __tablename__ = "notes"
    __table_args__ = (Index("ix_notes_user_id_id", "user_id", "id"),)

    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id"),
        nullable=False,
    )
    text: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<NoteRow(id={self.id}, user_id={self.user_id})>"
