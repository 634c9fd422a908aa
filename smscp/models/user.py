"""
User Model.

Database model for account holders.
"""

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from smscp.models.base import Base, IntegerIDMixin, TimestampMixin


class UserRow(IntegerIDMixin, TimestampMixin, Base):
    """
    User database model.

    Username and phone number are each globally unique. password_hash
    only ever holds a bcrypt digest.
    """

    __tablename__ = "users"

    username: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
    )
    phone: Mapped[str] = mapped_column(
        String(32),
        unique=True,
        nullable=False,
    )
    password_hash: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<UserRow(id={self.id}, username={self.username!r})>"
