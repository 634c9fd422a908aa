# SQLAlchemy models package
from smscp.models.base import Base
from smscp.models.note import NoteRow
from smscp.models.user import UserRow

__all__ = [
    "Base",
    "NoteRow",
    "UserRow",
]
