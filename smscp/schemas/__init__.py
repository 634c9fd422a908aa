# Value object schemas package
from smscp.schemas.note import Dashboard, Note, NotePage
from smscp.schemas.user import User

__all__ = [
    "Dashboard",
    "Note",
    "NotePage",
    "User",
]
