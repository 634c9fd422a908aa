"""
Export Formatters.

Renders a user's account and notes for a data-export download.
"""

import json

from smscp.schemas.note import Note
from smscp.schemas.user import User


class JsonExportFormatter:
    """
    Formats an export as a JSON document.

    The password hash is never included; each note carries its token.
    """

    media_type = "application/json"

    def format(self, user: User, notes: list[Note]) -> bytes:
        document = {
            "user": user.model_dump(mode="json", exclude={"token"}),
            "notes": [note.model_dump(mode="json") for note in notes],
        }
        return json.dumps(document, indent=2, ensure_ascii=False).encode("utf-8")
