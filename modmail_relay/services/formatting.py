from datetime import datetime, timezone
from typing import Optional


def get_main_role(member):
    """Return the member's highest hoisted role, or None."""
    hoisted = [role for role in getattr(member, "roles", []) if role.hoist]
    if not hoisted:
        return None
    return max(hoisted, key=lambda role: role.position)


def get_timestamp(moment: Optional[datetime] = None) -> str:
    if moment is None:
        moment = datetime.now(timezone.utc)
    elif moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)
    return moment.strftime("%H:%M")


def format_attachment(attachment, url: str) -> str:
    return f"**Attachment:** {attachment.filename} ({attachment.size / 1024:.1f}KB)\n{url}"
