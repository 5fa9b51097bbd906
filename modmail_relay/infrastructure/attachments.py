import asyncio
import io
import logging
from pathlib import Path
from urllib.parse import quote

import discord

from ..services.formatting import format_attachment

logger = logging.getLogger(__name__)


class AttachmentStore:
    """Keeps a local copy of relayed attachments and builds links to them."""

    def __init__(self, directory: Path, base_url: str):
        self.directory = Path(directory)
        self.base_url = base_url.rstrip("/")

    def path_for(self, attachment_id) -> Path:
        return self.directory / str(attachment_id)

    async def persist(self, attachment) -> None:
        path = self.path_for(attachment.id)
        if path.exists():
            return
        self.directory.mkdir(parents=True, exist_ok=True)
        await attachment.save(path)
        logger.debug("Saved attachment %s to %s", attachment.id, path)

    async def to_file(self, attachment) -> discord.File:
        # discord.py closes a File after sending it, so each send gets its own.
        path = self.path_for(attachment.id)
        if path.exists():
            data = await asyncio.to_thread(path.read_bytes)
        else:
            data = await attachment.read()
        return discord.File(io.BytesIO(data), filename=attachment.filename)

    def get_url(self, attachment_id, filename: str) -> str:
        return f"{self.base_url}/attachments/{attachment_id}/{quote(filename)}"

    def format_reference(self, attachment) -> str:
        return format_attachment(attachment, self.get_url(attachment.id, attachment.filename))
