import logging
from typing import Optional, Sequence, Union

import discord

from ..domain.errors import CHANNEL_NOT_FOUND_CODE, ChannelNotFoundError, DeliveryError

logger = logging.getLogger(__name__)

ChannelRef = Union[int, discord.abc.Messageable]


class DiscordPlatform:
    """Channel and message operations the relay needs, over a discord.Client.

    Discord HTTP errors are turned into the relay's own error types so callers
    can branch on them without inspecting error codes.
    """

    def __init__(self, client: discord.Client):
        self.client = client

    async def resolve_direct_channel(self, user_id: int) -> Optional[discord.DMChannel]:
        try:
            user = self.client.get_user(user_id) or await self.client.fetch_user(user_id)
            return user.dm_channel or await user.create_dm()
        except discord.HTTPException as e:
            logger.warning("Could not open DM channel with %s: %s", user_id, e)
            return None

    async def get_channel(self, channel_id: int):
        channel = self.client.get_channel(channel_id)
        if channel is not None:
            return channel
        try:
            return await self.client.fetch_channel(channel_id)
        except discord.NotFound as e:
            if e.code == CHANNEL_NOT_FOUND_CODE:
                raise ChannelNotFoundError(e.text or "Unknown Channel") from e
            raise DeliveryError(str(e), code=e.code) from e
        except discord.HTTPException as e:
            raise DeliveryError(str(e), code=e.code) from e

    async def post_message(self, channel: ChannelRef, text: str, files: Sequence[discord.File] = ()) -> discord.Message:
        if isinstance(channel, int):
            channel = await self.get_channel(channel)
        kwargs = {"content": text}
        if files:
            kwargs["files"] = list(files)
        try:
            return await channel.send(**kwargs)
        except discord.NotFound as e:
            if e.code == CHANNEL_NOT_FOUND_CODE:
                raise ChannelNotFoundError(e.text or "Unknown Channel") from e
            raise DeliveryError(str(e), code=e.code) from e
        except discord.HTTPException as e:
            raise DeliveryError(str(e), code=e.code) from e

    async def delete_channel(self, channel_id: int, reason: str) -> None:
        channel = await self.get_channel(channel_id)
        try:
            await channel.delete(reason=reason)
        except discord.NotFound as e:
            raise ChannelNotFoundError(e.text or "Unknown Channel") from e
