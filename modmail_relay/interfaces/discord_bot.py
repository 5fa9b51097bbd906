import logging
from typing import Optional

import discord

from .. import settings
from ..domain.entities import Thread
from ..infrastructure.attachments import AttachmentStore
from ..infrastructure.database import TranscriptStore, init_db
from ..services.thread_service import ThreadRelay
from .discord_platform import DiscordPlatform

logger = logging.getLogger(__name__)

intents = discord.Intents.default()
intents.message_content = True
intents.guilds = True
intents.members = True
intents.dm_messages = True
client = discord.Client(intents=intents)

platform = DiscordPlatform(client)
store = TranscriptStore()
attachment_store = AttachmentStore(settings.ATTACHMENT_DIR, settings.URL)
relay_config = settings.RelayConfig.from_settings()


def make_relay(thread: Thread) -> ThreadRelay:
    return ThreadRelay(thread, platform, store, attachment_store, relay_config)


async def find_thread_for(channel, author_id: Optional[int]) -> Optional[Thread]:
    """The open thread a message belongs to: by DM author, or by thread channel."""
    if isinstance(channel, discord.DMChannel):
        if author_id is None:
            return None
        return await store.find_open_thread_by_user_id(author_id)
    return await store.find_open_thread_by_channel_id(channel.id)


@client.event
async def on_ready():
    logger.info("Logged in as %s (guilds: %d)", client.user, len(client.guilds))
    init_db()


@client.event
async def on_message(message: discord.Message):
    if message.author == client.user or message.author.bot:
        return

    thread = await find_thread_for(message.channel, message.author.id)
    if thread is None:
        return

    relay = make_relay(thread)
    if isinstance(message.channel, discord.DMChannel):
        await relay.receive_user_reply(message)
    else:
        await relay.save_chat_message(message)


@client.event
async def on_message_edit(before: discord.Message, after: discord.Message):
    if after.author == client.user or after.content == before.content:
        return

    thread = await find_thread_for(after.channel, after.author.id)
    if thread is None:
        return
    await make_relay(thread).update_chat_message(after)


@client.event
async def on_raw_message_delete(payload: discord.RawMessageDeleteEvent):
    if payload.guild_id is None:
        # DM deletes carry no author; resolve the user through the DM channel
        channel = client.get_channel(payload.channel_id)
        recipient = getattr(channel, "recipient", None)
        if recipient is None:
            return
        thread = await store.find_open_thread_by_user_id(recipient.id)
    else:
        thread = await store.find_open_thread_by_channel_id(payload.channel_id)
    if thread is None:
        return
    await make_relay(thread).delete_chat_message(payload.message_id)


def run():
    if not all([
        settings.DISCORD_BOT_TOKEN,
        settings.MYSQL_HOST,
        settings.MYSQL_USER,
        settings.MYSQL_DATABASE,
    ]):
        print("Error: required environment variables are not set (check your .env file)")
        print("Required: DISCORD_BOT_TOKEN, MYSQL_HOST, MYSQL_USER, MYSQL_PASSWORD, MYSQL_DATABASE")
        return
    client.run(settings.DISCORD_BOT_TOKEN, root_logger=True)
