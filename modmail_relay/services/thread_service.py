from __future__ import annotations
import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional, Sequence

from ..domain.entities import Thread, ThreadMessage, ThreadMessageType, ThreadStatus
from ..domain.errors import ChannelNotFoundError, DeliveryError, ThreadClosedError, UserUnreachableError
from ..settings import RelayConfig
from .formatting import get_main_role, get_timestamp

logger = logging.getLogger(__name__)

SMALL_ATTACHMENT_LIMIT = 1024 * 1024 * 2
EMBED_PLACEHOLDER = "<message contains embeds>"
DEFAULT_MOD_ROLE_NAME = "Moderator"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _author_tag(author) -> str:
    return f"{author.name}#{author.discriminator}"


class ThreadRelay:
    """Relays messages between a user's DMs and their modmail thread channel.

    Every delivered message is written to the thread's transcript. The relay
    holds the current ``Thread`` value; ``close()`` swaps it for the closed one.

    ``reply_to_user`` is the entry point for a moderator reply command; the
    event dispatcher itself only routes user DMs and staff chat.
    """

    def __init__(
        self,
        thread: Thread,
        platform,
        store,
        attachments,
        config: RelayConfig,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.thread = thread
        self.platform = platform
        self.store = store
        self.attachments = attachments
        self.config = config
        self._clock = clock

    def _ensure_open(self) -> None:
        if not self.thread.is_open:
            raise ThreadClosedError(f"Thread {self.thread.id} is closed")

    async def reply_to_user(self, moderator, text: str, reply_attachments: Sequence = (), is_anonymous: bool = False) -> None:
        """Send a staff reply to the user, mirror it in the thread channel and log it."""
        self._ensure_open()

        main_role = get_main_role(moderator)
        role_name = main_role.name if main_role else DEFAULT_MOD_ROLE_NAME
        if is_anonymous:
            mod_username = role_name
            log_mod_username = f"(Anonymous) ({moderator.name}) {role_name}"
        else:
            name = (moderator.nick or moderator.name) if self.config.use_nicknames else moderator.name
            mod_username = f"({main_role.name}) {name}" if main_role else name
            log_mod_username = mod_username

        dm_content = f"**{mod_username}:** {text}"
        thread_content = f"**{log_mod_username}:** {text}"
        log_content = text

        if self.config.thread_timestamps:
            thread_content = f"[{get_timestamp(self._clock())}] » {thread_content}"

        dm_files = []
        thread_files = []
        for attachment in reply_attachments:
            await self.attachments.persist(attachment)
            dm_files.append(await self.attachments.to_file(attachment))
            thread_files.append(await self.attachments.to_file(attachment))
            url = self.attachments.get_url(attachment.id, attachment.filename)
            log_content += f"\n\n**Attachment:** {url}"

        try:
            dm_message = await self.post_to_user(dm_content, dm_files)
        except DeliveryError as e:
            logger.warning("Reply to %s in thread %s failed: %s", self.thread.user_id, self.thread.id, e)
            await self.post_non_log_message(f"Error while replying to user: {e}")
            return

        posted = await self.post_to_thread_channel(thread_content, thread_files)
        if posted is None:
            return

        await self.add_thread_message_to_db(
            ThreadMessageType.TO_USER,
            user_id=moderator.id,
            user_name=log_mod_username,
            body=log_content,
            is_anonymous=is_anonymous,
            dm_message_id=dm_message.id,
        )

    async def receive_user_reply(self, message) -> None:
        """Forward a user's DM into the thread channel and log it."""
        self._ensure_open()

        content = message.content
        if message.content.strip() == "" and message.embeds:
            content = EMBED_PLACEHOLDER

        thread_content = f"**{_author_tag(message.author)}:** {content}"
        log_content = message.content

        if self.config.thread_timestamps:
            thread_content = f"[{get_timestamp(message.created_at)}] « {thread_content}"

        files = []
        for attachment in message.attachments:
            await self.attachments.persist(attachment)

            # Logs always keep the link, small files are also relayed as files
            formatted = "\n\n" + self.attachments.format_reference(attachment)
            log_content += formatted

            if self.config.relay_small_attachments_as_attachments and attachment.size <= SMALL_ATTACHMENT_LIMIT:
                files.append(await self.attachments.to_file(attachment))
            else:
                thread_content += formatted

        posted = await self.post_to_thread_channel(thread_content, files)
        if posted is None:
            return

        await self.add_thread_message_to_db(
            ThreadMessageType.FROM_USER,
            user_id=self.thread.user_id,
            user_name=_author_tag(message.author),
            body=log_content,
            dm_message_id=message.id,
        )

    async def post_to_user(self, text: str, files: Sequence = ()):
        dm_channel = await self.platform.resolve_direct_channel(self.thread.user_id)
        if not dm_channel:
            raise UserUnreachableError(
                "Could not open DMs with the user. They may have blocked the bot or set their privacy settings higher."
            )
        return await self.platform.post_message(dm_channel, text, files)

    async def post_to_thread_channel(self, text: str, files: Sequence = ()):
        """Post to the thread channel; returns None if the channel is gone and the thread was closed."""
        try:
            return await self.platform.post_message(self.thread.channel_id, text, files)
        except ChannelNotFoundError:
            logger.info("Auto-closing thread with %s because the channel no longer exists", self.thread.user_name)
            await self.close(silent=True)
            return None

    async def post_system_message(self, text: str) -> None:
        self._ensure_open()
        posted = await self.post_to_thread_channel(text)
        if posted is None:
            return
        await self.add_thread_message_to_db(
            ThreadMessageType.SYSTEM,
            user_id=None,
            user_name="",
            body=text,
            dm_message_id=posted.id,
        )

    async def post_non_log_message(self, text: str, files: Sequence = ()) -> None:
        await self.post_to_thread_channel(text, files)

    async def save_chat_message(self, message) -> int:
        self._ensure_open()
        return await self.add_thread_message_to_db(
            ThreadMessageType.CHAT,
            user_id=message.author.id,
            user_name=_author_tag(message.author),
            body=message.content,
            dm_message_id=message.id,
        )

    async def update_chat_message(self, message) -> int:
        # Zero rows means the message was never logged
        self._ensure_open()
        body = message.content
        if message.author.id == self.thread.user_id:
            for attachment in getattr(message, "attachments", ()):
                body += "\n\n" + self.attachments.format_reference(attachment)
        return await self.store.update_thread_message_body(self.thread.id, message.id, body)

    async def delete_chat_message(self, message_id: int) -> int:
        self._ensure_open()
        return await self.store.delete_thread_messages(self.thread.id, message_id)

    async def add_thread_message_to_db(
        self,
        message_type: ThreadMessageType,
        user_id: Optional[int],
        user_name: str,
        body: str,
        is_anonymous: bool = False,
        dm_message_id: Optional[int] = None,
    ) -> int:
        return await self.store.add_thread_message(
            self.thread.id,
            message_type,
            user_id,
            user_name,
            body,
            is_anonymous=is_anonymous,
            dm_message_id=dm_message_id,
        )

    async def get_thread_messages(self) -> List[ThreadMessage]:
        return await self.store.get_thread_messages(self.thread.id)

    async def close(self, silent: bool = False) -> None:
        if not silent:
            logger.info("Closing thread %s", self.thread.id)
            await self.post_to_thread_channel("Closing thread...")

        await self.store.set_thread_status(self.thread.id, ThreadStatus.CLOSED)
        self.thread = self.thread.close()

        channel_id = self.thread.channel_id
        if channel_id is None:
            return
        try:
            await self.platform.delete_channel(channel_id, "Thread closed")
            logger.info("Deleted channel %s", channel_id)
        except ChannelNotFoundError:
            logger.debug("Channel %s already gone, nothing to delete", channel_id)

    def get_log_url(self) -> str:
        return f"{self.config.url.rstrip('/')}/logs/{self.thread.id}"
