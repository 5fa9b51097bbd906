"""Pytest configuration and fixtures."""

import sqlite3
from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock

import pytest

from modmail_relay.domain.entities import Thread, ThreadStatus
from modmail_relay.infrastructure.attachments import AttachmentStore
from modmail_relay.infrastructure.database import TranscriptStore
from modmail_relay.services.thread_service import ThreadRelay
from modmail_relay.settings import RelayConfig

FIXED_NOW = datetime(2024, 5, 1, 12, 0, 30, tzinfo=timezone.utc)

SQLITE_SCHEMA = """
CREATE TABLE threads (
    id TEXT PRIMARY KEY,
    status INTEGER NOT NULL,
    user_id INTEGER NOT NULL,
    user_name TEXT NOT NULL,
    channel_id INTEGER NULL,
    created_at TEXT NOT NULL
);
CREATE TABLE thread_messages (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    thread_id TEXT NOT NULL,
    message_type INTEGER NOT NULL,
    user_id INTEGER NULL,
    user_name TEXT NOT NULL,
    body TEXT NOT NULL,
    is_anonymous INTEGER NOT NULL DEFAULT 0,
    dm_message_id INTEGER NULL,
    created_at TEXT NOT NULL
);
"""


class SQLiteCursor:
    """DB-API cursor speaking the MySQL ``%s`` paramstyle on top of sqlite3."""

    def __init__(self, conn: sqlite3.Connection, dictionary: bool = False):
        self._cursor = conn.cursor()
        self._dictionary = dictionary

    def execute(self, sql, params=()):
        self._cursor.execute(sql.replace("%s", "?"), params)

    @property
    def rowcount(self):
        return self._cursor.rowcount

    @property
    def lastrowid(self):
        return self._cursor.lastrowid

    def _convert(self, row):
        if row is None or not self._dictionary:
            return row
        return {col[0]: value for col, value in zip(self._cursor.description, row)}

    def fetchone(self):
        return self._convert(self._cursor.fetchone())

    def fetchall(self):
        return [self._convert(row) for row in self._cursor.fetchall()]

    def close(self):
        self._cursor.close()


class SQLiteConnection:
    def __init__(self):
        self._conn = sqlite3.connect(":memory:", check_same_thread=False)
        self._conn.executescript(SQLITE_SCHEMA)

    def cursor(self, dictionary=False):
        return SQLiteCursor(self._conn, dictionary=dictionary)

    def commit(self):
        self._conn.commit()

    def close(self):
        # The store closes every connection it checks out; keep the in-memory db alive.
        pass

    def query(self, sql, params=()):
        return self._conn.execute(sql, params).fetchall()


@pytest.fixture
def db():
    conn = SQLiteConnection()
    yield conn
    conn._conn.close()


@pytest.fixture
def clock():
    return Mock(return_value=FIXED_NOW)


@pytest.fixture
def store(db, clock):
    return TranscriptStore(connect=lambda: db, clock=clock)


@pytest.fixture
def thread(db):
    db.query(
        "INSERT INTO threads (id, status, user_id, user_name, channel_id, created_at) VALUES (?, ?, ?, ?, ?, ?)",
        ("thread-1", int(ThreadStatus.OPEN), 1001, "bob#0001", 5001, "2024-05-01 11:00:00"),
    )
    db.commit()
    return Thread(
        id="thread-1",
        status=ThreadStatus.OPEN,
        user_id=1001,
        user_name="bob#0001",
        channel_id=5001,
        created_at=datetime(2024, 5, 1, 11, 0, tzinfo=timezone.utc),
    )


class FakeAttachment:
    def __init__(self, id, filename, size=None, data=b"payload"):
        self.id = id
        self.filename = filename
        self.data = data
        self.size = len(data) if size is None else size
        self.save = AsyncMock(side_effect=self._save)
        self.read = AsyncMock(return_value=data)

    async def _save(self, path):
        path.write_bytes(self.data)
        return len(self.data)


@pytest.fixture
def make_attachment():
    return FakeAttachment


@pytest.fixture
def attachment_store(tmp_path):
    return AttachmentStore(tmp_path / "attachments", "https://modmail.example/")


class FakePlatform:
    """Records posts per channel; the DM channel is ``"dm"``."""

    def __init__(self):
        self.dm_channel = SimpleNamespace(id="dm")
        self.posts = []
        self._next_id = 9000
        self.resolve_direct_channel = AsyncMock(side_effect=self._resolve)
        self.post_message = AsyncMock(side_effect=self._post)
        self.delete_channel = AsyncMock()
        self.dm_error = None
        self.thread_channel_error = None

    async def _resolve(self, user_id):
        return self.dm_channel

    async def _post(self, channel, text, files=()):
        is_dm = channel is self.dm_channel
        if is_dm and self.dm_error:
            raise self.dm_error
        if not is_dm and self.thread_channel_error:
            raise self.thread_channel_error
        self._next_id += 1
        target = "dm" if is_dm else channel
        self.posts.append((target, text, list(files)))
        return SimpleNamespace(id=self._next_id)

    def posts_to(self, target):
        return [(text, files) for channel, text, files in self.posts if channel == target]


@pytest.fixture
def platform():
    return FakePlatform()


@pytest.fixture
def config():
    return RelayConfig(
        use_nicknames=False,
        thread_timestamps=False,
        relay_small_attachments_as_attachments=False,
        url="https://modmail.example/",
    )


@pytest.fixture
def make_relay(thread, platform, store, attachment_store, clock):
    def factory(config):
        return ThreadRelay(thread, platform, store, attachment_store, config, clock=clock)

    return factory


@pytest.fixture
def relay(make_relay, config):
    return make_relay(config)


def make_role(name, position, hoist=True):
    return SimpleNamespace(name=name, position=position, hoist=hoist)


def make_member(id=77, name="ann", nick=None, roles=()):
    return SimpleNamespace(id=id, name=name, nick=nick, roles=list(roles))


def make_user_message(id=3001, content="hi", embeds=(), attachments=(), author=None, created_at=FIXED_NOW):
    if author is None:
        author = SimpleNamespace(id=1001, name="bob", discriminator="0001")
    return SimpleNamespace(
        id=id,
        content=content,
        embeds=list(embeds),
        attachments=list(attachments),
        author=author,
        created_at=created_at,
    )
