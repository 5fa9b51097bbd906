from dataclasses import dataclass
from dotenv import load_dotenv
from pathlib import Path
import os

# Load environment variables
PROJECT_ROOT = Path(__file__).resolve().parent.parent
DOTENV_PATH = PROJECT_ROOT / '.env'
load_dotenv(dotenv_path=DOTENV_PATH)


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.split('#')[0].strip().strip('"').strip("'").lower() in ('1', 'true', 'yes', 'on')


DISCORD_BOT_TOKEN = os.getenv('DISCORD_BOT_TOKEN')
MYSQL_HOST = os.getenv('MYSQL_HOST')
MYSQL_USER = os.getenv('MYSQL_USER')
MYSQL_PASSWORD = os.getenv('MYSQL_PASSWORD')
MYSQL_DATABASE = os.getenv('MYSQL_DATABASE')
RAW_MYSQL_PORT = os.getenv('MYSQL_PORT', '3306')
MYSQL_PORT = int(RAW_MYSQL_PORT.split('#')[0].strip().strip('"').strip("'"))

USE_NICKNAMES = _env_flag('USE_NICKNAMES')
THREAD_TIMESTAMPS = _env_flag('THREAD_TIMESTAMPS')
RELAY_SMALL_ATTACHMENTS_AS_ATTACHMENTS = _env_flag('RELAY_SMALL_ATTACHMENTS_AS_ATTACHMENTS')
URL = os.getenv('URL', 'http://localhost:8890')
ATTACHMENT_DIR = Path(os.getenv('ATTACHMENT_DIR', str(PROJECT_ROOT / 'attachments')))


@dataclass(frozen=True)
class RelayConfig:
    use_nicknames: bool = False
    thread_timestamps: bool = False
    relay_small_attachments_as_attachments: bool = False
    url: str = 'http://localhost:8890'

    @classmethod
    def from_settings(cls) -> "RelayConfig":
        return cls(
            use_nicknames=USE_NICKNAMES,
            thread_timestamps=THREAD_TIMESTAMPS,
            relay_small_attachments_as_attachments=RELAY_SMALL_ATTACHMENTS_AS_ATTACHMENTS,
            url=URL,
        )
