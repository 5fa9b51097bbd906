from typing import Optional

CHANNEL_NOT_FOUND_CODE = 10003


class DeliveryError(Exception):
    """A message could not be delivered to the chat platform."""

    def __init__(self, message: str, code: Optional[int] = None):
        super().__init__(message)
        self.code = code


class UserUnreachableError(DeliveryError):
    pass


class ChannelNotFoundError(DeliveryError):
    def __init__(self, message: str = "Unknown Channel"):
        super().__init__(message, code=CHANNEL_NOT_FOUND_CODE)


class PersistenceError(Exception):
    pass


class ThreadClosedError(Exception):
    pass
