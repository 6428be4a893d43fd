"""
Errors raised by the persistence layer.

ValidationError subclasses carry a message that is safe to show to an
administrator as-is.
"""


class StoreError(Exception):
    """A read or write against the store failed."""

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(message)
        self.cause = cause


class RecordNotFoundError(StoreError):
    """An expected singleton row is missing."""


class ValidationError(StoreError):
    """Input was rejected before (or by) the store."""


class InvalidChannelIdError(ValidationError):
    def __init__(self, channel_id: str):
        super().__init__("Invalid channel ID. Must be 18-19 digits (Discord snowflake format).")
        self.channel_id = channel_id


class DuplicateChannelError(ValidationError):
    def __init__(self, channel_id: str, cause: Exception | None = None):
        super().__init__("This channel ID already exists.", cause=cause)
        self.channel_id = channel_id
