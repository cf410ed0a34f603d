from __future__ import annotations


class ChatCoreError(Exception):
    """Base class for failures surfaced by the chat core."""


class InvalidArgument(ChatCoreError):
    pass


class SessionBusy(ChatCoreError):
    pass


class TransportFailure(ChatCoreError):
    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class AuthenticationFailure(TransportFailure):
    pass


class StreamInterrupted(ChatCoreError):
    pass


class StorageUnavailable(ChatCoreError):
    pass
