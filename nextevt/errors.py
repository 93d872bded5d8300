"""Errors raised while fetching and vetting calendar events."""


class NextEvtError(Exception):
    """Base class for nextevt errors."""


class AccessDenied(NextEvtError):
    """Calendar permission was never granted or has been revoked."""

    def __init__(self, message: str = "Calendar permission not granted"):
        super().__init__(message)


class TransientFetchFailure(NextEvtError):
    """The calendar store could not be read this time; worth retrying."""


class MalformedEvent(NextEvtError, ValueError):
    """An event is unusable: no identifier, or it ends before it starts."""

    def __init__(self, identifier: str, reason: str):
        self.identifier = identifier
        self.reason     = reason
        super().__init__(f"{identifier or '<no identifier>'}: {reason}")
