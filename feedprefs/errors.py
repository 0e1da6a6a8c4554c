"""
Error types for the content preference engine.

InvalidTopic is raised to the immediate caller on malformed input.
StoreUnavailable is raised by the preference store on I/O failure and is
reported, never raised, on the registry's background save path.
"""

from typing import Optional


class PreferenceEngineError(Exception):
    """Base class for all engine errors."""


class InvalidTopic(PreferenceEngineError, ValueError):
    """Topic text is empty, has no alphanumeric character, or is too long."""

    def __init__(self, raw: object, reason: str):
        self.raw = raw
        self.reason = reason
        super().__init__(f"Invalid topic {raw!r}: {reason}")


class StoreUnavailable(PreferenceEngineError, IOError):
    """The preference store could not read or write a profile."""

    def __init__(self, profile_id: str, message: str, cause: Optional[BaseException] = None):
        self.profile_id = profile_id
        self.cause = cause
        super().__init__(f"Preference store unavailable for profile '{profile_id}': {message}")
