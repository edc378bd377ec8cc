"""
Exception types shared by the server and client sides.
"""


class PrayerBoardError(Exception):
    """Base class for all prayerboard errors."""


class TimetableError(PrayerBoardError):
    """The timetable source could not be read or parsed."""


class InvalidSubscriptionError(PrayerBoardError):
    """A push subscription descriptor is malformed or has no endpoint."""


class PushConfigError(PrayerBoardError):
    """VAPID key material is missing from configuration."""


class UnauthorizedError(PrayerBoardError):
    """The scheduler credential is missing or does not match."""
