"""Exceptions raised by the tracker services.

Routers translate these into HTTP responses; the updater absorbs
UpstreamUnavailableError per platform and raises ProfileRefreshError when
every fetch of a tracker raised.
"""


class TrackerNotFoundError(Exception):
    """Raised when a user has no tracker (or no active tracker)."""

    def __init__(self, user_id) -> None:
        self.user_id = user_id
        super().__init__(f"No tracker found for user {user_id}")


class RefreshRateLimitedError(Exception):
    """Raised when a manual refresh is attempted inside the cooldown window."""

    def __init__(self, hours_remaining: int) -> None:
        self.hours_remaining = hours_remaining
        super().__init__(
            "You can only refresh your tracker once every 24 hours. "
            f"Please try again in {hours_remaining} hour(s)."
        )


class UpstreamUnavailableError(Exception):
    """A single platform fetch failed (timeout, non-2xx, unparseable body)."""

    def __init__(self, platform: str, reason: str) -> None:
        self.platform = platform
        self.reason = reason
        super().__init__(f"{platform} unavailable: {reason}")


class ProfileRefreshError(Exception):
    """Every enabled platform of a tracker raised; nothing was stored."""

    def __init__(self, user_id, failures: dict[str, str]) -> None:
        self.user_id = user_id
        self.failures = failures
        super().__init__(
            f"Refresh failed for user {user_id}: " + ", ".join(sorted(failures))
        )


class EditRequestError(Exception):
    """Edit request cannot be created or reviewed in its current state."""


class EditRequestNotFoundError(Exception):
    pass
