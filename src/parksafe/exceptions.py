"""Custom exception hierarchy for parksafe."""

from __future__ import annotations


class ParkSafeError(Exception):
    """Base exception for all parksafe errors."""


class ParkSafeConfigError(ParkSafeError):
    """Invalid or missing configuration."""


class ParkSafeTransportError(ParkSafeError):
    """HTTP-level failure (network, timeout, invalid JSON)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        endpoint: str = "",
    ) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(message)


class ParkSafeApiError(ParkSafeError):
    """Backend rejected the request (application-level error)."""

    def __init__(
        self,
        message: str,
        *,
        code: str = "",
        endpoint: str = "",
    ) -> None:
        self.code = code
        self.endpoint = endpoint
        super().__init__(message)


class ParkSafeAuthenticationError(ParkSafeApiError):
    """Sign-in failed or no authenticated user is available."""


class ParkSafeSessionExpiredError(ParkSafeAuthenticationError):
    """Access token rejected by the backend.

    The client catches this internally to refresh the session once and
    retry the call.
    """


class ParkSafeDuplicateAccountError(ParkSafeAuthenticationError):
    """Sign-up attempted for an email that already has an account."""


class ParkSafePermissionError(ParkSafeApiError):
    """The authenticated user is not allowed to perform the request.

    Raised for privileged endpoints (e.g. the admin user listing) and
    row-level security rejections.
    """


class ParkSafeNotFoundError(ParkSafeApiError):
    """A single-row lookup matched nothing."""


class LocationUnavailableError(ParkSafeError):
    """Geolocation capability denied or unsupported.

    This is terminal for the producer that hit it: no automatic retry.
    """

    def __init__(self, message: str, *, reason: str = "unavailable") -> None:
        self.reason = reason
        super().__init__(message)


class BroadcastError(ParkSafeError):
    """An emergency broadcast did not complete both of its writes.

    ``message_written`` / ``alert_written`` tell which half landed; no
    compensating delete is attempted.
    """

    def __init__(self, message: str, *, message_written: bool, alert_written: bool) -> None:
        self.message_written = message_written
        self.alert_written = alert_written
        super().__init__(message)


class MembershipProtectedError(ParkSafeError):
    """Attempt to remove a group ``admin`` member on their behalf."""
