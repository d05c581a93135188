from typing import Optional

from elevate.models.request import AccessRequest

DEFAULT_DURATION_SECONDS = 10 * 60
MAX_DURATION_SECONDS = 60 * 60


def compute_expiry(start: float, requested: Optional[float], default_duration: float, max_duration: float) -> float:
    """
    Returns the instant at which access must be revoked.

    With no requested expiry the default duration applies. The duration is
    capped at `max_duration` but never floored: a requested expiry before
    `start` yields an expiry in the past, which expires the request immediately.
    """
    if requested is None:
        duration = default_duration
    else:
        duration = requested - start
    if duration > max_duration:
        duration = max_duration
    return start + duration


def expiry_for_request(
    request: AccessRequest,
    default_duration: float = DEFAULT_DURATION_SECONDS,
    max_duration: float = MAX_DURATION_SECONDS,
) -> float:
    return compute_expiry(request.created_at, request.requested_expiry, default_duration, max_duration)
