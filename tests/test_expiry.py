"""
Unit tests for effective expiry computation.
"""
import pytest

from elevate.core.expiry import (
    compute_expiry,
    expiry_for_request,
    DEFAULT_DURATION_SECONDS,
    MAX_DURATION_SECONDS,
)
from elevate.models.request import AccessRequest

NOW = 1760000000.0
MINUTE = 60.0
HOUR = 3600.0


@pytest.mark.parametrize(
    "requested, default, maximum, expected",
    [
        (None, MINUTE, HOUR, NOW + MINUTE),                     # no requested expiry
        (None, HOUR, MINUTE, NOW + MINUTE),                     # default larger than max
        (NOW + HOUR, MINUTE, 2 * HOUR, NOW + HOUR),             # requested is used
        (NOW + HOUR, MINUTE, 2 * MINUTE, NOW + 2 * MINUTE),     # requested capped at max
        (NOW - HOUR, MINUTE, 2 * MINUTE, NOW - HOUR),           # requested before start
    ],
    ids=["no-requested", "def-over-max", "uses-requested", "requested-over-max", "requested-before-start"],
)
def test_compute_expiry(requested, default, maximum, expected):
    assert compute_expiry(NOW, requested, default, maximum) == expected


def test_expiry_never_exceeds_max():
    for requested in (None, NOW, NOW + 10 * HOUR, NOW - HOUR):
        assert compute_expiry(NOW, requested, 5 * HOUR, HOUR) <= NOW + HOUR


def test_past_requested_expiry_is_not_floored():
    assert compute_expiry(NOW, NOW - 1, MINUTE, HOUR) < NOW


class TestExpiryForRequest:
    def _request(self, requested=None):
        return AccessRequest(name="req", principal="user", target_role="role",
                             created_at=NOW, requested_expiry=requested)

    def test_defaults_apply_without_requested_expiry(self):
        assert expiry_for_request(self._request()) == NOW + DEFAULT_DURATION_SECONDS

    def test_requested_expiry_within_max(self):
        assert expiry_for_request(self._request(NOW + 30 * MINUTE)) == NOW + 30 * MINUTE

    def test_requested_expiry_capped(self):
        assert expiry_for_request(self._request(NOW + 5 * HOUR)) == NOW + MAX_DURATION_SECONDS
