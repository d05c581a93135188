"""
Unit tests for the status resolution order.
"""
import pytest

from elevate.adapters.access_review import Decision
from elevate.core.clock import FixedClock
from elevate.core.expiry import DEFAULT_DURATION_SECONDS
from elevate.core.resolver import StatusResolver
from elevate.models.request import AccessRequest, Grant, RequestStatus

CREATED_AT = 1760000000.0
EXPIRES = CREATED_AT + DEFAULT_DURATION_SECONDS
GRANT = Grant(name="sudo-crb", subject="user", role_ref="role")


def _request(principal="user", role="role", status=None):
    return AccessRequest(name="req", principal=principal, target_role=role,
                         created_at=CREATED_AT, status=status)


def _resolver(now=CREATED_AT):
    return StatusResolver(FixedClock(now))


@pytest.mark.parametrize(
    "grant, principal, role, now, status, reason, grant_ref, settled",
    [
        (GRANT, "", "", CREATED_AT, RequestStatus.READY, "", "sudo-crb", True),
        (GRANT, "", "", EXPIRES + 1, RequestStatus.EXPIRED, "", "sudo-crb", True),
        (None, "", "", EXPIRES + 1, RequestStatus.EXPIRED, "", "", True),
        # Valid but not yet authorized: left unset for the access review
        (None, "user", "role", CREATED_AT, None, "", "", False),
        (None, "", "", CREATED_AT, RequestStatus.ERROR, "User must be specified", "", True),
        (None, "user", "", CREATED_AT, RequestStatus.ERROR, "Target role must be specified", "", True),
    ],
    ids=["with-grant", "with-grant-expired", "without-grant-expired", "without-grant-valid",
         "missing-user", "missing-role"],
)
def test_resolve(grant, principal, role, now, status, reason, grant_ref, settled):
    req = _request(principal, role)

    assert _resolver(now).resolve(req, grant) is settled

    assert req.status == status
    assert req.status_reason == reason
    assert req.grant_ref == grant_ref
    assert req.effective_expiry == EXPIRES


def test_expiry_is_refreshed_regardless_of_status():
    req = _request(status=RequestStatus.DENIED)
    req.effective_expiry = 0.0
    _resolver().resolve(req, None)
    assert req.effective_expiry == EXPIRES


def test_expiry_dominates_existing_grant():
    req = _request()
    _resolver(EXPIRES + 1).resolve(req, GRANT)
    assert req.status is RequestStatus.EXPIRED


def test_expiry_is_exclusive_at_the_boundary():
    req = _request()
    _resolver(EXPIRES).resolve(req, GRANT)
    assert req.status is RequestStatus.READY


def test_existing_grant_skips_validation():
    """Issued grants are not invalidated when fields are cleared later."""
    req = _request(principal="", role="")
    _resolver().resolve(req, GRANT)
    assert req.status is RequestStatus.READY


def test_resolution_is_idempotent():
    resolver = _resolver()
    for grant in (GRANT, None):
        req = _request(principal="")
        resolver.resolve(req, grant)
        first = (req.status, req.status_reason, req.grant_ref, req.effective_expiry)
        resolver.resolve(req, grant)
        assert (req.status, req.status_reason, req.grant_ref, req.effective_expiry) == first


def test_expired_is_never_left():
    req = _request(status=RequestStatus.EXPIRED)
    _resolver(EXPIRES + 1).resolve(req, GRANT)
    assert req.status is RequestStatus.EXPIRED


class TestApplyDecision:
    @pytest.mark.parametrize(
        "decision, status, reason",
        [
            (Decision(allowed=False, denied=False, reason="not allowed"),
             RequestStatus.DENIED, "Failed to authorize: not allowed"),
            (Decision(allowed=True, denied=True, reason="denied"),
             RequestStatus.DENIED, "Failed to authorize: denied"),
            (Decision(allowed=True, denied=False, reason="allowed"),
             RequestStatus.PENDING, ""),
        ],
        ids=["not-allowed", "denied", "allowed"],
    )
    def test_apply_decision(self, decision, status, reason):
        req = _request()
        _resolver().apply_decision(req, decision)

        assert req.status == status
        assert req.status_reason == reason
        assert req.grant_ref == ""
        assert req.effective_expiry is None


@pytest.mark.parametrize("status, reason", [
    (RequestStatus.DENIED, "Failed to authorize: not allowed"),
    (RequestStatus.ERROR, "User must be specified"),
])
def test_recorded_decision_is_settled(status, reason):
    req = _request(status=status)
    req.status_reason = reason

    assert _resolver().resolve(req, None) is True
    assert req.status is status
    assert req.status_reason == reason


def test_pending_needs_a_fresh_decision():
    req = _request(status=RequestStatus.PENDING)
    assert _resolver().resolve(req, None) is False


def test_is_expired():
    req = _request()
    assert not req.is_expired(CREATED_AT)
    req.effective_expiry = EXPIRES
    assert not req.is_expired(EXPIRES)
    assert req.is_expired(EXPIRES + 1)
