"""
Status resolution for AccessRequests.

The checks run in a fixed order on every pass:

1. effective expiry is recomputed
2. an existing grant makes the request READY
3. a passed expiry makes it EXPIRED, even if step 2 just made it READY
4. READY and EXPIRED stop here
5. a recorded DENIED or ERROR is kept; only Expired can follow it
6. / 7. missing user or role is an ERROR
8. anything else (unset or PENDING) needs an access decision

Validation only runs while no grant exists. A grant that was already issued is
not revoked because the request's fields were cleared afterwards.
"""
import logging
from typing import Optional

from elevate.core.clock import Clock
from elevate.core.expiry import DEFAULT_DURATION_SECONDS, MAX_DURATION_SECONDS, expiry_for_request
from elevate.adapters.access_review import Decision
from elevate.models.request import AccessRequest, Grant, RequestStatus

logger = logging.getLogger(__name__)

USER_REQUIRED = "User must be specified"
ROLE_REQUIRED = "Target role must be specified"
DENIED_PREFIX = "Failed to authorize: "


class StatusResolver:
    def __init__(
        self,
        clock: Clock,
        default_duration: float = DEFAULT_DURATION_SECONDS,
        max_duration: float = MAX_DURATION_SECONDS,
    ):
        self.clock = clock
        self.default_duration = default_duration
        self.max_duration = max_duration

    def resolve(self, request: AccessRequest, grant: Optional[Grant]) -> bool:
        """
        Applies steps 1-7 to `request` in place.
        Returns True when the status is settled for this pass, False when an
        access decision is still needed (see apply_decision).
        """
        request.effective_expiry = expiry_for_request(request, self.default_duration, self.max_duration)

        if grant is not None:
            request.status = RequestStatus.READY
            request.status_reason = ""
            request.grant_ref = grant.name

        if request.is_expired(self.clock.now()):
            request.status = RequestStatus.EXPIRED
            request.status_reason = ""

        if request.status in (RequestStatus.EXPIRED, RequestStatus.READY):
            return True

        # A recorded decision is final until expiry
        if request.status in (RequestStatus.DENIED, RequestStatus.ERROR):
            return True

        if not request.principal:
            request.status = RequestStatus.ERROR
            request.status_reason = USER_REQUIRED
            return True

        if not request.target_role:
            request.status = RequestStatus.ERROR
            request.status_reason = ROLE_REQUIRED
            return True

        return False

    def apply_decision(self, request: AccessRequest, decision: Decision):
        """Folds the oracle's answer into the request."""
        if decision.is_negative:
            request.status = RequestStatus.DENIED
            request.status_reason = f"{DENIED_PREFIX}{decision.reason}"
            return

        request.status = RequestStatus.PENDING
        request.status_reason = ""
