import logging
from dataclasses import dataclass
from typing import Optional

from elevate.adapters.access_review import AccessDecisionClient
from elevate.adapters.state_store import RequestStore, NotFoundError, AlreadyExistsError
from elevate.core.clock import Clock
from elevate.core.grants import GrantManager
from elevate.core.resolver import StatusResolver
from elevate.models.request import AccessRequest, RequestStatus

# Delay before re-reading a binding we were told already exists
CACHE_LAG_REQUEUE_SECONDS = 1.0


@dataclass
class ReconcileResult:
    """
    What the scheduler should do next.
    Default: done. requeue=True with no delay: again immediately.
    """
    requeue: bool = False
    requeue_after: Optional[float] = None

    @property
    def done(self) -> bool:
        return not self.requeue and self.requeue_after is None


class ReconcileWorkflow:
    """Runs one reconcile pass for a single AccessRequest."""

    def __init__(
        self,
        requests: RequestStore,
        grants: GrantManager,
        access: AccessDecisionClient,
        resolver: StatusResolver,
        clock: Clock,
    ):
        self.requests = requests
        self.grants = grants
        self.access = access
        self.resolver = resolver
        self.clock = clock
        self.logger = logging.getLogger("elevate.reconciler")

    def reconcile(self, name: str) -> ReconcileResult:
        """
        Orchestrates lookup, resolution, persistence and the side effect.
        Infrastructure errors propagate untouched so the pass is retried;
        nothing is persisted for a pass that fails before step 5.
        """
        # 1. Load
        try:
            request = self.requests.get(name)
        except NotFoundError:
            # Deleted requests are not re-processed; a new notification will follow if it comes back
            self.logger.info(f"AccessRequest {name} not found, nothing to do")
            return ReconcileResult()

        # 2-4. Resolve
        grant = self.grants.find_grant(request)
        if not self.resolver.resolve(request, grant):
            decision = self.access.check_access(request.principal, request.target_role)
            self.resolver.apply_decision(request, decision)

        # 5. Persist
        try:
            self.requests.update_status(request)
        except NotFoundError:
            self.logger.info(f"AccessRequest {name} deleted during reconcile, stopping")
            return ReconcileResult()

        self.logger.info(f"AccessRequest {name}: status={request.status.value} reason={request.status_reason!r}")

        # 6. Act
        return self._dispatch(request)

    def _dispatch(self, request: AccessRequest) -> ReconcileResult:
        status = request.status
        if status is RequestStatus.PENDING:
            return self.on_pending(request)
        if status is RequestStatus.READY:
            return self.on_ready(request)
        if status is RequestStatus.EXPIRED:
            return self.on_expired(request)
        if status in (RequestStatus.DENIED, RequestStatus.ERROR):
            return ReconcileResult()
        raise ValueError(f"Unhandled status {status!r} for {request.name}")

    def on_pending(self, request: AccessRequest) -> ReconcileResult:
        """
        Creates the binding and waits for expiry. The request stays Pending with
        no grant_ref until a later pass observes the binding; with SQS that pass
        comes at most 15 minutes later (the SQS delay cap), or sooner on any change.
        """
        try:
            grant = self.grants.create_grant(request)
        except AlreadyExistsError:
            # The binding exists but our read did not see it yet. Look again shortly.
            self.logger.warning(f"Binding for {request.name} already exists, requeueing")
            return ReconcileResult(requeue_after=CACHE_LAG_REQUEUE_SECONDS)

        self.logger.info(f"Created binding {grant.name} for {request.name}")
        return self._until_expiry(request)

    def on_ready(self, request: AccessRequest) -> ReconcileResult:
        return self._until_expiry(request)

    def on_expired(self, request: AccessRequest) -> ReconcileResult:
        if request.grant_ref:
            self.logger.info(f"AccessRequest {request.name} expired, revoking {request.grant_ref}")
            self.grants.delete_grant(request.grant_ref)
        return ReconcileResult()

    def _until_expiry(self, request: AccessRequest) -> ReconcileResult:
        return ReconcileResult(requeue_after=request.effective_expiry - self.clock.now())
