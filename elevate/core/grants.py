import datetime
import logging
from typing import Optional

from elevate.models.request import AccessRequest, Grant, OwnerReference
from elevate.adapters.binding_store import BindingStore
from elevate.adapters.state_store import NotFoundError

REQUEST_KIND = "SudoRequest"
NAME_TIME_FORMAT = "%Y.%m.%d.%H.%M.%S"

logger = logging.getLogger(__name__)


def grant_name(request: AccessRequest) -> str:
    """
    Deterministic binding name for a request.
    Stable across reconciles of the same request; a request recreated under the
    same name at a different second gets a fresh binding.
    """
    created = datetime.datetime.fromtimestamp(request.created_at, datetime.timezone.utc)
    return f"sudo-{request.principal}-{request.target_role}-{request.name}-{created.strftime(NAME_TIME_FORMAT)}"


class GrantManager:
    """Creates, finds and deletes the binding that materializes a request."""

    def __init__(self, store: BindingStore):
        self.store = store

    def name_for(self, request: AccessRequest) -> str:
        return grant_name(request)

    def find_grant(self, request: AccessRequest) -> Optional[Grant]:
        """Looks up the request's binding. Returns None if it does not exist."""
        try:
            return self.store.get(self.name_for(request))
        except NotFoundError:
            return None

    def build_grant(self, request: AccessRequest) -> Grant:
        return Grant(
            name=self.name_for(request),
            subject=request.principal,
            role_ref=request.target_role,
            owner=OwnerReference(kind=REQUEST_KIND, name=request.name, uid=request.uid),
        )

    def create_grant(self, request: AccessRequest) -> Grant:
        """
        Writes the binding for `request`.
        AlreadyExistsError propagates: the caller decides whether that means
        "retry shortly" or plain success (see ignore_already_exists).
        """
        grant = self.build_grant(request)
        return self.store.create(grant)

    def delete_grant(self, name: str):
        """Deletes a binding by name. Already gone counts as success."""
        try:
            self.store.delete(name)
        except NotFoundError:
            logger.warning(f"Binding {name} already removed or not found. Continuing...")
