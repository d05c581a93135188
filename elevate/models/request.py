from dataclasses import dataclass
from enum import Enum
from typing import Optional
import uuid


class RequestStatus(str, Enum):
    """
    Lifecycle states of an AccessRequest.
    An unset status (None) is evaluated exactly like PENDING.
    EXPIRED is terminal.
    """
    PENDING = "Pending"
    DENIED = "Denied"
    ERROR = "Error"
    READY = "Ready"
    EXPIRED = "Expired"


@dataclass
class AccessRequest:
    """
    Represents a request for temporary elevated access.
    This mirrors the item layout of the requests DynamoDB table.

    Attributes:
        name: Unique name of the request (table key).
        principal: The user asking to be elevated.
        target_role: The role the user wants to assume.
        reason: Free-text justification, informational only.
        requested_expiry: Unix timestamp the user asked for, or None for the default.
        uid: Opaque id assigned on creation. Grants point back to it.
        created_at: Unix timestamp of the first observation. Never mutated.
        status: Current lifecycle state, None until first evaluated.
        status_reason: Human-readable explanation of the status.
        grant_ref: Name of the materialized grant. Only set while READY.
        effective_expiry: Computed revocation time, refreshed every pass.
    """
    name: str
    principal: str
    target_role: str
    reason: str = ""
    requested_expiry: Optional[float] = None
    uid: str = ""
    created_at: float = 0.0
    status: Optional[RequestStatus] = None
    status_reason: str = ""
    grant_ref: str = ""
    effective_expiry: Optional[float] = None

    @staticmethod
    def create_uid() -> str:
        """Generates a unique id for the request."""
        return str(uuid.uuid4())

    def is_expired(self, now: float) -> bool:
        """Checks if `now` has passed the effective expiry."""
        return self.effective_expiry is not None and now > self.effective_expiry


@dataclass
class OwnerReference:
    """Back-reference from a grant to the request that created it."""
    kind: str
    name: str
    uid: str
    controller: bool = True


@dataclass
class Grant:
    """
    The materialized role binding.
    Owned by exactly one AccessRequest; if the owner disappears the janitor removes it.
    """
    name: str
    subject: str
    role_ref: str
    owner: Optional[OwnerReference] = None
    created_at: float = 0.0
