"""
Input validation and admission checks for AccessRequests.
Admission runs in front of the request store and rejects requests synchronously;
the reconciler re-checks the same fields on its own.
"""
import re
import math
from dataclasses import dataclass

from elevate.models.request import AccessRequest

CREATE = "CREATE"
UPDATE = "UPDATE"


@dataclass
class AdmissionResponse:
    allowed: bool
    reason: str = ""

    @classmethod
    def allow(cls) -> "AdmissionResponse":
        return cls(allowed=True)

    @classmethod
    def deny(cls, reason: str) -> "AdmissionResponse":
        return cls(allowed=False, reason=reason)


def validate_fields(request: AccessRequest) -> AdmissionResponse:
    """Rejects requests with no user or no role."""
    if not request.principal:
        return AdmissionResponse.deny("User must be set")
    if not request.target_role:
        return AdmissionResponse.deny("Role must be set")
    return AdmissionResponse.allow()


def validate_access(request: AccessRequest, caller: str) -> AdmissionResponse:
    """
    A caller may only ask for elevation for themselves.

    Args:
        request: The request being submitted
        caller: Authenticated identity of whoever submits it
    """
    if request.principal != caller:
        return AdmissionResponse.deny(f"{caller} cannot create a SudoRequest for {request.principal}")
    return AdmissionResponse.allow()


def admit(request: AccessRequest, caller: str, operation: str) -> AdmissionResponse:
    """
    Admission entry point. Only CREATE and UPDATE are checked; every other
    operation (DELETE, CONNECT) is let through.
    """
    if operation.upper() not in (CREATE, UPDATE):
        return AdmissionResponse.allow()

    resp = validate_fields(request)
    if not resp.allowed:
        return resp
    return validate_access(request, caller)


def validate_request_name(name: str) -> str:
    """
    Validates a request name. It ends up inside the binding name, so it is
    restricted to lowercase DNS-label characters.

    Raises:
        ValueError: If the name is empty or malformed
    """
    if not name:
        raise ValueError("Request name cannot be empty")

    if not re.match(r'^[a-z0-9]([-a-z0-9.]{0,61}[a-z0-9])?$', name):
        raise ValueError(f"Invalid request name. Expected lowercase alphanumerics, '-' or '.', got: {name}")

    return name


def validate_duration(duration: float) -> float:
    """
    Validates a requested duration in minutes.
    Values above the policy maximum are allowed here; the reconciler caps them.

    Raises:
        ValueError: If duration is not a usable number
    """
    if math.isnan(duration) or math.isinf(duration):
        raise ValueError(f"Duration must be a valid number, got: {duration}")

    if duration <= 0:
        raise ValueError(f"Duration must be positive, got: {duration}")

    return duration
