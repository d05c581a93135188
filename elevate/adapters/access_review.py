import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)

SUDO_VERB = "sudo"
ROLE_RESOURCE_KIND = "clusterroles"


class OracleError(Exception):
    """Raised when the authorization oracle cannot be reached or fails to answer."""
    pass


@dataclass
class Decision:
    allowed: bool
    denied: bool
    reason: str = ""

    @property
    def is_negative(self) -> bool:
        return not self.allowed or self.denied


class AccessDecisionClient:
    """
    Asks the authorization oracle whether a user may assume a role.
    One query per call: no retries and no caching, the scheduler owns both.
    """
    def __init__(self, oracle):
        # Anything with review(user, verb, resource_kind, resource_name)
        self.oracle = oracle

    def check_access(self, principal: str, target_role: str) -> Decision:
        try:
            answer = self.oracle.review(principal, SUDO_VERB, ROLE_RESOURCE_KIND, target_role)
        except Exception as e:
            logger.error(f"Access review failed for {principal} -> {target_role}: {type(e).__name__}")
            raise OracleError(f"Unable to review access for {principal}: {e}")

        decision = Decision(
            allowed=bool(_field(answer, "allowed")),
            denied=bool(_field(answer, "denied")),
            reason=_field(answer, "reason") or "",
        )
        logger.debug(f"Access review for {principal} -> {target_role}: allowed={decision.allowed} denied={decision.denied}")
        return decision


def _field(answer, key: str):
    """Supports both dict answers and attribute-style result objects."""
    if isinstance(answer, dict):
        return answer.get(key)
    return getattr(answer, key, None)
