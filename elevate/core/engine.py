import yaml
import hashlib
import datetime
import os
import re
from dataclasses import dataclass, field
from typing import List, Optional

from elevate.core.expiry import DEFAULT_DURATION_SECONDS, MAX_DURATION_SECONDS

# 1. Define the Engine Version (Semantic Versioning)
VERSION = "0.2.0"


@dataclass
class ReviewResult:
    """
    The answer to one access review: may `user` perform `verb` on a resource?
    Shaped like an authorization oracle response (allowed / denied / reason)
    plus audit metadata.
    """
    allowed: bool
    denied: bool = False
    reason: str = ""

    # --- Integrity Metadata ---
    rule_id: Optional[str] = None
    policy_hash: str = ""
    engine_version: str = ""
    evaluated_at: str = field(default_factory=lambda: datetime.datetime.now(datetime.timezone.utc).isoformat())
    rules_processed: int = 0


class PolicyEngine:
    """
    The 'Pure' authorization oracle.
    Answers access reviews against YAML rules without talking to AWS.
    """
    def __init__(self, config_path: str):
        """
        Loads and parses the central security policy.
        Calculates a SHA256 hash of the file for audit integrity.
        """
        with open(config_path, 'r') as file:
            raw_content = file.read()

        # We swap ${VAR} for the real value before parsing YAML
        content = self._expand_env_vars(raw_content)

        # Hash the expanded content so the audit trail reflects the values actually used
        self.policy_hash = hashlib.sha256(content.encode('utf-8')).hexdigest()

        self.config = yaml.safe_load(content) or {}

    def _expand_env_vars(self, raw_yaml: str) -> str:
        """
        Replaces ${VAR_NAME} with the value from os.environ.
        Raises an error if the variable is missing to prevent security gaps.
        """
        pattern = re.compile(r'\$\{([A-Z0-9_]+)\}')

        def replace(match):
            var_name = match.group(1)
            val = os.environ.get(var_name)
            if not val:
                # Fail Fast: Do not run with missing config
                raise ValueError(f"CRITICAL: Policy config references ${{ {var_name} }}, but environment variable is missing.")
            return val

        return pattern.sub(replace, raw_yaml)

    # --- SETTINGS ---

    @property
    def default_duration_seconds(self) -> float:
        minutes = self.config.get("settings", {}).get("default_duration_minutes")
        return DEFAULT_DURATION_SECONDS if minutes is None else float(minutes) * 60

    @property
    def max_duration_seconds(self) -> float:
        minutes = self.config.get("settings", {}).get("max_duration_minutes")
        return MAX_DURATION_SECONDS if minutes is None else float(minutes) * 60

    # --- EVALUATION ---

    def _get_subject_names(self, user: str) -> List[str]:
        """Maps a user to the named groups it belongs to (sre, platform_admins)."""
        groups = self.config.get('subjects', {}).get('groups', {})
        return [name for name, data in groups.items() if user in (data or {}).get('members', [])]

    @staticmethod
    def _matches(allowed: list, value: str) -> bool:
        return "*" in allowed or value in allowed

    def review(self, user: str, verb: str, resource_kind: str, resource_name: str) -> ReviewResult:
        """
        Main Decision Loop. Checks rules in order; the first match decides.
        No match leaves the request not allowed, but not explicitly denied.
        """
        subject_names = self._get_subject_names(user)
        if not subject_names:
            return ReviewResult(
                allowed=False,
                reason="User not in authorized groups.",
                policy_hash=self.policy_hash,
                engine_version=VERSION,
            )

        rules = self.config.get("rules", [])
        rules_checked_count = 0

        for rule in rules:
            rules_checked_count += 1
            if not any(name in rule.get("subjects", []) for name in subject_names):
                continue
            if not self._matches(rule.get("verbs", ["sudo"]), verb):
                continue
            if not self._matches(rule.get("resources", ["clusterroles"]), resource_kind):
                continue
            if not self._matches(rule.get("roles", []), resource_name):
                continue

            # --- MATCH CONFIRMED ---
            if rule.get("effect", "").lower() == "deny":
                return ReviewResult(
                    allowed=False,
                    denied=True,
                    reason=rule.get("description", "Denied by matching rule."),
                    rule_id=rule.get("id"),
                    policy_hash=self.policy_hash,
                    engine_version=VERSION,
                    rules_processed=rules_checked_count,
                )

            return ReviewResult(
                allowed=True,
                reason=rule.get("description", "Matched policy."),
                rule_id=rule.get("id"),
                policy_hash=self.policy_hash,
                engine_version=VERSION,
                rules_processed=rules_checked_count,
            )

        # PRINCIPLE: Default Deny (Fail-Safe)
        return ReviewResult(
            allowed=False,
            reason=f"no policy rule permits {user} to {verb} {resource_kind}/{resource_name}",
            policy_hash=self.policy_hash,
            engine_version=VERSION,
            rules_processed=rules_checked_count,
        )
