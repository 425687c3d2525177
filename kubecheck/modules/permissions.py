"""RBAC permission verification."""
import logging
from typing import Iterable, List

from .errors import QueryError
from .models import CheckResult, PolicyRule

logger = logging.getLogger("kubecheck.permissions")

CATEGORY = "permission"


class PermissionVerifier:
    """Checks every (group, resource, verb) a set of policy rules grants."""

    def __init__(self, provider, namespace: str):
        self.provider = provider
        self.namespace = namespace

    def verify(self, rules: Iterable[PolicyRule]) -> List[CheckResult]:
        """Return one result per permission tuple, in rule order."""
        results = []
        for rule in rules:
            for group, resource, verb in rule.tuples():
                results.append(self.check(group, resource, verb))
        return results

    def check(self, group: str, resource: str, verb: str) -> CheckResult:
        subject = f"{verb} {resource} in group '{group}'"
        try:
            allowed = self.provider.can_i(self.namespace, resource, verb, group)
        except QueryError as e:
            return CheckResult(subject, CATEGORY, False, f"error checking permission for {subject}, err: {e}")

        if not allowed:
            return CheckResult(subject, CATEGORY, False, f"can't {subject}")
        return CheckResult(subject, CATEGORY, True, f"can {subject}")
