"""Existence checks for the objects an installation is expected to own."""
import logging
from typing import Callable, List

from .errors import QueryError
from .models import CheckResult, PermissionScope, PodProbe
from .provider import is_pod_running

logger = logging.getLogger("kubecheck.resources")


class ResourceExistenceChecker:
    """Verifies a fixed, ordered catalog of cluster objects.

    Every entry is evaluated even when an earlier one fails, so a missing
    namespace still reports on everything that should live in it.
    """

    def __init__(self, provider, config):
        self.provider = provider
        self.config = config

    def check_all(self, namespace: str) -> List[CheckResult]:
        names = self.config.names
        provider = self.provider

        results = [
            self._exists(namespace, "namespace", lambda: provider.does_namespace_exist(namespace)),
            self._exists(names.config_map, "config map",
                         lambda: provider.does_config_map_exist(namespace, names.config_map)),
            self._exists(names.service_account, "service account",
                         lambda: provider.does_service_account_exist(namespace, names.service_account)),
        ]

        if self.config.scope == PermissionScope.NAMESPACED:
            results += [
                self._exists(names.role, "role",
                             lambda: provider.does_role_exist(namespace, names.role)),
                self._exists(names.role_binding, "role binding",
                             lambda: provider.does_role_binding_exist(namespace, names.role_binding)),
            ]
        else:
            results += [
                self._exists(names.cluster_role, "cluster role",
                             lambda: provider.does_cluster_role_exist(names.cluster_role)),
                self._exists(names.cluster_role_binding, "cluster role binding",
                             lambda: provider.does_cluster_role_binding_exist(names.cluster_role_binding)),
            ]

        results.append(self._exists(names.api_server, "service",
                                    lambda: provider.does_service_exist(namespace, names.api_server)))
        results.append(self.check_server_pod(PodProbe(names.api_server, namespace)))
        results.append(self.check_worker_pods(PodProbe(names.workers, namespace)))
        return results

    def _exists(self, name: str, kind: str, query: Callable[[], bool]) -> CheckResult:
        try:
            exists = query()
        except QueryError as e:
            return CheckResult(name, kind, False, f"error checking if '{name}' {kind} exists, err: {e}")

        if not exists:
            return CheckResult(name, kind, False, f"'{name}' {kind} doesn't exist")
        return CheckResult(name, kind, True, f"'{name}' {kind} exists")

    def check_server_pod(self, probe: PodProbe) -> CheckResult:
        name = probe.name_pattern
        try:
            pods = self.provider.list_pods_by_app_label(probe.namespace, name)
        except QueryError as e:
            return CheckResult(name, "pod", False, f"error checking if '{name}' pod is running, err: {e}")

        if not pods:
            return CheckResult(name, "pod", False, f"'{name}' pod doesn't exist")
        if not is_pod_running(pods[0]):
            return CheckResult(name, "pod", False, f"'{name}' pod not running")
        return CheckResult(name, "pod", True, f"'{name}' pod running")

    def check_worker_pods(self, probe: PodProbe) -> CheckResult:
        name = probe.name_pattern
        try:
            pods = self.provider.list_pods_by_app_label(probe.namespace, name)
        except QueryError as e:
            return CheckResult(name, "pods", False, f"error checking if '{name}' pods are running, err: {e}")

        total = len(pods)
        not_running = sum(1 for pod in pods if not is_pod_running(pod))

        if total == 0 and self.config.require_workers:
            return CheckResult(name, "pods", False, f"'{name}' no pods found")
        if not_running > 0:
            return CheckResult(name, "pods", False, f"'{name}' {not_running}/{total} pods are not running")
        return CheckResult(name, "pods", True, f"'{name}' {total} pods running")
