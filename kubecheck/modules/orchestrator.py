"""Runs the health checks in order and gates each stage on the previous one."""
import dataclasses
import logging
from typing import Callable, List, Optional, Tuple

from .connectivity import ConnectivityVerifier
from .errors import ClientInitError, ManifestError, QueryError, VersionIncompatible
from .manifests import load_policy_rules
from .models import CheckMode, CheckResult, StageSummary
from .permissions import PermissionVerifier
from .provider import KubernetesProvider
from .readiness import ImagePullProbe
from .report import Reporter
from .resources import ResourceExistenceChecker
from .version import SemVersion, validate_kubernetes_version

logger = logging.getLogger("kubecheck.orchestrator")


class CheckOrchestrator:
    """Sequences the checks of a run and aggregates the verdict.

    Stages run one after another. A failed stage stops the run; checks
    inside a stage always all run. The verdict is the AND of every result
    produced, so stages that never ran contribute nothing.
    """

    def __init__(
        self,
        config,
        reporter: Optional[Reporter] = None,
        provider_factory: Callable = KubernetesProvider.from_config,
        rules_loader: Callable = load_policy_rules,
        connectivity_factory: Callable = ConnectivityVerifier,
        image_pull_factory: Callable = ImagePullProbe,
    ):
        self.config = config
        self.reporter = reporter or Reporter()
        self.provider_factory = provider_factory
        self.rules_loader = rules_loader
        self.connectivity_factory = connectivity_factory
        self.image_pull_factory = image_pull_factory
        self.results: List[CheckResult] = []
        self.stages: List[StageSummary] = []

    def run(self, mode: Optional[CheckMode] = None, provider=None) -> bool:
        mode = mode or self.config.mode
        self.results = []
        self.stages = []
        logger.debug(f"Running {mode.value} checks against namespace {self.config.resources_namespace}")

        provider, version, passed = self.check_kubernetes_api(provider)

        if passed:
            passed = self.check_kubernetes_version(version)

        if mode == CheckMode.PRE_INSTALLATION:
            if passed:
                passed = self.check_permissions(provider)
            if passed:
                passed = self.check_image_pull(provider)
        else:
            if passed:
                passed = self.check_resources(provider)
            if passed:
                passed = self.check_connectivity(provider)

        verdict = self.passed
        self.reporter.finish(verdict)
        return verdict

    @property
    def passed(self) -> bool:
        return bool(self.results) and all(r.passed for r in self.results)

    def _begin(self, name: str) -> StageSummary:
        stage = StageSummary(name)
        self.stages.append(stage)
        self.reporter.start_stage(name)
        return stage

    def _record(self, stage: StageSummary, result: CheckResult) -> CheckResult:
        result = dataclasses.replace(result, stage=stage.name)
        stage.results.append(result)
        self.results.append(result)
        self.reporter.record(result)
        return result

    def check_kubernetes_api(self, provider=None) -> Tuple[object, Optional[SemVersion], bool]:
        stage = self._begin("kubernetes-api")

        if provider is None:
            try:
                provider = self.provider_factory(self.config)
            except ClientInitError as e:
                self._record(stage, CheckResult("client", "kubernetes-api", False,
                                                f"can't initialize the client, err: {e}"))
                return None, None, False
        self._record(stage, CheckResult("client", "kubernetes-api", True, "can initialize the client"))

        try:
            version = provider.get_kubernetes_version()
        except QueryError as e:
            self._record(stage, CheckResult("api", "kubernetes-api", False,
                                            f"can't query the Kubernetes API, err: {e}"))
            return provider, None, False
        self._record(stage, CheckResult("api", "kubernetes-api", True, "can query the Kubernetes API"))
        return provider, version, True

    def check_kubernetes_version(self, version: SemVersion) -> bool:
        stage = self._begin("kubernetes-version")
        try:
            validate_kubernetes_version(version)
        except VersionIncompatible as e:
            self._record(stage, CheckResult(str(version), "kubernetes-version", False,
                                            f"not running the minimum Kubernetes API version, err: {e}"))
            return False
        self._record(stage, CheckResult(str(version), "kubernetes-version", True,
                                        "is running the minimum Kubernetes API version"))
        return True

    def check_permissions(self, provider) -> bool:
        stage = self._begin("kubernetes-permissions")
        try:
            rules = self.rules_loader(self.config.scope)
        except ManifestError as e:
            self._record(stage, CheckResult(self.config.scope.value, "permission", False,
                                            f"error while checking kubernetes permissions, err: {e}"))
            return False

        verifier = PermissionVerifier(provider, self.config.resources_namespace)
        for result in verifier.verify(rules):
            self._record(stage, result)
        return stage.passed

    def check_image_pull(self, provider) -> bool:
        stage = self._begin(ImagePullProbe.STAGE)
        probe = self.image_pull_factory(provider, self.config)
        self._record(stage, probe.run())
        return stage.passed

    def check_resources(self, provider) -> bool:
        stage = self._begin("k8s-components")
        checker = ResourceExistenceChecker(provider, self.config)
        for result in checker.check_all(self.config.resources_namespace):
            self._record(stage, result)
        return stage.passed

    def check_connectivity(self, provider) -> bool:
        stage = self._begin("api-server-connectivity")
        verifier = self.connectivity_factory(provider, self.config)
        connected = verifier.verify(self.config.api_server_url)

        tried = ", ".join(a.strategy.value for a in verifier.attempts)
        if connected:
            working = ", ".join(s.value for s in verifier.working_strategies)
            detail = f"connected successfully to API server using {working}"
        else:
            detail = f"couldn't connect to API server using {tried}"
        self._record(stage, CheckResult(self.config.names.api_server, "connectivity", connected, detail))
        return connected
