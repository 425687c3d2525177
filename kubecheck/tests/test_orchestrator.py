from conftest import FakeProvider, running_event

from kubecheck.modules.errors import ClientInitError, ManifestError, QueryError
from kubecheck.modules.manifests import load_policy_rules
from kubecheck.modules.models import CheckMode, PolicyRule
from kubecheck.modules.orchestrator import CheckOrchestrator
from kubecheck.modules.report import CollectingReporter


class CountingConnectivity:
    instances = []

    def __init__(self, provider, config, connected=True):
        self.connected = connected
        self.attempts = []
        self.working_strategies = []
        CountingConnectivity.instances.append(self)

    def verify(self, endpoint=None):
        return self.connected


def test_pre_installation_all_permitted(config):
    CountingConnectivity.instances = []
    provider = FakeProvider(watch_script=[(0.01, "events", running_event())])
    reporter = CollectingReporter()

    orchestrator = CheckOrchestrator(config, reporter=reporter, connectivity_factory=CountingConnectivity)
    passed = orchestrator.run(CheckMode.PRE_INSTALLATION, provider)

    rules = load_policy_rules(config.scope)
    expected_tuples = sum(len(list(rule.tuples())) for rule in rules)
    permission_results = [r for r in orchestrator.results if r.stage == "kubernetes-permissions"]

    assert passed
    assert len(permission_results) == expected_tuples
    assert all(r.passed for r in permission_results)
    assert len(provider.can_i_calls) == expected_tuples
    assert CountingConnectivity.instances == []
    assert reporter.stages == [
        "kubernetes-api", "kubernetes-version", "kubernetes-permissions", "image-pull-in-cluster",
    ]
    assert reporter.passed is True
    assert reporter.results == orchestrator.results


def test_post_installation_missing_namespace(config, installed_provider):
    CountingConnectivity.instances = []
    installed_provider.existing.discard(("namespace", "mizu"))

    orchestrator = CheckOrchestrator(config, connectivity_factory=CountingConnectivity)
    passed = orchestrator.run(CheckMode.POST_INSTALLATION, installed_provider)

    components = [r for r in orchestrator.results if r.stage == "k8s-components"]
    assert not passed
    assert components[0].category == "namespace" and not components[0].passed
    assert len(components) == 8
    assert all(r.passed for r in components[1:])
    # the stage failed, so connectivity never ran
    assert CountingConnectivity.instances == []


def test_post_installation_healthy(config, installed_provider):
    orchestrator = CheckOrchestrator(config, connectivity_factory=CountingConnectivity)

    assert orchestrator.run(CheckMode.POST_INSTALLATION, installed_provider)
    assert orchestrator.results[-1].stage == "api-server-connectivity"


def test_post_installation_connectivity_failure(config, installed_provider):
    def unreachable(provider, config):
        return CountingConnectivity(provider, config, connected=False)

    orchestrator = CheckOrchestrator(config, connectivity_factory=unreachable)

    assert not orchestrator.run(CheckMode.POST_INSTALLATION, installed_provider)
    assert not orchestrator.results[-1].passed


def test_client_init_failure_stops_the_run(config):
    def broken_factory(config):
        raise ClientInitError("no kubeconfig")

    orchestrator = CheckOrchestrator(config, provider_factory=broken_factory)

    assert not orchestrator.run(CheckMode.POST_INSTALLATION)
    assert len(orchestrator.results) == 1
    assert orchestrator.results[0].detail == "can't initialize the client, err: no kubeconfig"
    assert [s.name for s in orchestrator.stages] == ["kubernetes-api"]


def test_api_query_failure_stops_the_run(config):
    provider = FakeProvider(version=QueryError("connection refused"))

    orchestrator = CheckOrchestrator(config)

    assert not orchestrator.run(CheckMode.PRE_INSTALLATION, provider)
    assert [r.passed for r in orchestrator.results] == [True, False]
    assert provider.can_i_calls == []


def test_old_kubernetes_version_gates_remaining_stages(config):
    provider = FakeProvider(version="v1.15.2")

    orchestrator = CheckOrchestrator(config)

    assert not orchestrator.run(CheckMode.PRE_INSTALLATION, provider)
    assert orchestrator.stages[-1].name == "kubernetes-version"
    assert provider.can_i_calls == []


def test_denied_permission_skips_image_pull(config):
    provider = FakeProvider(denied={("", "pods", "create")})

    orchestrator = CheckOrchestrator(config)

    assert not orchestrator.run(CheckMode.PRE_INSTALLATION, provider)
    assert orchestrator.stages[-1].name == "kubernetes-permissions"
    assert provider.created == []


def test_manifest_error_fails_permissions_stage(config):
    def bad_loader(scope):
        raise ManifestError("expected a ClusterRole document, got 'Role'")

    orchestrator = CheckOrchestrator(config, rules_loader=bad_loader)

    assert not orchestrator.run(CheckMode.PRE_INSTALLATION, FakeProvider())
    assert "error while checking kubernetes permissions" in orchestrator.results[-1].detail


def test_mode_defaults_to_config(config):
    config = config.model_copy(update={"pre_tap": True})
    provider = FakeProvider(watch_script=[(0.01, "events", running_event())])
    rules = [PolicyRule(api_groups=("",), resources=("pods",), verbs=("get",))]

    orchestrator = CheckOrchestrator(config, rules_loader=lambda scope: rules)

    assert orchestrator.run(provider=provider)
    assert provider.can_i_calls == [("", "pods", "get")]
