from conftest import INSTALLED, FakeProvider, make_pod

from kubecheck.config import CheckConfig
from kubecheck.modules.resources import ResourceExistenceChecker


def by_category(results):
    return {r.category: r for r in results}


def test_all_resources_present(config, installed_provider):
    results = ResourceExistenceChecker(installed_provider, config).check_all("mizu")

    assert [r.category for r in results] == [
        "namespace", "config map", "service account", "cluster role",
        "cluster role binding", "service", "pod", "pods",
    ]
    assert all(r.passed for r in results)
    assert results[-1].detail == "'mizu-tapper-daemon-set' 2 pods running"


def test_missing_cluster_role_binding_does_not_short_circuit(config, installed_provider):
    installed_provider.existing.discard(("cluster role binding", "mizu-cluster-role-binding"))

    results = by_category(ResourceExistenceChecker(installed_provider, config).check_all("mizu"))

    assert results["cluster role"].passed
    assert not results["cluster role binding"].passed
    assert results["cluster role binding"].detail == "'mizu-cluster-role-binding' cluster role binding doesn't exist"
    assert results["service"].passed
    assert not all(r.passed for r in results.values())


def test_missing_namespace_still_checks_everything(config):
    provider = FakeProvider(existing=[])
    results = ResourceExistenceChecker(provider, config).check_all("mizu")

    assert results[0].category == "namespace" and not results[0].passed
    assert len(results) == 8
    assert ("service", "mizu-api-server") in provider.calls
    assert ("pods", "mizu-tapper-daemon-set") in provider.calls


def test_query_error_is_reported_differently_from_absence(config, installed_provider):
    installed_provider.errors[("config map", "mizu-config")] = "connection refused"

    result = by_category(ResourceExistenceChecker(installed_provider, config).check_all("mizu"))["config map"]

    assert not result.passed
    assert result.detail == "error checking if 'mizu-config' config map exists, err: connection refused"


def test_namespaced_installation_checks_role_and_binding():
    config = CheckConfig(resources_namespace="team-a")
    provider = FakeProvider(existing=INSTALLED + [("role", "mizu-role"), ("role binding", "mizu-role-binding")])

    categories = [r.category for r in ResourceExistenceChecker(provider, config).check_all("team-a")]

    assert "role" in categories and "role binding" in categories
    assert "cluster role" not in categories


def test_server_pod_not_running(config, installed_provider):
    installed_provider.pods["mizu-api-server"] = [make_pod("mizu-api-server", "Pending")]

    result = by_category(ResourceExistenceChecker(installed_provider, config).check_all("mizu"))["pod"]

    assert not result.passed
    assert result.detail == "'mizu-api-server' pod not running"


def test_server_pod_missing(config, installed_provider):
    installed_provider.pods["mizu-api-server"] = []

    result = by_category(ResourceExistenceChecker(installed_provider, config).check_all("mizu"))["pod"]

    assert result.detail == "'mizu-api-server' pod doesn't exist"


def test_workers_not_running_are_counted(config, installed_provider):
    installed_provider.pods["mizu-tapper-daemon-set"] = [
        make_pod("tapper-a"), make_pod("tapper-b", "Pending"), make_pod("tapper-c", "Failed"),
    ]

    result = by_category(ResourceExistenceChecker(installed_provider, config).check_all("mizu"))["pods"]

    assert not result.passed
    assert result.detail == "'mizu-tapper-daemon-set' 2/3 pods are not running"


def test_zero_workers_fail_by_default(config, installed_provider):
    installed_provider.pods["mizu-tapper-daemon-set"] = []

    result = by_category(ResourceExistenceChecker(installed_provider, config).check_all("mizu"))["pods"]

    assert not result.passed


def test_zero_workers_pass_when_not_required(installed_provider):
    config = CheckConfig(require_workers=False)
    installed_provider.pods["mizu-tapper-daemon-set"] = []

    result = by_category(ResourceExistenceChecker(installed_provider, config).check_all("mizu"))["pods"]

    assert result.passed
    assert result.detail == "'mizu-tapper-daemon-set' 0 pods running"
