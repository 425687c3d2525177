import asyncio

import pytest
from kubernetes import client

from kubecheck.config import CheckConfig
from kubecheck.modules.errors import CleanupError, ConnectivityFailure, QueryError
from kubecheck.modules.models import WatchEvent
from kubecheck.modules.version import SemVersion


def make_pod(name, phase="Running"):
    return client.V1Pod(
        metadata=client.V1ObjectMeta(name=name),
        status=client.V1PodStatus(phase=phase),
    )


class FakeTunnel:
    def __init__(self, url, fail_close=False):
        self.url = url
        self.fail_close = fail_close
        self.closed = False

    def close(self):
        self.closed = True
        if self.fail_close:
            raise CleanupError("tunnel already gone")


class FakeWatch:
    """Feeds scheduled items into the watch queues of the running loop."""

    def __init__(self, script):
        loop = asyncio.get_running_loop()
        self.events = asyncio.Queue()
        self.errors = asyncio.Queue()
        self.stopped = False
        for delay, channel, item in script:
            queue = self.events if channel == "events" else self.errors
            loop.call_later(delay, queue.put_nowait, item)

    def stop(self):
        self.stopped = True

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.stop()


class FakeProvider:
    """In-memory cluster client.

    ``existing`` holds (kind, name) pairs that exist; ``errors`` maps
    (kind, name) to an error message raised as QueryError.
    """

    def __init__(self, version="v1.27.3", existing=None, errors=None, pods=None, denied=None,
                 permission_errors=None, watch_script=None):
        self.version = version
        self.existing = set(existing or ())
        self.errors = dict(errors or {})
        self.pods = dict(pods or {})
        self.denied = set(denied or ())
        self.permission_errors = set(permission_errors or ())
        self.watch_script = list(watch_script or ())
        self.calls = []
        self.can_i_calls = []
        self.created = []
        self.removed = []
        self.watches = []
        self.tunnels = []
        self.remove_error = None
        self.create_error = None
        self.namespace_error = None

    def get_kubernetes_version(self):
        if isinstance(self.version, Exception):
            raise self.version
        return SemVersion.parse(self.version)

    def _exists(self, kind, name):
        self.calls.append((kind, name))
        if (kind, name) in self.errors:
            raise QueryError(self.errors[(kind, name)])
        return (kind, name) in self.existing

    def does_namespace_exist(self, name):
        return self._exists("namespace", name)

    def does_config_map_exist(self, namespace, name):
        return self._exists("config map", name)

    def does_service_account_exist(self, namespace, name):
        return self._exists("service account", name)

    def does_role_exist(self, namespace, name):
        return self._exists("role", name)

    def does_role_binding_exist(self, namespace, name):
        return self._exists("role binding", name)

    def does_cluster_role_exist(self, name):
        return self._exists("cluster role", name)

    def does_cluster_role_binding_exist(self, name):
        return self._exists("cluster role binding", name)

    def does_service_exist(self, namespace, name):
        return self._exists("service", name)

    def list_pods_by_app_label(self, namespace, app):
        self.calls.append(("pods", app))
        if ("pods", app) in self.errors:
            raise QueryError(self.errors[("pods", app)])
        return self.pods.get(app, [])

    def can_i(self, namespace, resource, verb, group):
        key = (group, resource, verb)
        self.can_i_calls.append(key)
        if key in self.permission_errors:
            raise QueryError("forbidden")
        return key not in self.denied

    def create_namespace(self, name):
        if self.namespace_error:
            raise self.namespace_error
        self.created.append(("namespace", name))

    def create_pod(self, namespace, pod):
        if self.create_error:
            raise self.create_error
        self.created.append(("pod", pod["metadata"]["name"]))

    def remove_pod(self, namespace, name):
        self.removed.append(("pod", name))
        if self.remove_error:
            raise self.remove_error

    def remove_namespace(self, name):
        self.removed.append(("namespace", name))
        if self.remove_error:
            raise self.remove_error

    def start_proxy(self, host, port, proxied_path):
        tunnel = FakeTunnel(f"http://{host}:{port}{proxied_path}")
        self.tunnels.append(("proxy", tunnel))
        return tunnel

    def start_port_forward(self, namespace, pod_regex, host, local_port, remote_port):
        if ("port-forward", namespace) in self.errors:
            raise ConnectivityFailure(self.errors[("port-forward", namespace)])
        tunnel = FakeTunnel(f"http://{host}:{local_port}")
        self.tunnels.append(("port-forward", tunnel))
        return tunnel

    def filtered_watch(self, namespace, pod_regex, timeout_seconds=None):
        watch = FakeWatch(self.watch_script)
        self.watches.append(watch)
        return watch


def running_event(name="image-pull-in-cluster"):
    return WatchEvent(type="MODIFIED", pod=make_pod(name, "Running"))


def pending_event(name="image-pull-in-cluster"):
    return WatchEvent(type="ADDED", pod=make_pod(name, "Pending"))


INSTALLED = [
    ("namespace", "mizu"),
    ("config map", "mizu-config"),
    ("service account", "mizu-service-account"),
    ("cluster role", "mizu-cluster-role"),
    ("cluster role binding", "mizu-cluster-role-binding"),
    ("service", "mizu-api-server"),
]


@pytest.fixture
def config():
    return CheckConfig(retry_delay=0, watch_timeout=0.5, tunnel_retries=2)


@pytest.fixture
def installed_provider():
    return FakeProvider(
        existing=INSTALLED,
        pods={
            "mizu-api-server": [make_pod("mizu-api-server")],
            "mizu-tapper-daemon-set": [make_pod("tapper-a"), make_pod("tapper-b")],
        },
    )

