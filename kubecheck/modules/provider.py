"""Kubernetes access for installation checks.

KubernetesProvider is the cluster client the checks talk to. It covers:

- metadata: server version
- existence queries for namespaces, config maps, service accounts, roles,
  role bindings, cluster roles, cluster role bindings and services
- pod listing, creation and removal, namespace creation and removal
- permission queries through SelfSubjectAccessReview
- tunnels to the API server (``kubectl proxy`` and ``kubectl port-forward``)
- filtered pod watches delivered over asyncio queues

Existence queries return a bool and raise QueryError when the answer is
unknown. Removal raises CleanupError.
"""
import asyncio
import functools
import logging
import re
import subprocess
import threading
import time
from typing import Any, Callable, Dict, List, Optional

from kubernetes import client, config, watch
from kubernetes.client.rest import ApiException
from kubernetes.config.config_exception import ConfigException
from urllib3.exceptions import HTTPError

from ..utils.kube import resolve_kubeconfig
from .errors import ClientInitError, CleanupError, ConnectivityFailure, QueryError, WatchError
from .models import CLOSED, WatchEvent
from .version import SemVersion

logger = logging.getLogger("kubecheck.provider")

WATCH_JOIN_TIMEOUT = 5.0


def _describe(error: Exception) -> str:
    if isinstance(error, ApiException):
        return f"{error.status} {error.reason}"
    return str(error)


def is_pod_running(pod: Any) -> bool:
    status = getattr(pod, "status", None)
    return getattr(status, "phase", None) == "Running"


class KubectlTunnel:
    """A kubectl subprocess exposing the cluster on a local port.

    Use as a context manager or call open()/close() explicitly.
    """

    def __init__(self, args: List[str], url: str, startup_delay: float = 1.0):
        self.args = args
        self.url = url
        self.startup_delay = startup_delay
        self.process: Optional[subprocess.Popen] = None

    def open(self) -> 'KubectlTunnel':
        logger.debug(f"Starting tunnel: {' '.join(self.args)}")
        try:
            self.process = subprocess.Popen(
                self.args,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True
            )
        except OSError as e:
            raise ConnectivityFailure(f"failed to start {self.args[0]}: {e}") from e

        # Wait a bit to see if the tunnel fails immediately
        time.sleep(self.startup_delay)
        if self.process.poll() is not None:
            _, stderr = self.process.communicate()
            self.process = None
            raise ConnectivityFailure(f"tunnel exited early: {stderr.strip()}")
        return self

    def close(self) -> None:
        if self.process is None:
            return
        process, self.process = self.process, None
        try:
            process.terminate()
            try:
                process.wait(timeout=5)
            except subprocess.TimeoutExpired:
                process.kill()
                process.wait(timeout=5)
        except (OSError, subprocess.SubprocessError) as e:
            raise CleanupError(f"failed to stop tunnel (pid {process.pid}): {e}") from e
        finally:
            for stream in (process.stdout, process.stderr):
                if stream:
                    stream.close()

    @property
    def closed(self) -> bool:
        return self.process is None

    def __enter__(self) -> 'KubectlTunnel':
        return self.open()

    def __exit__(self, *exc) -> None:
        self.close()


class PodWatch:
    """Watches pods whose names match a pattern.

    A background thread drains the watch stream and hands items to the
    running event loop. ``events`` receives WatchEvent items, ``errors``
    receives exceptions; both end with CLOSED.

    stop() closes the streaming response so a thread blocked on a read
    returns at once, then joins the thread.
    """

    def __init__(
        self,
        list_func: Callable,
        namespace: str,
        pod_regex: 're.Pattern',
        loop: Optional[asyncio.AbstractEventLoop] = None,
        timeout_seconds: Optional[int] = None
    ):
        self.namespace = namespace
        self.pod_regex = pod_regex
        self.events: asyncio.Queue = asyncio.Queue()
        self.errors: asyncio.Queue = asyncio.Queue()
        self._list_func = list_func
        self._loop = loop or asyncio.get_running_loop()
        self._timeout_seconds = timeout_seconds
        self._watch = watch.Watch()
        self._response: Any = None
        self._response_lock = threading.Lock()
        self._stopped = threading.Event()
        self._thread = threading.Thread(
            target=self._run, name=f"pod-watch-{namespace}", daemon=True
        )

    def start(self) -> 'PodWatch':
        self._thread.start()
        return self

    def stop(self) -> None:
        self._stopped.set()
        self._watch.stop()
        with self._response_lock:
            response, self._response = self._response, None
        if response is not None:
            self._close_response(response)
        if self._thread.is_alive() and self._thread is not threading.current_thread():
            self._thread.join(timeout=WATCH_JOIN_TIMEOUT)
            if self._thread.is_alive():
                logger.warning(f"Pod watch on namespace {self.namespace} did not stop within {WATCH_JOIN_TIMEOUT}s")

    @staticmethod
    def _close_response(response: Any) -> None:
        try:
            response.close()
            response.release_conn()
        except (HTTPError, OSError) as e:
            logger.debug(f"Error closing watch response: {e}")

    def _open_stream(self) -> Callable:
        @functools.wraps(self._list_func)
        def list_func(*args, **kwargs):
            response = self._list_func(*args, **kwargs)
            with self._response_lock:
                if not self._stopped.is_set():
                    self._response = response
                    return response
            self._close_response(response)
            return response
        return list_func

    @property
    def stopped(self) -> bool:
        return self._stopped.is_set()

    def _emit(self, queue: asyncio.Queue, item: Any) -> None:
        if self._loop.is_closed():
            return
        try:
            self._loop.call_soon_threadsafe(queue.put_nowait, item)
        except RuntimeError as e:
            logger.debug(f"Dropping watch item, event loop is gone: {e}")

    def _run(self) -> None:
        kwargs: Dict[str, Any] = {}
        if self._timeout_seconds:
            kwargs["timeout_seconds"] = self._timeout_seconds
        try:
            for event in self._watch.stream(self._open_stream(), self.namespace, **kwargs):
                if self._stopped.is_set():
                    break
                if event.get("type") == "ERROR":
                    self._emit(self.errors, WatchError(f"watch error event: {event.get('raw_object')}"))
                    break
                pod = event["object"]
                name = getattr(pod.metadata, "name", "") or ""
                if not self.pod_regex.search(name):
                    continue
                self._emit(self.events, WatchEvent(type=event["type"], pod=pod))
        except (ApiException, HTTPError, OSError, ValueError) as e:
            if not self._stopped.is_set():
                self._emit(self.errors, WatchError(f"watch on namespace {self.namespace} failed: {_describe(e)}"))
        finally:
            self._emit(self.events, CLOSED)
            self._emit(self.errors, CLOSED)

    def __enter__(self) -> 'PodWatch':
        return self

    def __exit__(self, *exc) -> None:
        self.stop()


class KubernetesProvider:
    """Cluster client backed by the official kubernetes client and kubectl."""

    def __init__(self, kubeconfig_path: Optional[str] = None, context: Optional[str] = None):
        self.context = context
        try:
            self.kubeconfig_path = resolve_kubeconfig(kubeconfig_path)
            self.api_client = config.new_client_from_config(
                config_file=self.kubeconfig_path, context=context
            )
        except (ConfigException, OSError, ValueError, TypeError) as e:
            raise ClientInitError(str(e)) from e

        self.core = client.CoreV1Api(self.api_client)
        self.rbac = client.RbacAuthorizationV1Api(self.api_client)
        self.authorization = client.AuthorizationV1Api(self.api_client)
        self.version = client.VersionApi(self.api_client)

    @classmethod
    def from_config(cls, check_config) -> 'KubernetesProvider':
        return cls(check_config.kubeconfig_path, check_config.kube_context)

    # metadata

    def get_kubernetes_version(self) -> SemVersion:
        try:
            info = self.version.get_code()
        except (ApiException, HTTPError) as e:
            raise QueryError(f"failed to query server version: {_describe(e)}") from e
        try:
            return SemVersion.parse(info.git_version)
        except ValueError as e:
            raise QueryError(str(e)) from e

    # existence queries

    def _exists(self, read: Callable, *args: Any) -> bool:
        try:
            read(*args)
            return True
        except ApiException as e:
            if e.status == 404:
                return False
            raise QueryError(_describe(e)) from e
        except HTTPError as e:
            raise QueryError(str(e)) from e

    def does_namespace_exist(self, name: str) -> bool:
        return self._exists(self.core.read_namespace, name)

    def does_config_map_exist(self, namespace: str, name: str) -> bool:
        return self._exists(self.core.read_namespaced_config_map, name, namespace)

    def does_service_account_exist(self, namespace: str, name: str) -> bool:
        return self._exists(self.core.read_namespaced_service_account, name, namespace)

    def does_role_exist(self, namespace: str, name: str) -> bool:
        return self._exists(self.rbac.read_namespaced_role, name, namespace)

    def does_role_binding_exist(self, namespace: str, name: str) -> bool:
        return self._exists(self.rbac.read_namespaced_role_binding, name, namespace)

    def does_cluster_role_exist(self, name: str) -> bool:
        return self._exists(self.rbac.read_cluster_role, name)

    def does_cluster_role_binding_exist(self, name: str) -> bool:
        return self._exists(self.rbac.read_cluster_role_binding, name)

    def does_service_exist(self, namespace: str, name: str) -> bool:
        return self._exists(self.core.read_namespaced_service, name, namespace)

    # pods and namespaces

    def list_pods_by_app_label(self, namespace: str, app: str) -> List[Any]:
        try:
            return self.core.list_namespaced_pod(namespace, label_selector=f"app={app}").items
        except (ApiException, HTTPError) as e:
            raise QueryError(_describe(e)) from e

    def list_pods_matching(self, namespace: str, pod_regex: 're.Pattern') -> List[Any]:
        try:
            pods = self.core.list_namespaced_pod(namespace).items
        except (ApiException, HTTPError) as e:
            raise QueryError(_describe(e)) from e
        return [pod for pod in pods if pod_regex.search(pod.metadata.name)]

    def create_namespace(self, name: str) -> Any:
        body = {"apiVersion": "v1", "kind": "Namespace", "metadata": {"name": name}}
        try:
            return self.core.create_namespace(body)
        except (ApiException, HTTPError) as e:
            raise QueryError(f"failed to create namespace {name}: {_describe(e)}") from e

    def remove_namespace(self, name: str) -> None:
        try:
            self.core.delete_namespace(name)
        except ApiException as e:
            if e.status != 404:
                raise CleanupError(f"failed to remove namespace {name}: {_describe(e)}") from e
        except HTTPError as e:
            raise CleanupError(f"failed to remove namespace {name}: {e}") from e

    def create_pod(self, namespace: str, pod: Dict[str, Any]) -> Any:
        try:
            return self.core.create_namespaced_pod(namespace, pod)
        except (ApiException, HTTPError) as e:
            raise QueryError(f"failed to create pod in {namespace}: {_describe(e)}") from e

    def remove_pod(self, namespace: str, name: str) -> None:
        try:
            self.core.delete_namespaced_pod(name, namespace, grace_period_seconds=0)
        except ApiException as e:
            if e.status != 404:
                raise CleanupError(f"failed to remove pod {namespace}/{name}: {_describe(e)}") from e
        except HTTPError as e:
            raise CleanupError(f"failed to remove pod {namespace}/{name}: {e}") from e

    # permissions

    def can_i(self, namespace: str, resource: str, verb: str, group: str) -> bool:
        attributes = client.V1ResourceAttributes(
            namespace=namespace,
            resource=resource,
            verb=verb,
            group=group
        )
        review = client.V1SelfSubjectAccessReview(
            spec=client.V1SelfSubjectAccessReviewSpec(resource_attributes=attributes)
        )
        try:
            response = self.authorization.create_self_subject_access_review(review)
        except (ApiException, HTTPError) as e:
            raise QueryError(_describe(e)) from e
        return bool(response.status and response.status.allowed)

    # tunnels

    def _kubectl(self, *args: str) -> List[str]:
        cmd = ["kubectl"]
        if self.kubeconfig_path:
            cmd += ["--kubeconfig", self.kubeconfig_path]
        if self.context:
            cmd += ["--context", self.context]
        return cmd + list(args)

    def start_proxy(self, host: str, port: int, proxied_path: str) -> KubectlTunnel:
        """Expose the API server on host:port; the returned url targets proxied_path."""
        args = self._kubectl("proxy", f"--address={host}", f"--port={port}")
        return KubectlTunnel(args, f"http://{host}:{port}{proxied_path}").open()

    def start_port_forward(
        self,
        namespace: str,
        pod_regex: 're.Pattern',
        host: str,
        local_port: int,
        remote_port: int
    ) -> KubectlTunnel:
        pods = self.list_pods_matching(namespace, pod_regex)
        if not pods:
            raise ConnectivityFailure(f"no pod matching {pod_regex.pattern!r} in namespace {namespace}")
        pod_name = pods[0].metadata.name
        args = self._kubectl(
            "port-forward", "-n", namespace, f"pod/{pod_name}",
            f"--address={host}", f"{local_port}:{remote_port}"
        )
        return KubectlTunnel(args, f"http://{host}:{local_port}").open()

    # watch

    def filtered_watch(
        self,
        namespace: str,
        pod_regex: 're.Pattern',
        timeout_seconds: Optional[int] = None
    ) -> PodWatch:
        """Start watching pods; must be called from a running event loop."""
        return PodWatch(
            self.core.list_namespaced_pod, namespace, pod_regex,
            timeout_seconds=timeout_seconds
        ).start()
