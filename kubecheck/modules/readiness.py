"""Pod readiness watching and the in-cluster image pull probe.

ReadinessWatcher is a small state machine::

    WATCHING -> SUCCEEDED    a watched pod reports phase Running
    WATCHING -> WATCH_ERROR  the error channel delivers an error
    WATCHING -> TIMED_OUT    the deadline passes

It waits on the pod-event queue, the error queue and the deadline at once.
A queue that closes is dropped from the wait; it is not terminal.
"""
import asyncio
import logging
import re
from typing import Any, Dict, List, Optional

from .errors import CheckTimeout, CleanupError, KubeCheckError, WatchError
from .models import CLOSED, CheckResult, PermissionScope, PodProbe, WatchOutcome, WatchState

logger = logging.getLogger("kubecheck.readiness")

DEFAULT_WATCH_TIMEOUT = 30.0


class ReadinessWatcher:
    """Waits for a pod matching a pattern to reach the Running phase."""

    def __init__(self, provider, timeout: float = DEFAULT_WATCH_TIMEOUT):
        self.provider = provider
        self.timeout = timeout

    def wait_until_running(
        self,
        pod_name_pattern: str,
        namespace: str,
        timeout: Optional[float] = None
    ) -> WatchOutcome:
        probe = PodProbe(pod_name_pattern, namespace)
        return asyncio.run(self.watch(probe, self.timeout if timeout is None else timeout))

    async def watch(self, probe: PodProbe, timeout: float) -> WatchOutcome:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        state = WatchState.WATCHING
        error: Optional[BaseException] = None
        events_seen = 0

        watch_seconds = int(timeout) + 1
        with self.provider.filtered_watch(probe.namespace, probe.regex, timeout_seconds=watch_seconds) as pod_watch:
            channels: Dict[str, asyncio.Queue] = {"events": pod_watch.events, "errors": pod_watch.errors}
            pending: Dict[str, asyncio.Task] = {}
            try:
                while state == WatchState.WATCHING:
                    for name, queue in channels.items():
                        if name not in pending:
                            pending[name] = asyncio.ensure_future(queue.get())

                    remaining = deadline - loop.time()
                    if remaining <= 0:
                        state = WatchState.TIMED_OUT
                        error = CheckTimeout(f"pod {probe.name_pattern!r} not running within {timeout}s")
                        break

                    if pending:
                        await asyncio.wait(
                            pending.values(), timeout=remaining, return_when=asyncio.FIRST_COMPLETED
                        )
                    else:
                        # Both channels closed; only the deadline is left.
                        await asyncio.sleep(remaining)
                        continue

                    # Pod events are handled before errors from the same wake-up.
                    for name in ("events", "errors"):
                        task = pending.get(name)
                        if task is None or not task.done():
                            continue
                        del pending[name]
                        item = task.result()
                        if item is CLOSED:
                            logger.debug(f"Watch {name} channel closed")
                            channels.pop(name)
                            continue
                        if name == "events":
                            events_seen += 1
                            logger.debug(f"Pod {item.pod_name} is {item.phase}")
                            if self._is_running(item):
                                state = WatchState.SUCCEEDED
                                break
                        else:
                            state = WatchState.WATCH_ERROR
                            error = item if isinstance(item, BaseException) else WatchError(str(item))
                            break
            finally:
                for task in pending.values():
                    task.cancel()

        return WatchOutcome(state, error, events_seen)

    @staticmethod
    def _is_running(event: Any) -> bool:
        return getattr(event, "phase", None) == "Running"


class ImagePullProbe:
    """Checks the cluster can pull images by running a throwaway pod.

    The pod, and in cluster scope the namespace, are removed afterwards,
    but only when this probe created them. Removal failures are logged only.
    """

    STAGE = "image-pull-in-cluster"

    def __init__(self, provider, config, watcher: Optional[ReadinessWatcher] = None):
        self.provider = provider
        self.config = config
        self.watcher = watcher or ReadinessWatcher(provider, config.watch_timeout)

    @property
    def owns_namespace(self) -> bool:
        return self.config.scope == PermissionScope.CLUSTER

    def pod_manifest(self) -> Dict[str, Any]:
        return {
            "apiVersion": "v1",
            "kind": "Pod",
            "metadata": {"name": self.config.probe_pod_name},
            "spec": {
                "containers": [{
                    "name": "probe",
                    "image": self.config.probe_image,
                    "imagePullPolicy": "Always",
                    "command": ["cat"],
                    "stdin": True,
                }],
                "terminationGracePeriodSeconds": 0,
            },
        }

    def run(self) -> CheckResult:
        subject = self.config.probe_image
        namespace = self.config.resources_namespace
        created: List[str] = []
        try:
            try:
                self._create_resources(namespace, created)
            except KubeCheckError as e:
                return CheckResult(subject, "image pull", False,
                                   f"error while creating image pull in cluster resources, err: {e}")

            pattern = f"^{re.escape(self.config.probe_pod_name)}$"
            outcome = self.watcher.wait_until_running(pattern, namespace)
        finally:
            self._remove_resources(namespace, created)

        if not outcome.succeeded:
            reason = "image not pulled in time" if outcome.state == WatchState.TIMED_OUT else outcome.error
            return CheckResult(subject, "image pull", False,
                               f"cluster is not able to pull {subject} from the registry, err: {reason}")
        return CheckResult(subject, "image pull", True, f"cluster is able to pull {subject} from the registry")

    def _create_resources(self, namespace: str, created: List[str]) -> None:
        if self.owns_namespace:
            self.provider.create_namespace(namespace)
            created.append("namespace")
        self.provider.create_pod(namespace, self.pod_manifest())
        created.append("pod")

    def _remove_resources(self, namespace: str, created: List[str]) -> None:
        if "pod" in created:
            try:
                self.provider.remove_pod(namespace, self.config.probe_pod_name)
            except CleanupError as e:
                logger.debug(f"error while removing image pull in cluster resources, err: {e}")

        if "namespace" in created:
            try:
                self.provider.remove_namespace(namespace)
            except CleanupError as e:
                logger.debug(f"error while removing image pull in cluster resources, err: {e}")
