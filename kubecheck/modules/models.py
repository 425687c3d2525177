"""Data models for installation health checks."""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, Optional, Tuple


class CheckMode(str, Enum):
    """Which branch of checks a run executes."""
    PRE_INSTALLATION = 'pre-installation'
    POST_INSTALLATION = 'post-installation'


class PermissionScope(str, Enum):
    """Whether the installation is restricted to a single namespace."""
    NAMESPACED = 'namespaced'
    CLUSTER = 'cluster'


class ConnectivityStrategy(str, Enum):
    """Transports used to reach the API server."""
    DIRECT = 'direct'
    PROXY = 'proxy'
    PORT_FORWARD = 'port-forward'


class WatchState(str, Enum):
    """States of a readiness watch."""
    WATCHING = 'watching'
    SUCCEEDED = 'succeeded'
    TIMED_OUT = 'timed_out'
    WATCH_ERROR = 'watch_error'


@dataclass(frozen=True)
class CheckResult:
    """Outcome of a single check."""
    subject: str
    category: str
    passed: bool
    detail: Optional[str] = None
    stage: str = ''

    def to_dict(self) -> Dict[str, Any]:
        return {
            'stage': self.stage,
            'subject': self.subject,
            'category': self.category,
            'passed': self.passed,
            'detail': self.detail,
        }


@dataclass(frozen=True)
class PolicyRule:
    """An RBAC policy rule as declared in a Role or ClusterRole."""
    api_groups: Tuple[str, ...] = ()
    resources: Tuple[str, ...] = ()
    verbs: Tuple[str, ...] = ()

    def tuples(self) -> Iterator[Tuple[str, str, str]]:
        """Yield every (group, resource, verb) combination of the rule."""
        for group in self.api_groups:
            for resource in self.resources:
                for verb in self.verbs:
                    yield group, resource, verb


@dataclass(frozen=True)
class PodProbe:
    """Selects pods by name pattern within a namespace."""
    name_pattern: str
    namespace: str

    @property
    def regex(self) -> 're.Pattern':
        return re.compile(self.name_pattern)

@dataclass
class ConnectivityAttempt:
    """One attempt to reach the API server through a given transport."""
    strategy: ConnectivityStrategy
    endpoint: str
    outcome: bool = False
    error: Optional[str] = None


@dataclass
class WatchEvent:
    """A pod update delivered by a filtered watch."""
    type: str
    pod: Any

    @property
    def pod_name(self) -> Optional[str]:
        metadata = getattr(self.pod, 'metadata', None)
        return getattr(metadata, 'name', None)

    @property
    def phase(self) -> Optional[str]:
        status = getattr(self.pod, 'status', None)
        return getattr(status, 'phase', None)


# Marks the end of a watch channel.
CLOSED = object()


@dataclass
class WatchOutcome:
    """Terminal state reached by a readiness watch."""
    state: WatchState
    error: Optional[BaseException] = None
    events_seen: int = 0

    @property
    def succeeded(self) -> bool:
        return self.state == WatchState.SUCCEEDED


@dataclass
class StageSummary:
    """Results produced by one stage of a run."""
    name: str
    results: list = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return bool(self.results) and all(r.passed for r in self.results)
