"""
Installation health-check modules.
"""
from .connectivity import ConnectivityVerifier
from .manifests import load_policy_rules
from .models import CheckMode, CheckResult, PermissionScope, PolicyRule, PodProbe
from .orchestrator import CheckOrchestrator
from .permissions import PermissionVerifier
from .provider import KubernetesProvider
from .readiness import ImagePullProbe, ReadinessWatcher
from .report import LogReporter, Reporter
from .resources import ResourceExistenceChecker

__all__ = [
    'CheckMode',
    'CheckResult',
    'PermissionScope',
    'PolicyRule',
    'PodProbe',
    'CheckOrchestrator',
    'ConnectivityVerifier',
    'ImagePullProbe',
    'KubernetesProvider',
    'LogReporter',
    'PermissionVerifier',
    'ReadinessWatcher',
    'Reporter',
    'ResourceExistenceChecker',
    'load_policy_rules',
]
