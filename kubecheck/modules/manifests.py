"""Embedded RBAC permission manifests."""
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .errors import ManifestError
from .models import PermissionScope, PolicyRule

logger = logging.getLogger("kubecheck.manifests")

PERMISSION_FILES_DIR = Path(__file__).resolve().parent.parent / "permission_files"

# scope -> (file name, expected kind)
PERMISSION_DOCUMENTS = {
    PermissionScope.NAMESPACED: ("permissions-ns-tap.yaml", "Role"),
    PermissionScope.CLUSTER: ("permissions-all-namespaces-tap.yaml", "ClusterRole"),
}


def read_permission_document(scope: PermissionScope, base_dir: Optional[Path] = None) -> Dict[str, Any]:
    """Read the raw Role/ClusterRole document for a scope."""
    file_name, _ = PERMISSION_DOCUMENTS[scope]
    path = (base_dir or PERMISSION_FILES_DIR) / file_name
    try:
        with open(path) as f:
            document = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ManifestError(f"failed to read {path}: {e}") from e

    if not isinstance(document, dict):
        raise ManifestError(f"{path} does not contain a mapping")
    return document


def parse_policy_rules(document: Dict[str, Any], expected_kind: str) -> List[PolicyRule]:
    """Convert a Role or ClusterRole document into policy rules."""
    kind = document.get("kind")
    if kind != expected_kind:
        raise ManifestError(f"expected a {expected_kind} document, got {kind!r}")

    rules = []
    for raw in document.get("rules") or []:
        rules.append(PolicyRule(
            api_groups=tuple(raw.get("apiGroups") or ()),
            resources=tuple(raw.get("resources") or ()),
            verbs=tuple(raw.get("verbs") or ()),
        ))
    return rules


def load_policy_rules(scope: PermissionScope, base_dir: Optional[Path] = None) -> List[PolicyRule]:
    """Load the policy rules an installation needs for the given scope."""
    _, expected_kind = PERMISSION_DOCUMENTS[scope]
    document = read_permission_document(scope, base_dir)
    rules = parse_policy_rules(document, expected_kind)
    logger.debug(f"Loaded {len(rules)} {expected_kind} rules for {scope.value} scope")
    return rules
