import os
import tempfile
from pathlib import Path
from typing import Optional


def resolve_kubeconfig(path: Optional[str] = None) -> Optional[str]:
    """
    Resolve the kubeconfig to use from a given path, the KUBECONFIG_CONTENT
    env var, or the client defaults.

    Returns the path to load, or None to let the kubernetes client fall back
    to $KUBECONFIG / ~/.kube/config.
    """
    # CI/CD secret-based loading
    if "KUBECONFIG_CONTENT" in os.environ:
        fd, temp_path = tempfile.mkstemp(prefix="kubecheck-", suffix=".yaml")
        with os.fdopen(fd, "w") as f:
            f.write(os.environ["KUBECONFIG_CONTENT"])
        return temp_path

    if path:
        resolved = Path(os.path.expanduser(path)).resolve()
        if not resolved.exists():
            raise FileNotFoundError(f"Kubeconfig not found: {resolved}")
        return str(resolved)

    return None
