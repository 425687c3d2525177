"""Kubernetes server version parsing and compatibility."""
import re
from dataclasses import dataclass

from .errors import VersionIncompatible

_VERSION_RE = re.compile(r"^v?(\d+)\.(\d+)(?:\.(\d+))?")


@dataclass(frozen=True, order=True)
class SemVersion:
    major: int
    minor: int
    patch: int = 0

    @classmethod
    def parse(cls, value: str) -> 'SemVersion':
        """Parse versions like 'v1.27.3', '1.21' or 'v1.24.9-gke.300'."""
        match = _VERSION_RE.match(value.strip())
        if not match:
            raise ValueError(f"Invalid version: {value!r}")
        major, minor, patch = match.groups()
        return cls(int(major), int(minor), int(patch or 0))

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"


MIN_KUBERNETES_VERSION = SemVersion(1, 16, 0)


def validate_kubernetes_version(version: SemVersion, minimum: SemVersion = MIN_KUBERNETES_VERSION) -> None:
    """Raise VersionIncompatible when the server is older than the minimum."""
    if version < minimum:
        raise VersionIncompatible(
            f"kubernetes server version {version} is not supported, supporting only kubernetes server version of {minimum} or higher"
        )
