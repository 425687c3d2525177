"""Exceptions raised while checking an installation."""


class KubeCheckError(Exception):
    """Base class for health-check errors."""
    pass


class ClientInitError(KubeCheckError):
    """The cluster client could not be constructed."""
    pass


class QueryError(KubeCheckError):
    """A single existence or permission query failed."""
    pass


class VersionIncompatible(KubeCheckError):
    """The cluster runs a Kubernetes version below the supported minimum."""
    pass


class ConnectivityFailure(KubeCheckError):
    """The API server could not be reached through a transport."""
    pass


class WatchError(KubeCheckError):
    """The underlying watch stream failed."""
    pass


class CheckTimeout(KubeCheckError):
    """A deadline elapsed before the awaited condition was met."""
    pass


class CleanupError(KubeCheckError):
    """Best-effort teardown of a transient resource failed."""
    pass


class ManifestError(KubeCheckError):
    """An embedded permission manifest could not be loaded."""
    pass
