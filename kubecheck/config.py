"""Configuration management for kubecheck.

Configuration is loaded from multiple sources with the following precedence:
1. Explicitly passed overrides (CLI options, API request fields)
2. Environment variables (KUBECHECK_<FIELD>)
3. Configuration file (YAML)
4. Default values
"""
import os
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

from kubecheck.modules.models import CheckMode, PermissionScope

# Load environment variables from .env file if it exists
load_dotenv()

logger = logging.getLogger("kubecheck.config")

ENV_PREFIX = "KUBECHECK_"

DEFAULT_RESOURCES_NAMESPACE = "mizu"

DEFAULT_CONFIG_PATHS = [
    Path("/etc/kubecheck/config.yaml"),
    Path("~/.config/kubecheck/config.yaml").expanduser(),
    Path("kubecheck.yaml").absolute(),
]


class ResourceNames(BaseModel):
    """Names of the objects an installation is expected to own."""
    config_map: str = "mizu-config"
    service_account: str = "mizu-service-account"
    role: str = "mizu-role"
    role_binding: str = "mizu-role-binding"
    cluster_role: str = "mizu-cluster-role"
    cluster_role_binding: str = "mizu-cluster-role-binding"
    api_server: str = Field(
        default="mizu-api-server",
        description="Name of the API server pod, service and app label"
    )
    workers: str = Field(
        default="mizu-tapper-daemon-set",
        description="App label of the worker pod set"
    )


class CheckConfig(BaseModel):
    """Settings for a single health-check run."""
    kubeconfig_path: Optional[str] = Field(
        default=None,
        description="Path to kubeconfig (defaults to $KUBECONFIG or ~/.kube/config)"
    )
    kube_context: Optional[str] = None
    resources_namespace: str = DEFAULT_RESOURCES_NAMESPACE
    pre_tap: bool = Field(
        default=False,
        description="Check the cluster before installation instead of the installation itself"
    )

    # API server access
    gui_port: int = 8899
    proxy_host: str = "127.0.0.1"
    api_server_port: int = 8899
    api_server_service_port: int = 80

    # Retry and timeout budgets (seconds)
    direct_retries: int = 1
    tunnel_retries: int = 20
    request_timeout: float = 2.0
    retry_delay: float = 1.0
    watch_timeout: float = 30.0

    # Image pull probe
    probe_image: str = "up9inc/busybox"
    probe_pod_name: str = "image-pull-in-cluster"

    require_workers: bool = Field(
        default=True,
        description="Fail the worker pod check when no worker pods exist"
    )
    log_level: str = "INFO"

    names: ResourceNames = Field(default_factory=ResourceNames)

    @field_validator("direct_retries", "tunnel_retries")
    @classmethod
    def at_least_one_attempt(cls, v: int) -> int:
        if v < 1:
            raise ValueError("retry budgets must allow at least one attempt")
        return v

    @field_validator("log_level")
    @classmethod
    def upper_log_level(cls, v: str) -> str:
        return v.upper()

    @property
    def mode(self) -> CheckMode:
        return CheckMode.PRE_INSTALLATION if self.pre_tap else CheckMode.POST_INSTALLATION

    @property
    def is_ns_restricted(self) -> bool:
        return self.resources_namespace != DEFAULT_RESOURCES_NAMESPACE

    @property
    def scope(self) -> PermissionScope:
        return PermissionScope.NAMESPACED if self.is_ns_restricted else PermissionScope.CLUSTER

    @property
    def api_server_url(self) -> str:
        return f"http://{self.proxy_host}:{self.gui_port}"

    @property
    def proxied_api_server_path(self) -> str:
        return (
            f"/api/v1/namespaces/{self.resources_namespace}/services/"
            f"{self.names.api_server}:{self.api_server_service_port}/proxy"
        )

    @classmethod
    def load(
        cls,
        config_path: Optional[Union[str, Path]] = None,
        **overrides: Any
    ) -> 'CheckConfig':
        """Load configuration from file, environment variables and overrides."""
        config_data: Dict[str, Any] = {}

        if config_path:
            path = Path(config_path).expanduser().absolute()
            if not path.exists():
                raise FileNotFoundError(f"Config file not found: {path}")
            config_data = cls._load_config_file(path)
        else:
            for path in DEFAULT_CONFIG_PATHS:
                path = path.expanduser().absolute()
                if path.exists():
                    config_data = cls._load_config_file(path)
                    break

        config_data.update(cls._from_environment())
        config_data.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**config_data)

    @classmethod
    def _from_environment(cls) -> Dict[str, str]:
        values = {}
        for name in cls.model_fields:
            if name == "names":
                continue
            value = os.getenv(f"{ENV_PREFIX}{name.upper()}")
            if value is not None:
                values[name] = value
        return values

    @classmethod
    def _load_config_file(cls, path: Path) -> Dict[str, Any]:
        """Load configuration from a YAML file."""
        try:
            with open(path, 'r') as f:
                return yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.warning(f"Failed to load config from {path}: {e}")
            return {}
