"""API server connectivity through direct and tunnelled transports."""
import logging
import re
from typing import Callable, List, Optional

from .apiserver import ApiServerClient
from .errors import CleanupError, ConnectivityFailure, QueryError
from .models import ConnectivityAttempt, ConnectivityStrategy

logger = logging.getLogger("kubecheck.connectivity")


class ConnectivityVerifier:
    """Reaches the API server directly, then through a proxy and a port-forward.

    Both tunnels are tried even when the first one works so the report shows
    every transport that is usable. Attempts are sequential.
    """

    def __init__(self, provider, config, client_factory: Callable[..., ApiServerClient] = ApiServerClient):
        self.provider = provider
        self.config = config
        self.client_factory = client_factory
        self.attempts: List[ConnectivityAttempt] = []

    def verify(self, endpoint: Optional[str] = None) -> bool:
        endpoint = endpoint or self.config.api_server_url
        self.attempts = []

        if self._probe(ConnectivityStrategy.DIRECT, endpoint, self.config.direct_retries):
            logger.info("✅ found API server tunnel available and connected successfully to API server")
            return True

        connected = False
        for strategy, opener in (
            (ConnectivityStrategy.PROXY, self._open_proxy),
            (ConnectivityStrategy.PORT_FORWARD, self._open_port_forward),
        ):
            if self._through_tunnel(strategy, opener):
                connected = True
                logger.info(f"✅ connected successfully to API server using {strategy.value}")
            else:
                logger.error(f"❌ couldn't connect to API server using {strategy.value}, err: {self.attempts[-1].error}")
        return connected

    @property
    def working_strategies(self) -> List[ConnectivityStrategy]:
        return [a.strategy for a in self.attempts if a.outcome]

    def _open_proxy(self):
        return self.provider.start_proxy(
            self.config.proxy_host,
            self.config.gui_port,
            self.config.proxied_api_server_path
        )

    def _open_port_forward(self):
        return self.provider.start_port_forward(
            self.config.resources_namespace,
            re.compile(self.config.names.api_server),
            self.config.proxy_host,
            self.config.gui_port,
            self.config.api_server_port
        )

    def _through_tunnel(self, strategy: ConnectivityStrategy, opener: Callable) -> bool:
        try:
            tunnel = opener()
        except (ConnectivityFailure, QueryError) as e:
            self.attempts.append(ConnectivityAttempt(strategy, "", False, str(e)))
            return False

        try:
            return self._probe(strategy, tunnel.url, self.config.tunnel_retries)
        finally:
            self._close(strategy, tunnel)

    def _close(self, strategy: ConnectivityStrategy, tunnel) -> None:
        try:
            tunnel.close()
        except CleanupError as e:
            logger.debug(f"Error occurred while stopping {strategy.value} tunnel, err: {e}")

    def _probe(self, strategy: ConnectivityStrategy, url: str, retries: int) -> bool:
        attempt = ConnectivityAttempt(strategy, url)
        self.attempts.append(attempt)
        api_server = self.client_factory(
            url,
            retries=retries,
            timeout=self.config.request_timeout,
            retry_delay=self.config.retry_delay
        )
        try:
            api_server.test_connection()
        except ConnectivityFailure as e:
            attempt.error = str(e)
            logger.debug(f"{strategy.value} connection to {url} failed: {e}")
            return False
        attempt.outcome = True
        return True
