"""HTTP reachability probe for the installation's API server."""
import logging
from typing import Optional

import requests

from ..utils import RetryError, retry
from .errors import ConnectivityFailure

logger = logging.getLogger("kubecheck.apiserver")

DEFAULT_RETRIES = 20
DEFAULT_TIMEOUT = 2.0


class ApiServerClient:
    """Probes the API server's echo endpoint."""

    def __init__(
        self,
        url: str,
        retries: int = DEFAULT_RETRIES,
        timeout: float = DEFAULT_TIMEOUT,
        retry_delay: float = 1.0,
        session: Optional[requests.Session] = None
    ):
        self.url = url.rstrip("/")
        self.retries = retries
        self.timeout = timeout
        self.retry_delay = retry_delay
        self.session = session or requests.Session()
        self._owns_session = session is None

    @property
    def echo_url(self) -> str:
        return f"{self.url}/echo"

    def _echo(self) -> None:
        response = self.session.get(self.echo_url, timeout=self.timeout)
        response.raise_for_status()

    def test_connection(self) -> None:
        """Raise ConnectivityFailure unless the echo endpoint answers within the retry budget."""
        probe = retry(
            max_retries=self.retries - 1,
            delay=self.retry_delay,
            backoff=1.0,
            exceptions=(requests.RequestException,)
        )(self._echo)
        try:
            probe()
        except RetryError as e:
            raise ConnectivityFailure(
                f"couldn't reach the api server at {self.url} after {self.retries} retries: {e.__cause__}"
            ) from e
        finally:
            if self._owns_session:
                self.session.close()
        logger.debug(f"Connection test to api server at {self.url} passed")
