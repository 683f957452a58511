"""ActivityWatch client - runs queries against the local aw-server."""

import logging
from typing import Any
from urllib.parse import urljoin

import requests

__all__ = ["AWClient", "AWClientError"]

logger = logging.getLogger(__name__)


class AWClientError(Exception):
    """ActivityWatch client error."""

    pass


class AWClient:
    """Client for the local ActivityWatch server's REST API."""

    def __init__(self, host: str = "localhost", port: int = 5600, timeout: int = 30):
        """Initialize ActivityWatch client.

        Args:
            host: ActivityWatch server host
            port: ActivityWatch server port
            timeout: Request timeout in seconds
        """
        self.base_url = f"http://{host}:{port}/api/0/"
        self.timeout = timeout
        self._session = requests.Session()

    def _request(self, method: str, endpoint: str, **kwargs) -> Any:
        """Make request to ActivityWatch API."""
        url = urljoin(self.base_url, endpoint)
        kwargs.setdefault("timeout", self.timeout)

        try:
            response = self._session.request(method, url, **kwargs)
            response.raise_for_status()
            return response.json() if response.content else {}
        except requests.exceptions.ConnectionError as e:
            raise AWClientError(f"Cannot connect to ActivityWatch at {self.base_url}") from e
        except requests.exceptions.Timeout as e:
            raise AWClientError("ActivityWatch request timed out") from e
        except requests.exceptions.HTTPError as e:
            detail = e.response.text[:500] if e.response is not None else ""
            raise AWClientError(f"ActivityWatch API error: {e}\n{detail}".rstrip()) from e
        except ValueError as e:
            raise AWClientError(f"ActivityWatch returned invalid JSON: {e}") from e
        except requests.exceptions.RequestException as e:
            raise AWClientError(f"ActivityWatch request failed: {e}") from e

    def is_running(self) -> bool:
        """Check if ActivityWatch server is running."""
        try:
            self.get_info()
            return True
        except AWClientError:
            return False

    def get_info(self) -> dict:
        """Get server info (version, hostname, etc.)."""
        return self._request("GET", "info")

    def query(self, timeperiods: list[str], query: list[str]) -> list:
        """Run a query program once per timeperiod.

        Args:
            timeperiods: ``"<start>/<end>"`` ISO-8601 intervals
            query: Query program, one statement per line

        Returns:
            One list of events per timeperiod, in the same order
        """
        logger.debug(f"Running ActivityWatch query over {len(timeperiods)} timeperiod(s)")
        return self._request(
            "POST", "query/", json={"timeperiods": timeperiods, "query": query}
        )

    def close(self) -> None:
        """Close the session."""
        if self._session is not None:
            self._session.close()
            self._session = None

    def __enter__(self) -> "AWClient":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
