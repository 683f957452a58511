"""conjure.so GraphQL client - lists measures and writes time entries."""

import logging
from datetime import datetime
from typing import Optional, Sequence

import requests

from .. import __version__
from ..config import CONJURE_API_URL, GroupBy
from .event import BIN_KEY, to_measurement
from .link import MeasureGroup
from .measure import Measure, decode_measures
from .period import iso8601
from .retry import RetryConfig, RetryExhausted, retry_with_backoff

__all__ = [
    "ConjureClient",
    "ConjureClientError",
    "ConjureAuthError",
    "CLIENT_MUTATION_ID",
]

logger = logging.getLogger(__name__)

CLIENT_MUTATION_ID = "aw-conjure-integration"

MEASURES_QUERY = """
query Measures {
  measures {
    id
    name
    position
    measureType
  }
}
"""

BATCH_MUTATION = """
mutation MeasurementBatchOperations($input: MeasurementBatchOperationsV2MutationInput!) {
  measurementBatchOperationsV2(input: $input) {
    success
    errorMessage
  }
}
"""


class ConjureClientError(Exception):
    """conjure.so client error."""

    pass


class ConjureAuthError(ConjureClientError):
    """The personal access token was rejected."""

    pass


class _TransientError(Exception):
    """Internal: Marks an error as transient/retryable."""

    pass


def _check_mutation_payload(payload: Optional[dict]) -> None:
    """Turn a ``measurementBatchOperationsV2`` payload into success or an error."""
    if payload is None:
        raise ConjureClientError(
            "No return payload for mutation!  If the problem persists, please report this!"
        )

    success = payload.get("success")
    message = payload.get("errorMessage")
    if success and not message:
        return
    if success:
        raise ConjureClientError(
            "The mutation was reported as successful, but the following error "
            f"message was returned:\n{message}"
        )
    if message:
        raise ConjureClientError(f"Mutation failed with the following error:\n{message}")
    raise ConjureClientError(
        "Mutation was unsuccessful with no error message!  "
        "If the problem persists, please report this!"
    )


class ConjureClient:
    """Client for the conjure.so GraphQL API."""

    DEFAULT_RETRY_CONFIG = RetryConfig(
        max_retries=3,
        base_delay=1.0,
        max_delay=30.0,
        exponential_base=2.0,
        jitter=True,
    )

    USER_AGENT = f"aw-conjure-integration/{__version__}"

    def __init__(
        self,
        token: str,
        api_url: str = CONJURE_API_URL,
        timeout: int = 30,
        retry_config: Optional[RetryConfig] = None,
        session: Optional[requests.Session] = None,
    ):
        """Initialize conjure.so client.

        Args:
            token: Personal access token
            api_url: GraphQL endpoint
            timeout: Request timeout in seconds
            retry_config: Configuration for retry with exponential backoff
            session: Optional requests session (for dependency injection/testing)
        """
        self.api_url = api_url
        self.token = token
        self.timeout = timeout
        self.retry_config = retry_config or self.DEFAULT_RETRY_CONFIG
        self._session = session or requests.Session()
        self._owns_session = session is None

    def _get_headers(self) -> dict:
        return {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "User-Agent": self.USER_AGENT,
            "Authorization": f"Bearer {self.token}",
        }

    def _graphql(self, document: str, variables: Optional[dict] = None) -> dict:
        """POST a GraphQL document and return its ``data``.

        Raises:
            ConjureAuthError: For 401/403 responses (not retried)
            ConjureClientError: For GraphQL errors and exhausted retries
        """
        payload: dict = {"query": document}
        if variables:
            payload["variables"] = variables

        def do_request() -> dict:
            try:
                response = self._session.post(
                    self.api_url,
                    json=payload,
                    headers=self._get_headers(),
                    timeout=self.timeout,
                )
            except requests.exceptions.ConnectionError:
                raise _TransientError("Cannot connect to conjure.so")
            except requests.exceptions.Timeout:
                raise _TransientError("Request to conjure.so timed out")
            except requests.exceptions.ChunkedEncodingError:
                raise _TransientError("Connection to conjure.so dropped mid-response")
            except requests.exceptions.RequestException as e:
                raise ConjureClientError(f"Request to conjure.so failed: {e}") from e

            if response.status_code in (401, 403):
                raise ConjureAuthError(
                    "conjure.so rejected the personal access token; "
                    "check that it is valid and has not been revoked"
                )
            # Server errors (5xx) are retryable
            if response.status_code >= 500:
                raise _TransientError(f"Server error: {response.status_code}")
            if response.status_code >= 400:
                raise ConjureClientError(
                    f"API error ({response.status_code}): {response.text[:500]}"
                )

            try:
                return response.json()
            except ValueError as e:
                raise ConjureClientError(f"Invalid JSON from conjure.so: {e}") from e

        try:
            body = retry_with_backoff(
                do_request,
                config=self.retry_config,
                retryable_exceptions=(_TransientError,),
                description="conjure.so request",
            )
        except RetryExhausted as e:
            raise ConjureClientError(str(e.last_error or e)) from e

        if not isinstance(body, dict):
            raise ConjureClientError(f"Expected a JSON object from conjure.so, got: {body!r}")

        errors = body.get("errors")
        if errors:
            if not isinstance(errors, list):
                errors = [errors]
            messages = "\n".join(
                str(err.get("message", err)) if isinstance(err, dict) else str(err)
                for err in errors
            )
            raise ConjureClientError(f"GraphQL errors:\n{messages}")

        data = body.get("data")
        if not isinstance(data, dict):
            raise ConjureClientError(f"Response had no data: {body!r}")
        return data

    def _batch(self, operation: dict) -> None:
        data = self._graphql(
            BATCH_MUTATION,
            {"input": {**operation, "clientMutationId": CLIENT_MUTATION_ID}},
        )
        _check_mutation_payload(data.get("measurementBatchOperationsV2"))

    def get_measures(self) -> list[Measure]:
        """Time-entry measures ordered by position."""
        data = self._graphql(MEASURES_QUERY)
        measures = decode_measures(data.get("measures"))
        logger.debug(f"Fetched {len(measures)} time entry measure(s)")
        return measures

    def write_measurements(self, group_by: GroupBy, groups: Sequence[MeasureGroup]) -> None:
        """Create or update one measurement per event, matched on its idempotency key."""
        items = [
            {"measureId": measure.id, **to_measurement(group_by, event)}
            for measure, events in groups
            for event in events
        ]
        logger.info(f"Writing {len(items)} measurement(s) to conjure.so")
        self._batch({"createOrUpdate": items})

    def delete_by_era(self, measures: Sequence[Measure], eras: Sequence[datetime]) -> None:
        """Delete every measurement in ``measures`` tagged with one of ``eras``."""
        values = [iso8601(era) for era in eras]
        items = [
            {"measureId": m.id, "attribute": "meta", "key": BIN_KEY, "values": values}
            for m in measures
        ]
        logger.info(
            f"Deleting measurements from {len(eras)} era(s) across {len(measures)} measure(s)"
        )
        self._batch({"destroy": items})

    def close(self) -> None:
        """Close the session if we own it."""
        if self._owns_session and self._session is not None:
            self._session.close()
            self._session = None

    def __enter__(self) -> "ConjureClient":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
