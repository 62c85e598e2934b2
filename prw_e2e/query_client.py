"""
Query client for the Prometheus HTTP API of the remote-write backend.

Requests go through one shared requests.Session and are optionally signed
with AWS SigV4 for Amazon Managed Service for Prometheus workspaces.
"""

import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests
from requests.auth import AuthBase
from botocore.auth import SigV4Auth as BotocoreSigV4Auth
from botocore.awsrequest import AWSRequest
from botocore.session import Session as BotocoreSession

from prw_e2e.exceptions import ConfigurationError, QueryError, create_query_error
from prw_e2e.logging_config import get_logger, log_api_request


@dataclass
class QueryResult:
    """
    Outcome of a single series query.

    Attributes:
        series: Queried series name
        success: Whether a usable JSON document was returned
        payload: Parsed JSON document on success
        error: QueryError describing the failure otherwise
    """
    series: str
    success: bool
    payload: Optional[Dict[str, Any]] = None
    error: Optional[QueryError] = None

    @classmethod
    def failed(cls, series: str, error: QueryError) -> 'QueryResult':
        return cls(series=series, success=False, error=error)


class SigV4Auth(AuthBase):
    """
    requests auth hook that signs each request with AWS Signature Version 4.

    Credentials come from the default botocore credential chain (environment,
    shared config files, instance metadata).
    """

    def __init__(self, service: str, region: str, credentials=None):
        self.service = service
        self.region = region
        if credentials is None:
            credentials = BotocoreSession().get_credentials()
        if credentials is None:
            raise ConfigurationError("No AWS credentials found for signing query requests")
        self.credentials = credentials

    def __call__(self, request: requests.PreparedRequest) -> requests.PreparedRequest:
        aws_request = AWSRequest(
            method=request.method,
            url=request.url,
            data=request.body,
            headers={key: value for key, value in request.headers.items()
                     if key.lower() not in ('connection', 'user-agent')}
        )
        BotocoreSigV4Auth(self.credentials, self.service, self.region).add_auth(aws_request)
        request.headers.update(dict(aws_request.headers.items()))
        return request


class QueryClient:
    """
    Issues instant queries against the backend's query endpoint.

    Failures never raise: every outcome is returned as a QueryResult so the
    caller can record a partial answer and continue.
    """

    def __init__(self, query_url: str, timeout: float = 30.0,
                 auth: Optional[AuthBase] = None,
                 session: Optional[requests.Session] = None):
        """
        Initialize the query client.

        Args:
            query_url: Query endpoint ending in ``query=``; the series is appended
            timeout: Per-request timeout in seconds
            auth: Optional request signer
            session: Optional session to reuse, one is created otherwise
        """
        self.query_url = query_url
        self.timeout = timeout
        self.session = session or requests.Session()
        if auth is not None:
            self.session.auth = auth
        self.logger = get_logger(__name__)

    def query(self, series: str) -> QueryResult:
        """
        Query the latest sample of a series.

        Args:
            series: Series name appended to the query URL

        Returns:
            QueryResult with the parsed JSON document or the failure
        """
        url = f"{self.query_url}{series}"
        start_time = time.time()

        try:
            response = self.session.get(url, timeout=self.timeout)
        except requests.exceptions.Timeout as e:
            log_api_request(self.logger, 'GET', url, error=f"timed out after {self.timeout}s")
            return QueryResult.failed(series, create_query_error(
                series, f"timed out after {self.timeout}s", original_error=e))
        except requests.exceptions.RequestException as e:
            log_api_request(self.logger, 'GET', url, error=str(e)[:200])
            return QueryResult.failed(series, create_query_error(series, str(e), original_error=e))

        duration = time.time() - start_time
        log_api_request(self.logger, 'GET', url, status_code=response.status_code, duration=duration)

        if response.status_code != 200:
            return QueryResult.failed(series, create_query_error(
                series, f"non-200 status code: {response.status_code}",
                status_code=response.status_code))

        try:
            payload = response.json()
        except ValueError as e:
            return QueryResult.failed(series, create_query_error(
                series, f"invalid JSON response: {e}", status_code=response.status_code,
                original_error=e))

        if not isinstance(payload, dict):
            return QueryResult.failed(series, create_query_error(
                series, "invalid response format: expected JSON object",
                status_code=response.status_code))

        return QueryResult(series=series, success=True, payload=payload)

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> 'QueryClient':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
