"""
SPARQL Helper - SPARQL query execution with automatic fallback.

This module is the HTTP client underneath the capability probes. It handles:
- Automatic GET → POST fallback for endpoints that require POST
- Exponential backoff retry logic for transient failures
- Endpoint authentication (basic, bearer, API key)
- HTML error detection in responses
- Consistent logging across all SPARQL operations

Usage:
    from skosprobe.sparql_helper import SparqlHelper

    helper = SparqlHelper("https://sparql.example.org/")

    # Execute SELECT query (returns dict)
    results = helper.select("SELECT ?s WHERE { ?s a ?c } LIMIT 10")

    # Execute ASK query (returns bool)
    exists = helper.ask("ASK { GRAPH ?g { ?s ?p ?o } }")
"""

from __future__ import annotations

import json
import logging
import secrets
import time
from typing import Any, Literal

import requests

logger = logging.getLogger(__name__)


class SparqlHelperError(Exception):
    """Base exception for SPARQL helper errors."""

    pass


class EndpointError(SparqlHelperError):
    """Raised when the endpoint returns an error."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class QueryError(SparqlHelperError):
    """Raised when the query itself is invalid."""

    pass


# MIME types for SPARQL responses
class MimeTypes:
    """Standard MIME types for SPARQL protocol."""

    JSON = "application/sparql-results+json"
    XML = "application/sparql-results+xml"

    SELECT_ACCEPT = f"{JSON}, {XML};q=0.9"


class SparqlHelper:
    """
    SPARQL query executor with automatic fallback and retry logic.

    This class provides:
    - Automatic GET/POST method fallback when endpoints return HTML/405 errors
    - Configurable retry with exponential backoff for transient failures
    - Authentication headers sent with every request
    - Support for SELECT and ASK queries

    Attributes:
        endpoint_url: The SPARQL endpoint URL
        use_post: If True, always use POST method (skip GET attempt)
        max_retries: Maximum number of attempts
        initial_backoff: Initial backoff delay in seconds
        max_backoff: Maximum backoff delay in seconds
        timeout: Request timeout in seconds
        headers: Extra headers (authentication) sent with each request

    Example:
        >>> helper = SparqlHelper("https://vocabularies.unesco.org/sparql")
        >>> results = helper.select("SELECT ?g { GRAPH ?g { ?s ?p ?o } } LIMIT 5")
        >>> for binding in results["results"]["bindings"]:
        ...     print(binding["g"]["value"])
    """

    # Error patterns that indicate POST should be tried
    POST_RETRY_PATTERNS = ("html", "internal", "method not allowed")

    # HTML markers that indicate an error response instead of JSON
    HTML_MARKERS = ("<!DOCTYPE", "<html", "<HTML", "<!doctype")

    # HTTP status codes that warrant a retry
    RETRY_STATUS_CODES = (500, 502, 503, 504, 429)

    USER_AGENT = "skosprobe/1.0 (SPARQL client)"

    def __init__(
        self,
        endpoint_url: str,
        *,
        use_post: bool = False,
        max_retries: int = 3,
        initial_backoff: float = 1.0,
        max_backoff: float = 30.0,
        timeout: float = 60.0,
        headers: dict[str, str] | None = None,
    ) -> None:
        """
        Initialize the SPARQL helper.

        Args:
            endpoint_url: SPARQL endpoint URL
            use_post: Always use POST (default: False, tries GET first)
            max_retries: Maximum attempts for transient failures
            initial_backoff: Initial delay between retries (seconds)
            max_backoff: Maximum delay between retries (seconds)
            timeout: Request timeout in seconds (default: 60)
            headers: Extra request headers, typically authentication
        """
        self.endpoint_url = endpoint_url.rstrip("/")
        self.use_post = use_post
        self.max_retries = max(1, max_retries)
        self.initial_backoff = initial_backoff
        self.max_backoff = max_backoff
        self.timeout = timeout
        self.headers = dict(headers or {})

        # Track if we've detected this endpoint requires POST
        self._requires_post = use_post

        # Session for connection pooling
        self._session = requests.Session()

        logger.debug(f"SparqlHelper initialized for {self.endpoint_url}")

    def select(self, query: str) -> dict[str, Any]:
        """
        Execute a SELECT query and return JSON results.

        Args:
            query: SPARQL SELECT query string

        Returns:
            Dictionary with SPARQL JSON results format:
            {
                "head": {"vars": ["s", "p", "o"]},
                "results": {"bindings": [...]}
            }

        Raises:
            EndpointError: If the endpoint returns an error after all retries
        """
        result: dict[str, Any] = self._execute(query, query_type="SELECT")
        return result

    def ask(self, query: str) -> bool:
        """
        Execute an ASK query and return boolean result.

        Raises:
            EndpointError: If the endpoint returns an error after all retries
        """
        result: dict[str, Any] = self._execute(query, query_type="ASK")
        return bool(result.get("boolean", False))

    def _execute(
        self,
        query: str,
        query_type: Literal["SELECT", "ASK"] = "SELECT",
    ) -> Any:
        """
        Execute a SPARQL query with automatic GET/POST fallback and retry.

        Returns:
            Parsed JSON results

        Raises:
            EndpointError: If query fails after all retries
            QueryError: If the endpoint rejects the query as malformed
        """
        use_post = self._requires_post
        attempt = 0

        # Switching from GET to POST does not count as an attempt
        while attempt < self.max_retries:
            try:
                if use_post:
                    logger.debug(f"Executing {query_type} with POST")
                    result = self._post_query(query)
                else:
                    logger.debug(f"Executing {query_type} with GET")
                    result = self._get_query(query)

                if self._is_html_response(result):
                    if not use_post:
                        logger.debug("GET returned HTML, switching to POST")
                        self._requires_post = True
                        use_post = True
                        continue
                    raise EndpointError("Endpoint returned HTML error even with POST")

                return json.loads(result)

            except requests.exceptions.HTTPError as e:
                status_code = e.response.status_code if e.response is not None else 0

                # 405 Method Not Allowed: the endpoint wants POST
                if not use_post and status_code == 405:
                    logger.debug("GET returned 405, switching to POST")
                    self._requires_post = True
                    use_post = True
                    continue

                if status_code in self.RETRY_STATUS_CODES:
                    attempt += 1
                    self._handle_retry(attempt, query_type, e, status_code)
                    continue

                if status_code == 400:
                    raise QueryError(f"HTTP 400: invalid SPARQL query ({e})") from e

                # Non-retryable HTTP error (auth failures included)
                raise EndpointError(f"HTTP {status_code}: {e}", status_code) from e

            except requests.exceptions.RequestException as e:
                if not use_post and self._should_retry_with_post(str(e).lower()):
                    logger.debug(f"GET failed, switching to POST: {e}")
                    self._requires_post = True
                    use_post = True
                    continue

                attempt += 1
                self._handle_retry(attempt, query_type, e)

            except json.JSONDecodeError as e:
                attempt += 1
                self._handle_retry(attempt, query_type, e)

        raise EndpointError(
            f"{query_type} failed: no usable response after {self.max_retries} attempts"
        )

    def _request_headers(self, extra: dict[str, str] | None = None) -> dict[str, str]:
        headers = {
            "Accept": MimeTypes.SELECT_ACCEPT,
            "User-Agent": self.USER_AGENT,
        }
        headers.update(extra or {})
        headers.update(self.headers)
        return headers

    def _get_query(self, query: str) -> str:
        """
        Execute SPARQL query using HTTP GET.

        Raises:
            requests.exceptions.HTTPError: On HTTP errors
        """
        response = self._session.get(
            self.endpoint_url,
            params={"query": query},
            headers=self._request_headers(),
            timeout=self.timeout,
        )
        response.raise_for_status()

        return response.text

    def _post_query(self, query: str) -> str:
        """
        Execute SPARQL query using HTTP POST.

        Uses application/x-www-form-urlencoded encoding as per SPARQL protocol.

        Raises:
            requests.exceptions.HTTPError: On HTTP errors
        """
        response = self._session.post(
            self.endpoint_url,
            data={"query": query},
            headers=self._request_headers(
                {"Content-Type": "application/x-www-form-urlencoded"}
            ),
            timeout=self.timeout,
        )
        response.raise_for_status()

        return response.text

    def _handle_retry(
        self,
        attempt: int,
        query_type: str,
        error: Exception,
        status_code: int | None = None,
    ) -> None:
        """
        Handle retry logic with exponential backoff.

        Raises:
            EndpointError: If max retries exceeded
        """
        logger.warning(f"Query attempt {attempt}/{self.max_retries} failed: {error}")

        if attempt >= self.max_retries:
            logger.error(f"{query_type} failed after {self.max_retries} tries")
            raise EndpointError(
                f"Query failed after {self.max_retries} attempts: {error}",
                status_code,
            ) from error

        # Exponential backoff with jitter
        backoff = min(self.initial_backoff * (2 ** (attempt - 1)), self.max_backoff)
        jitter = secrets.randbelow(int(backoff * 0.1 * 1000) + 1) / 1000
        sleep_time = backoff + jitter

        logger.info(f"Retrying in {sleep_time:.1f}s (attempt {attempt + 1}/{self.max_retries})")
        time.sleep(sleep_time)

    def _should_retry_with_post(self, error_msg: str) -> bool:
        """Check if error indicates POST method should be tried."""
        return any(pattern in error_msg for pattern in self.POST_RETRY_PATTERNS)

    def _is_html_response(self, content: str) -> bool:
        """Check if content appears to be HTML (error page) instead of JSON."""
        if not content:
            return False
        stripped = content.strip()
        return any(stripped.startswith(marker) for marker in self.HTML_MARKERS)

    def close(self) -> None:
        """Close the underlying requests session."""
        self._session.close()

    def __enter__(self) -> SparqlHelper:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        url = self.endpoint_url
        return f"SparqlHelper({url!r}, use_post={self._requires_post})"
