"""SPARQL query execution for the capability probes.

This module provides structured SPARQL query execution built on top of
:class:`~skosprobe.sparql_helper.SparqlHelper`.  It adds:

* Pydantic result models (:class:`ResultCell`, :class:`QueryResult`)
  that give typed access to SPARQL JSON result bindings.
* :func:`execute_query` / :func:`execute_ask`, which take an
  :class:`~skosprobe.models.EndpointDescriptor` (URL plus credentials)
  and raise :class:`ProbeFailure` when the endpoint cannot answer.

All HTTP / retry / GET→POST logic is delegated to ``SparqlHelper``.
"""

from __future__ import annotations

import logging
import time
from typing import Any

from pydantic import BaseModel

from skosprobe.config import Config
from skosprobe.models import EndpointDescriptor
from skosprobe.sparql_helper import EndpointError, QueryError, SparqlHelper, SparqlHelperError

logger = logging.getLogger(__name__)


class ProbeFailure(Exception):
    """A probe query could not be answered by the endpoint.

    Wraps the underlying client error, available as :attr:`cause`.
    """

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.cause = cause

    @property
    def rejected(self) -> bool:
        """True when the endpoint refused the query itself (HTTP 4xx)."""
        if isinstance(self.cause, QueryError):
            return True
        if isinstance(self.cause, EndpointError) and self.cause.status_code:
            return 400 <= self.cause.status_code < 500
        return False


# ── Result models ─────────────────────────────────────────────────


class ResultCell(BaseModel):
    """One cell in a SPARQL result row."""

    value: str
    type: str  # "uri" | "literal" | "bnode"
    lang: str | None = None
    datatype: str | None = None


class QueryResult(BaseModel):
    """Structured result from a SPARQL query execution."""

    query: str
    endpoint: str
    variables: list[str]
    rows: list[dict[str, ResultCell]]
    row_count: int
    duration_ms: int

    def values(self, var: str) -> list[str]:
        """All bound values of ``?var``, in row order."""
        return [row[var].value for row in self.rows if var in row]

    def first(self, var: str, default: str | None = None) -> str | None:
        for row in self.rows:
            if var in row:
                return row[var].value
        return default


# ── Public helpers ────────────────────────────────────────────────


def make_helper(
    endpoint: EndpointDescriptor,
    config: type[Config] = Config,
    *,
    timeout: float | None = None,
    retries: int | None = None,
) -> SparqlHelper:
    """Build a :class:`SparqlHelper` for *endpoint* from *config*.

    *retries* counts the attempts after the first one.
    """
    retries = config.SPARQL_RETRIES if retries is None else retries
    return SparqlHelper(
        endpoint.url,
        max_retries=retries + 1,
        initial_backoff=config.SPARQL_BACKOFF,
        timeout=config.SPARQL_TIMEOUT if timeout is None else timeout,
        headers=endpoint.auth_headers(),
    )


def _preview(query: str) -> str:
    text = " ".join(query.split())
    return text[:200] + ("..." if len(text) > 200 else "")


def execute_query(
    endpoint: EndpointDescriptor,
    query: str,
    *,
    config: type[Config] = Config,
    timeout: float | None = None,
    retries: int | None = None,
) -> QueryResult:
    """Execute a SPARQL SELECT query and return a :class:`QueryResult`.

    Parameters
    ----------
    endpoint:
        Endpoint to query; its URL and credentials are used.
    query:
        Full SPARQL query string.
    config:
        Configuration class providing timeout, retry and backoff defaults.
    timeout, retries:
        Per-call overrides of the configured values.

    Raises
    ------
    ProbeFailure
        When the endpoint cannot answer after the configured retries.
    """
    logger.debug("Executing query on %s: %s", endpoint.url, _preview(query))
    t0 = time.monotonic()

    try:
        with make_helper(endpoint, config, timeout=timeout, retries=retries) as helper:
            json_result = helper.select(query)
    except SparqlHelperError as exc:
        raise ProbeFailure(str(exc), exc) from exc

    variables: list[str] = json_result.get("head", {}).get("vars", [])
    bindings: list[dict[str, Any]] = (
        json_result.get("results", {}).get("bindings", [])
    )

    rows: list[dict[str, ResultCell]] = []
    for binding in bindings:
        row: dict[str, ResultCell] = {}
        for var in variables:
            cell_data = binding.get(var)
            if cell_data:
                cell_type = cell_data.get("type", "literal")
                if cell_type == "uri":
                    rtype = "uri"
                elif cell_type == "bnode":
                    rtype = "bnode"
                else:
                    rtype = "literal"
                row[var] = ResultCell(
                    value=cell_data["value"],
                    type=rtype,
                    lang=cell_data.get("xml:lang"),
                    datatype=cell_data.get("datatype"),
                )
        rows.append(row)

    duration_ms = int((time.monotonic() - t0) * 1000)
    logger.debug("Query returned %d rows in %d ms", len(rows), duration_ms)

    return QueryResult(
        query=query,
        endpoint=endpoint.url,
        variables=variables,
        rows=rows,
        row_count=len(rows),
        duration_ms=duration_ms,
    )


def execute_ask(
    endpoint: EndpointDescriptor,
    query: str,
    *,
    config: type[Config] = Config,
    timeout: float | None = None,
    retries: int | None = None,
) -> bool:
    """Execute a SPARQL ASK query.

    Raises
    ------
    ProbeFailure
        When the endpoint cannot answer after the configured retries.
    """
    logger.debug("Executing ASK on %s: %s", endpoint.url, _preview(query))
    try:
        with make_helper(endpoint, config, timeout=timeout, retries=retries) as helper:
            return helper.ask(query)
    except SparqlHelperError as exc:
        raise ProbeFailure(str(exc), exc) from exc
