"""Tests for the SPARQL HTTP client and the query layer above it."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest
import requests

from skosprobe.config import TestConfig
from skosprobe.models import EndpointAuth, EndpointDescriptor
from skosprobe.query import ProbeFailure, execute_ask, execute_query
from skosprobe.sparql_helper import EndpointError, QueryError, SparqlHelper

SELECT_JSON = (
    '{"head":{"vars":["g","label"]},"results":{"bindings":['
    '{"g":{"type":"uri","value":"http://example.org/g1"},'
    '"label":{"type":"literal","value":"Kat","xml:lang":"nl"}}]}}'
)


def _response(text: str = SELECT_JSON) -> MagicMock:
    resp = MagicMock()
    resp.status_code = 200
    resp.text = text
    resp.raise_for_status = MagicMock()
    return resp


def _http_error(status_code: int) -> MagicMock:
    resp = MagicMock()
    resp.status_code = status_code
    resp.raise_for_status.side_effect = requests.exceptions.HTTPError(
        f"{status_code} Error", response=resp,
    )
    return resp


@patch("skosprobe.sparql_helper.requests.Session")
def test_select_with_get(mock_session_cls):
    mock_session = mock_session_cls.return_value
    mock_session.get.return_value = _response()

    helper = SparqlHelper("https://example.org/sparql/")
    result = helper.select("SELECT ?g ?label WHERE { ?s ?p ?o }")

    assert result["head"]["vars"] == ["g", "label"]
    mock_session.post.assert_not_called()
    args, kwargs = mock_session.get.call_args
    assert args[0] == "https://example.org/sparql"
    assert kwargs["params"] == {"query": "SELECT ?g ?label WHERE { ?s ?p ?o }"}


@patch("skosprobe.sparql_helper.requests.Session")
def test_html_response_switches_to_post(mock_session_cls):
    mock_session = mock_session_cls.return_value
    mock_session.get.return_value = _response("<!DOCTYPE html><html>oops</html>")
    mock_session.post.return_value = _response('{"head":{},"boolean":true}')

    helper = SparqlHelper("https://example.org/sparql", max_retries=1)

    assert helper.ask("ASK { ?s ?p ?o }") is True
    assert mock_session.post.call_count == 1
    assert "use_post=True" in repr(helper)


@patch("skosprobe.sparql_helper.requests.Session")
def test_method_not_allowed_switches_to_post(mock_session_cls):
    mock_session = mock_session_cls.return_value
    mock_session.get.return_value = _http_error(405)
    mock_session.post.return_value = _response()

    helper = SparqlHelper("https://example.org/sparql", max_retries=1)
    result = helper.select("SELECT ?g ?label WHERE { ?s ?p ?o }")

    binding = result["results"]["bindings"][0]
    assert binding["g"]["value"] == "http://example.org/g1"
    assert mock_session.get.call_count == 1
    headers = mock_session.post.call_args.kwargs["headers"]
    assert headers["Content-Type"] == "application/x-www-form-urlencoded"


@patch("skosprobe.sparql_helper.requests.Session")
def test_post_only_endpoint_with_default_config(mock_session_cls, endpoint):
    mock_session = mock_session_cls.return_value
    mock_session.get.return_value = _http_error(405)
    mock_session.post.return_value = _response()

    result = execute_query(endpoint, "SELECT ?g ?label WHERE { ?s ?p ?o }")

    assert result.values("g") == ["http://example.org/g1"]
    assert mock_session.post.call_count == 1


@patch("skosprobe.sparql_helper.requests.Session")
def test_post_fallback_without_retries(mock_session_cls, endpoint):
    mock_session = mock_session_cls.return_value
    mock_session.get.return_value = _response("<html><body>Use POST</body></html>")
    mock_session.post.return_value = _response()

    result = execute_query(
        endpoint, "SELECT ?g ?label WHERE { ?s ?p ?o }", config=TestConfig, retries=0,
    )

    assert result.row_count == 1
    assert mock_session.post.call_count == 1


@patch("skosprobe.sparql_helper.time.sleep")
@patch("skosprobe.sparql_helper.requests.Session")
def test_default_config_retries_once(mock_session_cls, mock_sleep, endpoint):
    mock_session = mock_session_cls.return_value
    mock_session.get.side_effect = [_http_error(503), _response()]

    result = execute_query(endpoint, "SELECT ?g ?label WHERE { ?s ?p ?o }")

    assert result.row_count == 1
    assert mock_session.get.call_count == 2
    mock_sleep.assert_called_once()


@patch("skosprobe.sparql_helper.requests.Session")
def test_zero_retries_gives_up_after_one_attempt(mock_session_cls, endpoint):
    mock_session = mock_session_cls.return_value
    mock_session.get.return_value = _http_error(503)

    with pytest.raises(ProbeFailure) as excinfo:
        execute_query(endpoint, "SELECT * WHERE { ?s ?p ?o }", config=TestConfig)

    assert mock_session.get.call_count == 1
    assert excinfo.value.cause.status_code == 503
    assert excinfo.value.rejected is False


@patch("skosprobe.sparql_helper.requests.Session")
def test_bad_request_raises_query_error(mock_session_cls):
    mock_session = mock_session_cls.return_value
    mock_session.get.return_value = _http_error(400)

    helper = SparqlHelper("https://example.org/sparql")

    with pytest.raises(QueryError):
        helper.select("SELECT nonsense")
    assert mock_session.get.call_count == 1


@patch("skosprobe.sparql_helper.requests.Session")
def test_unauthorized_is_not_retried(mock_session_cls):
    mock_session = mock_session_cls.return_value
    mock_session.get.return_value = _http_error(401)

    helper = SparqlHelper("https://example.org/sparql", max_retries=3)

    with pytest.raises(EndpointError) as excinfo:
        helper.select("SELECT * WHERE { ?s ?p ?o }")
    assert excinfo.value.status_code == 401
    assert mock_session.get.call_count == 1


@patch("skosprobe.sparql_helper.time.sleep")
@patch("skosprobe.sparql_helper.requests.Session")
def test_server_error_is_retried(mock_session_cls, mock_sleep):
    mock_session = mock_session_cls.return_value
    mock_session.get.side_effect = [_http_error(503), _response()]

    helper = SparqlHelper("https://example.org/sparql", max_retries=2, initial_backoff=0.5)
    result = helper.select("SELECT * WHERE { ?s ?p ?o }")

    assert result["results"]["bindings"]
    assert mock_session.get.call_count == 2
    mock_sleep.assert_called_once()
    assert 0.5 <= mock_sleep.call_args.args[0] <= 0.55


@patch("skosprobe.sparql_helper.time.sleep")
@patch("skosprobe.sparql_helper.requests.Session")
def test_retries_exhausted(mock_session_cls, mock_sleep):
    mock_session = mock_session_cls.return_value
    mock_session.get.side_effect = requests.exceptions.ConnectTimeout("connect timed out")

    helper = SparqlHelper("https://example.org/sparql", max_retries=2, initial_backoff=0)

    with pytest.raises(EndpointError, match="after 2 attempts"):
        helper.select("SELECT * WHERE { ?s ?p ?o }")
    assert mock_session.get.call_count == 2


@patch("skosprobe.sparql_helper.requests.Session")
def test_auth_headers_sent(mock_session_cls):
    mock_session = mock_session_cls.return_value
    mock_session.get.return_value = _response()

    helper = SparqlHelper(
        "https://example.org/sparql", headers={"Authorization": "Bearer s3cret"},
    )
    helper.select("SELECT * WHERE { ?s ?p ?o }")

    headers = mock_session.get.call_args.kwargs["headers"]
    assert headers["Authorization"] == "Bearer s3cret"
    assert headers["Accept"].startswith("application/sparql-results+json")


# -- query layer -------------------------------------------------------


@patch("skosprobe.sparql_helper.requests.Session")
def test_execute_query_builds_rows(mock_session_cls, endpoint):
    mock_session_cls.return_value.get.return_value = _response()

    result = execute_query(endpoint, "SELECT ?g ?label WHERE { ?s ?p ?o }", config=TestConfig)

    assert result.row_count == 1
    assert result.values("g") == ["http://example.org/g1"]
    cell = result.rows[0]["label"]
    assert cell.type == "literal"
    assert cell.lang == "nl"
    assert result.first("missing", "x") == "x"


@patch("skosprobe.sparql_helper.requests.Session")
def test_execute_query_sends_endpoint_credentials(mock_session_cls):
    mock_session = mock_session_cls.return_value
    mock_session.get.return_value = _response()
    secured = EndpointDescriptor(
        id="secured",
        name="Secured",
        url="https://example.org/private/sparql",
        auth=EndpointAuth(type="apikey", api_key="k-123", header_name="X-Key"),
    )

    execute_query(secured, "SELECT * WHERE { ?s ?p ?o }", config=TestConfig)

    assert mock_session.get.call_args.kwargs["headers"]["X-Key"] == "k-123"


@patch("skosprobe.sparql_helper.requests.Session")
def test_execute_ask_wraps_client_errors(mock_session_cls, endpoint):
    mock_session_cls.return_value.get.return_value = _http_error(400)

    with pytest.raises(ProbeFailure) as excinfo:
        execute_ask(endpoint, "ASK { GRAPH ?g { ?s ?p ?o } }", config=TestConfig)

    assert isinstance(excinfo.value.cause, QueryError)
    assert excinfo.value.rejected is True


def test_probe_failure_rejected():
    assert ProbeFailure("x", EndpointError("forbidden", 403)).rejected is True
    assert ProbeFailure("x", EndpointError("unavailable", 503)).rejected is False
    assert ProbeFailure("x", EndpointError("timed out")).rejected is False
    assert ProbeFailure("x").rejected is False
