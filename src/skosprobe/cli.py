"""Command line interface for :mod:`skosprobe`."""

import asyncio
import hashlib
import json
from typing import Optional
from urllib.parse import urlparse

import click
from pydantic import ValidationError

from .analysis import AnalysisController, RunState
from .capabilities import CapabilitySummary, format_count
from .models import EndpointAuth, EndpointDescriptor
from .probes import check_connection
from .query import ProbeFailure

__all__ = [
    "main",
]

_STATUS_MARKS = {"pending": "..", "success": "OK", "error": "!!"}


def _endpoint_from_options(
    url: str,
    name: Optional[str],
    auth_type: str,
    username: Optional[str],
    password: Optional[str],
    token: Optional[str],
    api_key: Optional[str],
) -> EndpointDescriptor:
    auth = None
    if auth_type != "none":
        auth = EndpointAuth(
            type=auth_type,
            username=username,
            password=password,
            token=token,
            api_key=api_key,
        )
    try:
        return EndpointDescriptor(
            id=hashlib.md5(url.encode()).hexdigest()[:12],
            name=name or urlparse(url).netloc or url,
            url=url,
            auth=auth,
        )
    except ValidationError as e:
        raise click.BadParameter(e.errors()[0]["msg"], param_hint="--endpoint") from e


def _auth_options(func):
    func = click.option("--api-key", help="API key (with --auth apikey)")(func)
    func = click.option("--token", help="Bearer token (with --auth bearer)")(func)
    func = click.option("--password", help="Password (with --auth basic)")(func)
    func = click.option("--username", help="User name (with --auth basic)")(func)
    func = click.option(
        "--auth",
        "auth_type",
        type=click.Choice(["none", "basic", "bearer", "apikey"]),
        default="none",
        show_default=True,
        help="Authentication scheme",
    )(func)
    return func


@click.group()
@click.version_option()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.pass_context
def main(ctx: click.Context, verbose: bool) -> None:
    r"""skosprobe - SKOS capability probing for SPARQL endpoints.

    Detects named-graph support, SKOS vocabulary graphs, duplicate
    triples and label languages of a SPARQL endpoint.
    """
    import logging

    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose

    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            force=True,
        )
        logging.getLogger("skosprobe").setLevel(logging.DEBUG)
    else:
        logging.basicConfig(level=logging.WARNING, format="%(levelname)s: %(message)s", force=True)


@main.command()
@click.option("--endpoint", required=True, help="SPARQL endpoint URL")
@click.option("--name", help="Display name of the endpoint")
@click.option("--fast", is_flag=True, help="Single-shot analysis without a stage log")
@click.option("--json", "as_json", is_flag=True, help="Print the analysis as JSON")
@_auth_options
def analyze(
    endpoint: str,
    name: Optional[str],
    fast: bool,
    as_json: bool,
    auth_type: str,
    username: Optional[str],
    password: Optional[str],
    token: Optional[str],
    api_key: Optional[str],
) -> None:
    r"""Analyze the SKOS capabilities of a SPARQL endpoint.

    Runs the staged analysis (graph support, SKOS graphs, duplicate
    triples, languages) and prints each stage as it completes.


    Example:
      skosprobe analyze --endpoint https://vocabularies.unesco.org/sparql
    """
    descriptor = _endpoint_from_options(
        endpoint, name, auth_type, username, password, token, api_key,
    )
    controller = AnalysisController()

    if not as_json:
        click.echo(f"Analyzing: {descriptor.url}")
        printed = 0

        def echo_new_entries(state: RunState) -> None:
            nonlocal printed
            for entry in state.analysis_log[printed:]:
                click.echo(f"  [{_STATUS_MARKS[entry.status]}] {entry.message}")
            printed = len(state.analysis_log)

        controller.subscribe(echo_new_entries)

    try:
        if fast:
            result = asyncio.run(controller.analyze(descriptor))
        else:
            result = asyncio.run(controller.reanalyze_endpoint(descriptor))
    except ProbeFailure as e:
        click.echo(f"Error: {e}", err=True)
        raise click.Abort()

    descriptor = descriptor.with_analysis(result)

    if as_json:
        click.echo(json.dumps(result.model_dump(by_alias=True), indent=2))
        return

    summary = CapabilitySummary(descriptor)
    click.echo("\nCapabilities:")
    click.echo("=" * 60)
    click.echo(f"Named graphs:  {summary.graph_support_status}")
    click.echo(f"SKOS graphs:   {summary.vocab_graph_status}")
    if summary.vocab_graph_description:
        click.echo(f"               {summary.vocab_graph_description}")
    click.echo(f"Duplicates:    {'yes' if result.has_duplicate_triples else 'no'}")
    click.echo(f"Concepts:      {summary.concept_count_status}")
    click.echo(f"Relationships: {summary.relationships_status}")
    if result.scheme_count is not None:
        click.echo(f"Schemes:       {format_count(result.scheme_count)}")
    click.echo(f"Languages:     {len(result.languages)}")
    for language in result.languages:
        click.echo(f"  {language.lang:<8} {format_count(language.count)}")
    if controller.analysis_duration is not None:
        click.echo(f"\nCompleted in {controller.analysis_duration} ms")


@main.command()
@click.option("--endpoint", required=True, help="SPARQL endpoint URL")
@_auth_options
def ping(
    endpoint: str,
    auth_type: str,
    username: Optional[str],
    password: Optional[str],
    token: Optional[str],
    api_key: Optional[str],
) -> None:
    """Check that an endpoint answers a trivial query."""
    descriptor = _endpoint_from_options(
        endpoint, None, auth_type, username, password, token, api_key,
    )
    check = asyncio.run(check_connection(descriptor))
    if check.success:
        click.echo(f"OK {descriptor.url} answered in {check.response_time_ms} ms")
        return
    click.echo(f"Error: {check.error} (after {check.response_time_ms} ms)", err=True)
    raise click.Abort()


if __name__ == "__main__":
    main()
