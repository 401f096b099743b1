"""
Capability probes: the SPARQL queries behind an endpoint analysis.

Each probe is a coroutine taking an
:class:`~skosprobe.models.EndpointDescriptor`.  The blocking HTTP work
runs in a worker thread (:func:`asyncio.to_thread`) so the event loop
stays free while a slow endpoint answers.

Probes raise :class:`~skosprobe.query.ProbeFailure` when the endpoint
cannot answer.  The one exception is :func:`detect_graphs`, which turns a
*rejected* ``GRAPH`` query into "support unknown", because a 4xx there is
itself the answer to the question being asked.

:class:`ProbeSuite` bundles the probes so the analysis controller can be
given alternative implementations (tests, cached probes).
"""

from __future__ import annotations

import asyncio
import functools
import logging
import re
import time
from collections import Counter
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from pydantic.alias_generators import to_camel

from skosprobe.config import Config
from skosprobe.models import (
    AnalysisResult,
    ConnectionCheck,
    DetectedLanguage,
    DuplicateDetection,
    EndpointDescriptor,
    GraphDetection,
    LabelPredicates,
    RelationshipFlags,
    SchemeDetection,
    VocabGraphDetection,
)
from skosprobe.policy import (
    choose_language_strategy,
    duplicate_skip_reason,
    should_probe_vocab_graphs,
)
from skosprobe.query import ProbeFailure, QueryResult, execute_ask, execute_query

logger = logging.getLogger(__name__)

SKOS_PREFIXES = """\
PREFIX skos: <http://www.w3.org/2004/02/skos/core#>
PREFIX skosxl: <http://www.w3.org/2008/05/skos-xl#>
PREFIX dct: <http://purl.org/dc/terms/>
PREFIX dc: <http://purl.org/dc/elements/1.1/>
PREFIX rdfs: <http://www.w3.org/2000/01/rdf-schema#>
"""

GRAPH_ASK_QUERY = "ASK { GRAPH ?g { ?s ?p ?o } }"

GRAPH_COUNT_QUERY = """\
SELECT (COUNT(DISTINCT ?g) AS ?count)
WHERE { GRAPH ?g { ?s ?p ?o } }"""

# The same labelled concept asserted in two different graphs
DUPLICATES_ASK_QUERY = SKOS_PREFIXES + """\
ASK {
  GRAPH ?g1 { ?concept a skos:Concept ; skos:prefLabel ?label }
  GRAPH ?g2 { ?concept skos:prefLabel ?label }
  FILTER(?g1 != ?g2)
}"""

_LABEL_PATTERN = """\
    ?concept a skos:Concept .
    {
      ?concept skos:prefLabel|skos:altLabel|skos:hiddenLabel|skos:definition|skos:scopeNote ?label .
    } UNION {
      ?concept skosxl:prefLabel/skosxl:literalForm ?label .
    } UNION {
      ?concept skosxl:altLabel/skosxl:literalForm ?label .
    }"""


# Characters that may not appear inside an IRIREF
_IRI_UNSAFE = re.compile(r'[\x00-\x20<>"{}|^`\\]')


def is_iri_ref(uri: str) -> bool:
    """True when *uri* can be written between angle brackets in a query."""
    return bool(uri) and _IRI_UNSAFE.search(uri) is None


def graph_enumeration_query(limit: int) -> str:
    return f"SELECT DISTINCT ?g WHERE {{ GRAPH ?g {{ ?s ?p ?o }} }} LIMIT {limit}"


def vocab_graphs_query(limit: int) -> str:
    """Graphs holding a concept scheme or a labelled concept."""
    return SKOS_PREFIXES + f"""\
SELECT DISTINCT ?g
WHERE {{
  GRAPH ?g {{
    {{ ?s a skos:ConceptScheme }}
    UNION
    {{ ?s a skos:Concept . ?s skos:prefLabel ?label }}
  }}
}}
LIMIT {limit}"""


def languages_query(use_graph_scope: bool = False) -> str:
    """Label languages over the whole dataset.

    With *use_graph_scope* the concept and its labels must share a graph,
    so triples copied into several graphs are not counted twice.
    """
    where = f"GRAPH ?g {{\n{_LABEL_PATTERN}\n  }}" if use_graph_scope else _LABEL_PATTERN
    return SKOS_PREFIXES + f"""\
SELECT ?lang (COUNT(?label) AS ?count)
WHERE {{
  {where}
  BIND(LANG(?label) AS ?lang)
  FILTER(?lang != "")
}}
GROUP BY ?lang
ORDER BY DESC(?count)"""


def batch_languages_query(graph_uris: list[str]) -> str:
    """Languages of the listed graphs; URIs must pass :func:`is_iri_ref`."""
    values = " ".join(f"<{uri}>" for uri in graph_uris)
    return SKOS_PREFIXES + f"""\
SELECT ?lang (COUNT(*) AS ?count)
WHERE {{
  VALUES ?g {{ {values} }}
  GRAPH ?g {{
    {{ ?concept skos:prefLabel ?label }}
    UNION
    {{ ?concept skosxl:prefLabel/skosxl:literalForm ?label }}
    FILTER(LANG(?label) != "")
    BIND(LANG(?label) AS ?lang)
  }}
}}
GROUP BY ?lang"""


CONCEPT_COUNT_QUERY = SKOS_PREFIXES + """\
SELECT (COUNT(DISTINCT ?concept) AS ?count)
WHERE { ?concept a skos:Concept }"""

SCHEME_COUNT_QUERY = SKOS_PREFIXES + """\
SELECT (COUNT(DISTINCT ?scheme) AS ?count)
WHERE { ?scheme a skos:ConceptScheme }"""

# RelationshipFlags field -> pattern that must exist somewhere
RELATIONSHIP_PATTERNS = {
    "has_in_scheme": "?c a skos:Concept . ?c skos:inScheme ?x",
    "has_top_concept_of": "?c a skos:Concept . ?c skos:topConceptOf ?x",
    "has_has_top_concept": "?s skos:hasTopConcept ?x",
    "has_broader": "?c a skos:Concept . ?c skos:broader ?x",
    "has_narrower": "?c a skos:Concept . ?c skos:narrower ?x",
    "has_broader_transitive": "?c a skos:Concept . ?c skos:broaderTransitive ?x",
    "has_narrower_transitive": "?c a skos:Concept . ?c skos:narrowerTransitive ?x",
}

# LabelPredicates field -> property path of the label
LABEL_PREDICATE_PATHS = {
    "pref_label": "skos:prefLabel",
    "xl_pref_label": "skosxl:prefLabel/skosxl:literalForm",
    "dct_title": "dct:title",
    "dc_title": "dc:title",
    "rdfs_label": "rdfs:label",
}

LABEL_RESOURCE_TYPES = {
    "concept": "skos:Concept",
    "scheme": "skos:ConceptScheme",
    "collection": "skos:Collection",
}


def _exists_query(patterns: dict[str, str]) -> str:
    projections = "\n".join(
        f"  (EXISTS {{ {pattern} }} AS ?{to_camel(field)})"
        for field, pattern in patterns.items()
    )
    return SKOS_PREFIXES + f"SELECT\n{projections}\nWHERE {{}}"


def relationships_query() -> str:
    return _exists_query(RELATIONSHIP_PATTERNS)


def label_predicates_query(rdf_type: str) -> str:
    """EXISTS flags for each label predicate on resources of *rdf_type*."""
    return _exists_query({
        field: f"?r a {rdf_type} . ?r {path} ?x"
        for field, path in LABEL_PREDICATE_PATHS.items()
    })


def schemes_query(limit: int) -> str:
    return SKOS_PREFIXES + f"""\
SELECT DISTINCT ?scheme
WHERE {{ ?scheme a skos:ConceptScheme }}
LIMIT {limit}"""


# ── Query plumbing ────────────────────────────────────────────────


async def _select(
    endpoint: EndpointDescriptor, query: str, config: type[Config], **kwargs: Any,
) -> QueryResult:
    return await asyncio.to_thread(execute_query, endpoint, query, config=config, **kwargs)


async def _ask(
    endpoint: EndpointDescriptor, query: str, config: type[Config], **kwargs: Any,
) -> bool:
    return await asyncio.to_thread(execute_ask, endpoint, query, config=config, **kwargs)


def _to_int(value: Optional[str]) -> int:
    if not value:
        return 0
    try:
        return int(value)
    except ValueError:
        # Some endpoints type COUNT results as xsd:decimal
        return int(float(value))


def _language_rows(result: QueryResult) -> list[tuple[str, int]]:
    rows = []
    for row in result.rows:
        lang = row["lang"].value if "lang" in row else ""
        if lang:
            count = _to_int(row["count"].value if "count" in row else None)
            rows.append((lang, count))
    return rows


# ── Probes ────────────────────────────────────────────────────────


async def detect_graphs(
    endpoint: EndpointDescriptor,
    *,
    config: type[Config] = Config,
) -> GraphDetection:
    """Detect named-graph support and approximate graph population.

    ``supports_named_graphs`` is None when the endpoint rejects ``GRAPH``
    queries, False when it has no named graphs.  The count is exact when
    ``COUNT(DISTINCT ?g)`` succeeds; otherwise graphs are enumerated up to
    ``GRAPH_COUNT_LIMIT`` and the count is a lower bound once the limit is
    reached.
    """
    try:
        has_graphs = await _ask(endpoint, GRAPH_ASK_QUERY, config)
    except ProbeFailure as exc:
        if not exc.rejected:
            raise
        logger.warning(f"GRAPH queries rejected by {endpoint.url}: {exc}")
        return GraphDetection(supports_named_graphs=None, query_method="ask")

    if not has_graphs:
        return GraphDetection(
            supports_named_graphs=False,
            graph_count=0,
            graph_count_exact=True,
            query_method="ask",
        )

    try:
        result = await _select(endpoint, GRAPH_COUNT_QUERY, config)
        return GraphDetection(
            supports_named_graphs=True,
            graph_count=_to_int(result.first("count")),
            graph_count_exact=True,
            query_method="count",
        )
    except ProbeFailure as exc:
        logger.warning(f"Graph COUNT failed on {endpoint.url}, enumerating instead: {exc}")

    limit = config.GRAPH_COUNT_LIMIT
    result = await _select(endpoint, graph_enumeration_query(limit + 1), config)
    found = len(set(result.values("g")))
    return GraphDetection(
        supports_named_graphs=True,
        graph_count=min(found, limit),
        graph_count_exact=found <= limit,
        query_method="enumerate",
    )


async def detect_vocab_graphs(
    endpoint: EndpointDescriptor,
    *,
    max_graphs: Optional[int] = None,
    config: type[Config] = Config,
) -> VocabGraphDetection:
    """Find graphs with a ``skos:ConceptScheme`` or a labelled ``skos:Concept``.

    URIs are returned only when there are at most *max_graphs* of them
    (default ``VOCAB_GRAPH_BATCH_THRESHOLD``); beyond that ``uris`` is None
    and ``count`` is a lower bound.
    """
    threshold = config.VOCAB_GRAPH_BATCH_THRESHOLD if max_graphs is None else max_graphs
    result = await _select(endpoint, vocab_graphs_query(threshold + 1), config)
    uris = list(dict.fromkeys(result.values("g")))

    if len(uris) > threshold:
        return VocabGraphDetection(count=len(uris), uris=None)
    return VocabGraphDetection(count=len(uris), uris=uris)


async def detect_duplicates(
    endpoint: EndpointDescriptor,
    *,
    config: type[Config] = Config,
) -> DuplicateDetection:
    """Check whether labelled concepts are copied across named graphs."""
    found = await _ask(endpoint, DUPLICATES_ASK_QUERY, config)
    return DuplicateDetection(has_duplicates=found)


async def detect_languages(
    endpoint: EndpointDescriptor,
    use_graph_scope: bool = False,
    graph_uris: Optional[list[str]] = None,
    *,
    batch_size: Optional[int] = None,
    config: type[Config] = Config,
) -> list[DetectedLanguage]:
    """Detect label languages, most used first.

    With *graph_uris* the listed graphs are queried in batches of
    *batch_size* (default ``LANGUAGE_BATCH_SIZE``), one after the other,
    and the counts merged.  Without them the whole dataset is queried,
    graph-scoped when *use_graph_scope* is set.  Graph URIs that cannot
    be written as IRIs are skipped.
    """
    usable = [uri for uri in graph_uris or [] if is_iri_ref(uri)]
    if graph_uris and len(usable) < len(graph_uris):
        logger.warning(
            f"Skipping {len(graph_uris) - len(usable)} graph URI(s) on {endpoint.url} "
            f"that cannot be written as IRIs"
        )
    if usable:
        return await _detect_languages_batched(
            endpoint, usable, batch_size or config.LANGUAGE_BATCH_SIZE, config,
        )

    result = await _select(endpoint, languages_query(use_graph_scope), config)
    return [DetectedLanguage(lang=lang, count=count) for lang, count in _language_rows(result)]


async def _detect_languages_batched(
    endpoint: EndpointDescriptor,
    graph_uris: list[str],
    batch_size: int,
    config: type[Config],
) -> list[DetectedLanguage]:
    totals: Counter[str] = Counter()
    batches = [graph_uris[i:i + batch_size] for i in range(0, len(graph_uris), batch_size)]

    for n, batch in enumerate(batches, start=1):
        logger.debug(f"Language batch {n}/{len(batches)} ({len(batch)} graphs)")
        result = await _select(endpoint, batch_languages_query(batch), config)
        for lang, count in _language_rows(result):
            totals[lang] += count

    return [
        DetectedLanguage(lang=lang, count=count)
        for lang, count in totals.most_common()
    ]


def _exists(value: Optional[str]) -> bool:
    # EXISTS comes back as "true"/"false" or "1"/"0" depending on the store
    return value in ("true", "1")


async def count_concepts(
    endpoint: EndpointDescriptor,
    *,
    config: type[Config] = Config,
) -> Optional[int]:
    """Number of distinct ``skos:Concept`` resources, None when the count fails."""
    try:
        result = await _select(endpoint, CONCEPT_COUNT_QUERY, config)
    except ProbeFailure as exc:
        logger.warning(f"Failed to count concepts on {endpoint.url}: {exc}")
        return None
    return _to_int(result.first("count"))


async def detect_relationships(
    endpoint: EndpointDescriptor,
    *,
    config: type[Config] = Config,
) -> Optional[RelationshipFlags]:
    """Which SKOS relationships are used at all, None when the query fails."""
    try:
        result = await _select(endpoint, relationships_query(), config)
    except ProbeFailure as exc:
        logger.warning(f"Failed to detect relationships on {endpoint.url}: {exc}")
        return None
    if not result.rows:
        return None
    return RelationshipFlags(**{
        field: _exists(result.first(to_camel(field)))
        for field in RELATIONSHIP_PATTERNS
    })


async def detect_concept_schemes(
    endpoint: EndpointDescriptor,
    *,
    max_schemes: Optional[int] = None,
    config: type[Config] = Config,
) -> SchemeDetection:
    """Count concept schemes and list up to *max_schemes* of their URIs.

    A failed count reports no schemes; a failed listing keeps the count.
    """
    limit = config.MAX_STORED_SCHEMES if max_schemes is None else max_schemes
    try:
        total = _to_int((await _select(endpoint, SCHEME_COUNT_QUERY, config)).first("count"))
    except ProbeFailure as exc:
        logger.warning(f"Failed to count schemes on {endpoint.url}: {exc}")
        return SchemeDetection()

    if total == 0:
        return SchemeDetection()

    try:
        result = await _select(endpoint, schemes_query(limit), config)
    except ProbeFailure as exc:
        logger.warning(f"Failed to fetch scheme URIs on {endpoint.url}: {exc}")
        return SchemeDetection(scheme_count=total)

    return SchemeDetection(
        scheme_uris=result.values("scheme"),
        scheme_count=total,
        schemes_limited=total > limit,
    )


async def detect_label_predicates(
    endpoint: EndpointDescriptor,
    *,
    config: type[Config] = Config,
) -> dict[str, LabelPredicates]:
    """Label predicates per resource type; types without any are left out."""
    found: dict[str, LabelPredicates] = {}
    for key, rdf_type in LABEL_RESOURCE_TYPES.items():
        try:
            result = await _select(endpoint, label_predicates_query(rdf_type), config)
        except ProbeFailure as exc:
            logger.warning(f"Failed to detect label predicates for {key} on {endpoint.url}: {exc}")
            continue
        predicates = LabelPredicates(**{
            field: _exists(result.first(to_camel(field)))
            for field in LABEL_PREDICATE_PATHS
        })
        if predicates.has_any():
            found[key] = predicates
    return found


async def analyze_endpoint(
    endpoint: EndpointDescriptor,
    *,
    config: type[Config] = Config,
) -> AnalysisResult:
    """Run every probe in one go and return the complete analysis.

    Same probe order and strategy decisions as the logged pipeline in
    :class:`~skosprobe.analysis.AnalysisController`, without the log.
    It also counts concepts and concept schemes and checks which SKOS
    relationships and label predicates are in use.
    """
    graphs = await detect_graphs(endpoint, config=config)

    vocab = VocabGraphDetection()
    if should_probe_vocab_graphs(graphs):
        vocab = await detect_vocab_graphs(endpoint, config=config)

    has_duplicates = False
    if duplicate_skip_reason(graphs) is None:
        has_duplicates = (await detect_duplicates(endpoint, config=config)).has_duplicates

    strategy = choose_language_strategy(vocab.uris, has_duplicates)
    languages = await detect_languages(
        endpoint, strategy.use_graph_scope, strategy.uris, config=config,
    )

    total_concepts = await count_concepts(endpoint, config=config)
    relationships = await detect_relationships(endpoint, config=config)
    schemes = await detect_concept_schemes(endpoint, config=config)
    label_predicates = await detect_label_predicates(endpoint, config=config)

    return AnalysisResult(
        supports_named_graphs=graphs.supports_named_graphs,
        graph_count=graphs.graph_count,
        graph_count_exact=graphs.graph_count_exact,
        vocab_graph_count=vocab.count,
        vocab_graph_uris=vocab.uris,
        has_duplicate_triples=has_duplicates,
        languages=languages,
        total_concepts=total_concepts,
        relationships=relationships,
        scheme_uris=schemes.scheme_uris,
        scheme_count=schemes.scheme_count,
        schemes_limited=schemes.schemes_limited,
        label_predicates=label_predicates or None,
    )


async def check_connection(
    endpoint: EndpointDescriptor,
    *,
    config: type[Config] = Config,
) -> ConnectionCheck:
    """Send a one-row query, without retries, and report how it went."""
    t0 = time.monotonic()
    try:
        await _select(
            endpoint,
            "SELECT * WHERE { ?s ?p ?o } LIMIT 1",
            config,
            timeout=config.PING_TIMEOUT,
            retries=0,
        )
    except ProbeFailure as exc:
        return ConnectionCheck(
            success=False,
            response_time_ms=int((time.monotonic() - t0) * 1000),
            error=exc.message,
        )
    return ConnectionCheck(
        success=True,
        response_time_ms=int((time.monotonic() - t0) * 1000),
    )


@dataclass
class ProbeSuite:
    """The collaborators an analysis run calls, one coroutine each."""

    analyze_endpoint: Callable[[EndpointDescriptor], Awaitable[AnalysisResult]]
    detect_graphs: Callable[[EndpointDescriptor], Awaitable[GraphDetection]]
    detect_vocab_graphs: Callable[[EndpointDescriptor], Awaitable[VocabGraphDetection]]
    detect_duplicates: Callable[[EndpointDescriptor], Awaitable[DuplicateDetection]]
    detect_languages: Callable[..., Awaitable[list[DetectedLanguage]]]

    @classmethod
    def from_config(cls, config: type[Config] = Config) -> ProbeSuite:
        """The SPARQL probes of this module bound to *config*."""
        return cls(
            analyze_endpoint=functools.partial(analyze_endpoint, config=config),
            detect_graphs=functools.partial(detect_graphs, config=config),
            detect_vocab_graphs=functools.partial(detect_vocab_graphs, config=config),
            detect_duplicates=functools.partial(detect_duplicates, config=config),
            detect_languages=functools.partial(detect_languages, config=config),
        )
