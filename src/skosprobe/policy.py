"""Decisions about which probes to run and how to parameterise them.

These are pure functions over earlier probe outputs; both the logged
pipeline (:mod:`skosprobe.analysis`) and the single-shot probe
(:func:`skosprobe.probes.analyze_endpoint`) go through them so the two
paths cannot drift apart.
"""

from __future__ import annotations

from typing import List, Literal, NamedTuple, Optional

from skosprobe.models import GraphDetection

StrategyMode = Literal["batched", "graph-scoped", "default"]


class LanguageStrategy(NamedTuple):
    """How the language probe is called."""

    mode: StrategyMode
    use_graph_scope: bool
    uris: Optional[List[str]]

    def describe(self) -> str:
        if self.mode == "batched":
            n = len(self.uris or [])
            return f"batched, {n} graph{'' if n == 1 else 's'}"
        return self.mode


def should_probe_vocab_graphs(graphs: GraphDetection) -> bool:
    """SKOS graphs are only looked for when named graphs are supported."""
    return bool(graphs.supports_named_graphs)


def duplicate_skip_reason(graphs: GraphDetection) -> Optional[str]:
    """Why the duplicate-triples probe is skipped, or None to run it.

    Duplicates across graphs need named graphs and more than one of them.
    """
    if not graphs.supports_named_graphs:
        return "not supported"
    if graphs.graph_count is None:
        return "graph count unknown"
    if graphs.graph_count <= 1:
        return "single graph"
    return None


def choose_language_strategy(
    vocab_graph_uris: Optional[List[str]],
    has_duplicates: bool,
) -> LanguageStrategy:
    """Pick the language probe call shape.

    ======================  ==========  ===============================
    vocab graph URIs known  duplicates  call
    ======================  ==========  ===============================
    yes                     either      batched(uris, scope=duplicates)
    no                      yes         scoped(scope=True, uris=None)
    no                      no          default(scope=False, uris=None)
    ======================  ==========  ===============================
    """
    if vocab_graph_uris is not None:
        return LanguageStrategy("batched", has_duplicates, list(vocab_graph_uris))
    if has_duplicates:
        return LanguageStrategy("graph-scoped", True, None)
    return LanguageStrategy("default", False, None)
