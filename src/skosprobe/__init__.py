"""skosprobe: SKOS capability probing for SPARQL endpoints.

Main modules:
- analysis: AnalysisController, the staged analysis with its run log
- probes: the SPARQL probes (graphs, SKOS graphs, duplicates, languages)
- capabilities: display values derived from a stored analysis
- sparql_helper: HTTP client with GET/POST fallback and retries
"""

from .analysis import AnalysisController, AnalysisInProgressError, AnalysisLogEntry, RunState
from .capabilities import CapabilitySummary, format_count
from .models import (
    AnalysisResult,
    DetectedLanguage,
    EndpointAuth,
    EndpointDescriptor,
    LabelPredicates,
    RelationshipFlags,
)
from .probes import ProbeSuite
from .query import ProbeFailure

# Import version information
from .version import VERSION

__all__ = [
    "VERSION",
    "AnalysisController",
    "AnalysisInProgressError",
    "AnalysisLogEntry",
    "AnalysisResult",
    "CapabilitySummary",
    "DetectedLanguage",
    "EndpointAuth",
    "EndpointDescriptor",
    "LabelPredicates",
    "ProbeFailure",
    "ProbeSuite",
    "RelationshipFlags",
    "RunState",
    "format_count",
]
