"""
Pydantic models for endpoints and their capability analysis.

Provides type-safe data structures for the endpoint descriptor, the
persisted analysis result and the outputs of the individual probes.
Models serialise with camelCase aliases (``model_dump(by_alias=True)``)
so stored analyses keep their established field names.
"""

import base64
from datetime import datetime, timezone
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


def utc_now() -> str:
    """Current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class EndpointAuth(_CamelModel):
    """Authentication settings for an endpoint."""

    type: Literal["none", "basic", "apikey", "bearer"] = "none"
    username: Optional[str] = None
    password: Optional[str] = None
    api_key: Optional[str] = None
    token: Optional[str] = None
    header_name: str = "X-API-Key"

    def to_headers(self) -> Dict[str, str]:
        """HTTP headers carrying these credentials (empty when incomplete)."""
        if self.type == "basic" and self.username and self.password:
            raw = f"{self.username}:{self.password}".encode()
            return {"Authorization": f"Basic {base64.b64encode(raw).decode()}"}
        if self.type == "bearer" and self.token:
            return {"Authorization": f"Bearer {self.token}"}
        if self.type == "apikey" and self.api_key:
            return {self.header_name or "X-API-Key": self.api_key}
        return {}


class DetectedLanguage(_CamelModel):
    """One label language and the number of labels using it."""

    lang: str = Field(..., description="Language tag")
    count: int = Field(..., ge=0, description="Number of labels")


class RelationshipFlags(_CamelModel):
    """Which SKOS relationships occur at least once in the dataset."""

    has_in_scheme: bool = False
    has_top_concept_of: bool = False
    has_has_top_concept: bool = False
    has_broader: bool = False
    has_narrower: bool = False
    has_broader_transitive: bool = False
    has_narrower_transitive: bool = False

    def available(self) -> int:
        """Number of relationships found."""
        return sum(1 for flag in self.model_dump().values() if flag)


class LabelPredicates(_CamelModel):
    """Label predicates used by one resource type."""

    pref_label: bool = False
    xl_pref_label: bool = False
    dct_title: bool = False
    dc_title: bool = False
    rdfs_label: bool = False

    def has_any(self) -> bool:
        return any(self.model_dump().values())


class AnalysisResult(_CamelModel):
    """Persisted outcome of one endpoint analysis."""

    supports_named_graphs: Optional[bool] = Field(
        None, description="None when GRAPH queries could not be evaluated",
    )
    graph_count: Optional[int] = Field(None, ge=0)
    graph_count_exact: bool = True
    vocab_graph_count: Optional[int] = Field(
        None, ge=0, description="Graphs holding SKOS data; None if not applicable",
    )
    vocab_graph_uris: Optional[List[str]] = Field(
        None, description="None when there are too many graphs to enumerate",
    )
    has_duplicate_triples: bool = False
    languages: List[DetectedLanguage] = Field(default_factory=list)
    analyzed_at: str = Field(default_factory=utc_now)

    # Filled in by the single-shot analysis only
    total_concepts: Optional[int] = Field(None, ge=0)
    relationships: Optional[RelationshipFlags] = None
    scheme_uris: Optional[List[str]] = None
    scheme_count: Optional[int] = Field(None, ge=0)
    schemes_limited: Optional[bool] = None
    label_predicates: Optional[Dict[str, LabelPredicates]] = Field(
        None, description="Keyed by resource type: concept, scheme, collection",
    )


class EndpointDescriptor(_CamelModel):
    """A remote SPARQL service known to the caller."""

    id: str
    name: str
    url: str
    auth: Optional[EndpointAuth] = None
    analysis: Optional[AnalysisResult] = None
    created_at: str = Field(default_factory=utc_now)
    last_accessed_at: Optional[str] = None
    access_count: int = Field(0, ge=0)

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate that the endpoint URL is an HTTP(S) URL."""
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"Invalid endpoint URL: {v}")
        return v

    def auth_headers(self) -> Dict[str, str]:
        return self.auth.to_headers() if self.auth else {}

    def with_analysis(self, analysis: AnalysisResult) -> "EndpointDescriptor":
        """Copy of this descriptor with *analysis* attached."""
        return self.model_copy(update={"analysis": analysis})


# -- probe outputs -----------------------------------------------------


class GraphDetection(_CamelModel):
    """Outcome of the named-graph probe."""

    supports_named_graphs: Optional[bool] = None
    graph_count: Optional[int] = None
    graph_count_exact: bool = True
    query_method: Optional[str] = None


class VocabGraphDetection(_CamelModel):
    """Graphs holding SKOS vocabulary data."""

    count: Optional[int] = None
    uris: Optional[List[str]] = None


class DuplicateDetection(_CamelModel):
    """Whether the same triples appear in more than one graph."""

    has_duplicates: bool = False


class ConnectionCheck(_CamelModel):
    """Result of a connection test against an endpoint."""

    success: bool
    response_time_ms: int = 0
    error: Optional[str] = None


class SchemeDetection(_CamelModel):
    """Concept schemes of an endpoint; URIs are capped at a maximum."""

    scheme_uris: List[str] = Field(default_factory=list)
    scheme_count: int = 0
    schemes_limited: bool = False
