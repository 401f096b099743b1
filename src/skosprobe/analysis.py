"""Endpoint analysis controller.

:class:`AnalysisController` drives the capability probes against one
endpoint and keeps a small, observable run state while doing so:

* ``analyzing`` - a run is in flight
* ``analyze_step`` - human readable current action
* ``analysis_log`` - one :class:`AnalysisLogEntry` per pipeline stage
* ``analysis_duration`` - wall-clock time of the last full run, in ms

Two entry points exist.  :meth:`AnalysisController.analyze` is the quick
single-shot probe used for a refresh.  :meth:`AnalysisController.reanalyze_endpoint`
runs the four-stage pipeline (graph support, SKOS graphs, duplicate
triples, languages) where each stage is parameterised by the ones before
it, logging every stage as it resolves.

A controller runs one analysis at a time; starting a second while the
first is in flight raises :class:`AnalysisInProgressError`.  Use one
controller per concurrent analysis.
"""

from __future__ import annotations

import dataclasses
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, List, Literal, Optional

from skosprobe.config import Config
from skosprobe.models import (
    AnalysisResult,
    DetectedLanguage,
    DuplicateDetection,
    EndpointDescriptor,
    GraphDetection,
    VocabGraphDetection,
)
from skosprobe.policy import (
    choose_language_strategy,
    duplicate_skip_reason,
    should_probe_vocab_graphs,
)
from skosprobe.probes import ProbeSuite

logger = logging.getLogger(__name__)

LogStatus = Literal["pending", "success", "error"]

STEP_FAST = "Analyzing endpoint structure..."
STEP_DONE = "Done!"


class AnalysisInProgressError(RuntimeError):
    """Raised when a controller is asked to start a second concurrent run."""


@dataclass(frozen=True)
class AnalysisLogEntry:
    """One line of the analysis log."""

    message: str
    status: LogStatus = "pending"


@dataclass
class RunState:
    """Transient state of an :class:`AnalysisController`."""

    analyzing: bool = False
    analyze_step: Optional[str] = None
    analysis_log: List[AnalysisLogEntry] = field(default_factory=list)
    analysis_duration: Optional[int] = None


Listener = Callable[[RunState], None]


def describe_error(exc: BaseException) -> str:
    """Message shown for a failed run; falls back to the exception type."""
    return str(exc) or exc.__class__.__name__


def _plural(n: int, noun: str) -> str:
    return noun if n == 1 else f"{noun}s"


def describe_graph_support(graphs: GraphDetection) -> str:
    """Log line for the graph-support stage.

    Inexact counts are lower bounds and carry a ``+`` suffix.
    """
    if graphs.supports_named_graphs is None:
        return "Graph support: unknown (default graph only)"
    if not graphs.supports_named_graphs:
        return "Graph support: no (default graph only)"
    if graphs.graph_count is None:
        return "Graph support: yes (graph count unknown)"
    suffix = "" if graphs.graph_count_exact else "+"
    noun = _plural(graphs.graph_count, "graph") if graphs.graph_count_exact else "graphs"
    return f"Graph support: yes ({graphs.graph_count}{suffix} {noun})"


def describe_vocab_graphs(vocab: VocabGraphDetection) -> str:
    if vocab.count is None:
        return "SKOS graphs: unknown"
    if vocab.count == 0:
        return "SKOS graphs: none found"
    if vocab.uris is None:
        return f"SKOS graphs: {vocab.count}+ (too many to batch)"
    return f"SKOS graphs: {vocab.count} (will batch)"


class AnalysisController:
    """Run endpoint analyses and expose their progress.

    Parameters
    ----------
    probes:
        The probe collaborators; defaults to the SPARQL probes of
        :mod:`skosprobe.probes` bound to *config*.
    config:
        Configuration used to build the default probes.
    """

    def __init__(
        self,
        probes: Optional[ProbeSuite] = None,
        config: type[Config] = Config,
    ) -> None:
        self.probes = probes or ProbeSuite.from_config(config)
        self.state = RunState()
        self._listeners: List[Listener] = []
        self._started_at: Optional[float] = None

    # -- observable state ------------------------------------------------

    @property
    def analyzing(self) -> bool:
        return self.state.analyzing

    @property
    def analyze_step(self) -> Optional[str]:
        return self.state.analyze_step

    @property
    def analysis_log(self) -> List[AnalysisLogEntry]:
        return self.state.analysis_log

    @property
    def analysis_duration(self) -> Optional[int]:
        return self.state.analysis_duration

    @property
    def elapsed_seconds(self) -> Optional[int]:
        """Whole seconds since the running analysis started, None when idle."""
        if not self.state.analyzing or self._started_at is None:
            return None
        return int(time.monotonic() - self._started_at)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call *listener* with a snapshot of the state after every change.

        Returns a function that removes the listener again.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        snapshot = dataclasses.replace(
            self.state, analysis_log=list(self.state.analysis_log),
        )
        for listener in list(self._listeners):
            listener(snapshot)

    def _update(self, **changes) -> None:
        for name, value in changes.items():
            setattr(self.state, name, value)
        self._notify()

    def _begin(self, step: str, **changes) -> None:
        if self.state.analyzing:
            raise AnalysisInProgressError(
                "An analysis is already running on this controller"
            )
        self._started_at = time.monotonic()
        self._update(analyzing=True, analyze_step=step, **changes)

    # -- log -------------------------------------------------------------

    def log_step(self, message: str, status: LogStatus = "pending") -> None:
        """Append an entry to the analysis log."""
        self.state.analysis_log.append(AnalysisLogEntry(message, status))
        self._notify()

    def clear_analysis(self) -> None:
        """Reset the run state to that of a fresh controller."""
        self.state = RunState()
        self._started_at = None
        self._notify()

    # -- entry points ----------------------------------------------------

    async def analyze(self, endpoint: EndpointDescriptor) -> AnalysisResult:
        """Quick single-shot analysis; the probe's result is returned as is.

        Raises whatever the probe raised, after recording it in
        ``analyze_step``.
        """
        self._begin(STEP_FAST)
        try:
            result = await self.probes.analyze_endpoint(endpoint)
            self._update(analyze_step=STEP_DONE)
        except Exception as exc:
            self._update(analyze_step=f"Error: {describe_error(exc)}")
            logger.warning(f"Analysis of {endpoint.url} failed: {exc}")
            raise
        finally:
            self._started_at = None
            self._update(analyzing=False)

        logger.info(
            f"Analysis of {endpoint.url} complete: "
            f"named graphs={result.supports_named_graphs}, "
            f"languages={len(result.languages)}"
        )
        return result

    async def reanalyze_endpoint(self, endpoint: EndpointDescriptor) -> AnalysisResult:
        """Full analysis with one log entry per stage.

        The log of the previous run is replaced.  On failure an ``error``
        entry is appended, no further stage runs and the exception
        propagates unchanged.
        """
        self._begin("Analyzing...", analysis_log=[], analysis_duration=None)
        try:
            result = await self._run_pipeline(endpoint)
        except Exception as exc:
            self.log_step(f"Error: {describe_error(exc)}", "error")
            logger.warning(f"Reanalysis of {endpoint.url} failed: {exc}")
            raise
        finally:
            self._started_at = None
            self._update(analyzing=False, analyze_step=None)

        logger.info(
            f"Reanalysis of {endpoint.url} complete in {self.state.analysis_duration} ms: "
            f"{len(result.languages)} languages"
        )
        return result

    async def _run_pipeline(self, endpoint: EndpointDescriptor) -> AnalysisResult:
        t0 = time.monotonic()

        # 1. named graphs
        self._update(analyze_step="Detecting graph support...")
        graphs = GraphDetection.model_validate(
            await self.probes.detect_graphs(endpoint)
        )
        self.log_step(describe_graph_support(graphs), "success")

        # 2. SKOS graphs
        vocab = VocabGraphDetection()
        if should_probe_vocab_graphs(graphs):
            self._update(analyze_step="Detecting SKOS graphs...")
            vocab = VocabGraphDetection.model_validate(
                await self.probes.detect_vocab_graphs(endpoint)
            )
            self.log_step(describe_vocab_graphs(vocab), "success")
        else:
            self.log_step("SKOS graphs: skipped (graphs not supported)", "success")

        # 3. duplicate triples
        has_duplicates = False
        skip_reason = duplicate_skip_reason(graphs)
        if skip_reason is None:
            self._update(analyze_step="Checking for duplicate triples...")
            duplicates = DuplicateDetection.model_validate(
                await self.probes.detect_duplicates(endpoint)
            )
            has_duplicates = duplicates.has_duplicates
            self.log_step(
                f"Duplicate triples: {'found' if has_duplicates else 'none'}", "success",
            )
        else:
            self.log_step(f"Duplicate triples: skipped ({skip_reason})", "success")

        # 4. languages
        strategy = choose_language_strategy(vocab.uris, has_duplicates)
        mode = strategy.describe()
        self._update(analyze_step=f"Detecting languages ({mode})...")
        raw_languages = await self.probes.detect_languages(
            endpoint, strategy.use_graph_scope, strategy.uris,
        )
        languages = [DetectedLanguage.model_validate(item) for item in raw_languages]
        self.log_step(f"Languages: found {len(languages)} ({mode})", "success")

        self._update(analysis_duration=int((time.monotonic() - t0) * 1000))

        return AnalysisResult(
            supports_named_graphs=graphs.supports_named_graphs,
            graph_count=graphs.graph_count,
            graph_count_exact=graphs.graph_count_exact,
            vocab_graph_count=vocab.count,
            vocab_graph_uris=vocab.uris,
            has_duplicate_triples=has_duplicates,
            languages=languages,
        )
