"""Analysis state machine and the live quote channel around it.

The orchestrator is the single writer of :class:`AnalysisState`.  Each call
to :meth:`AnalysisOrchestrator.start_analysis` stamps a new generation and
spawns one pipeline task:

    three parallel history fetches -> AI analysis -> cache write -> Success

Every state write from a pipeline checks that its generation is still the
current one, so a superseded pipeline may finish its network calls but can
never change what observers see.  Independently, whenever the tracked symbol
changes the previous :class:`LiveQuoteStream` is stopped before the next one
is started, and ticks are only applied if they come from the active stream.

State snapshots are immutable; observers either poll :attr:`state` or
``subscribe`` to receive each new snapshot.
"""

from __future__ import annotations

import asyncio
import threading
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Set, Tuple

import config
from analysis_cache import AnalysisCache
from analysis_client import AnalysisClient, AnalysisRequestError
from analysis_schema import AnalysisResult
from history_fetcher import (
    HistoryFetchError,
    HistoryFetcher,
    MultiTimeframeSeries,
    PriceSeries,
    Timeframe,
)
from live_quote_stream import LiveQuote, LiveQuoteStream, StreamState
from log_utils import setup_logger
from messages import get_message
from news_feed import NewsArticle, NewsFeed
from observability import log_event, measure_latency
from symbol_utils import base_asset, is_valid_pair, normalize_pair

logger = setup_logger(__name__)


class AppStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"


class ErrorKind(str, Enum):
    INVALID_SYMBOL_FORMAT = "InvalidSymbolFormat"
    HISTORY_FETCH_FAILED = "HistoryFetchFailed"
    ANALYSIS_REQUEST_FAILED = "AnalysisRequestFailed"


class InvalidSymbolFormatError(ValueError):
    kind = "invalid_symbol"


@dataclass(frozen=True)
class AnalysisState:
    """Immutable snapshot of everything a consumer may display."""

    status: AppStatus = AppStatus.IDLE
    symbol: Optional[str] = None
    series: Mapping[Timeframe, PriceSeries] = field(default_factory=dict)
    active_timeframe: Timeframe = Timeframe.THREE_MONTHS
    analysis: Optional[AnalysisResult] = None
    analysis_from_cache: bool = False
    live_quote: Optional[LiveQuote] = None
    stream_state: StreamState = StreamState.DISCONNECTED
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    error_reason: Optional[str] = None
    news: Tuple[NewsArticle, ...] = ()
    news_loading: bool = False
    generation: int = 0

    @property
    def displayed_series(self) -> Optional[PriceSeries]:
        """The already-fetched series for the active timeframe, if any."""

        return self.series.get(self.active_timeframe)


StateListener = Callable[[AnalysisState], None]
StreamFactory = Callable[..., LiveQuoteStream]


class AnalysisOrchestrator:
    """Drive analysis requests and the live quote stream for one consumer.

    ``start_analysis``, ``reset`` and ``aclose`` must be called from the
    event loop thread; state reads and ``subscribe`` are safe from any thread.
    """

    def __init__(
        self,
        *,
        fetcher: Optional[HistoryFetcher] = None,
        client: Optional[AnalysisClient] = None,
        cache: Optional[AnalysisCache] = None,
        news_feed: Optional[NewsFeed] = None,
        stream_factory: Optional[StreamFactory] = None,
        reuse_cache: Optional[bool] = None,
        locale: Optional[str] = None,
    ) -> None:
        self._locale = locale
        self._fetcher = fetcher or HistoryFetcher(locale=locale)
        self._client = client or AnalysisClient(locale=locale)
        self._cache = cache if cache is not None else AnalysisCache()
        self._news_feed = news_feed
        self._stream_factory = stream_factory or LiveQuoteStream
        self._reuse_cache = config.reuse_cached_analysis() if reuse_cache is None else reuse_cache

        self._lock = threading.RLock()
        self._state = AnalysisState()
        self._generation = 0
        self._stream: Optional[LiveQuoteStream] = None
        self._stream_seq = 0
        self._tasks: Set[asyncio.Task] = set()
        # Shutdown of streams replaced or reset away; awaited by ``aclose``.
        self._closing: Set[asyncio.Task] = set()
        self._news_task: Optional[asyncio.Task] = None
        self._listeners: List[StateListener] = []

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------
    @property
    def state(self) -> AnalysisState:
        with self._lock:
            return self._state

    @property
    def cache(self) -> AnalysisCache:
        return self._cache

    @property
    def locale(self) -> str:
        return self._locale or config.get_locale()

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Call ``listener`` with every new snapshot; returns an unsubscribe callable."""

        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, snapshot: Optional[AnalysisState]) -> None:
        if snapshot is None:
            return
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(snapshot)
            except Exception:
                logger.exception("State listener %r failed", listener)

    def _update(self, **changes: Any) -> AnalysisState:
        # Caller holds ``self._lock``.
        self._state = replace(self._state, **changes)
        return self._state

    def _commit(
        self,
        token: int,
        *,
        cache_entry: Optional[Tuple[str, AnalysisResult]] = None,
        **changes: Any,
    ) -> bool:
        """Apply ``changes`` only if ``token`` is still the current generation."""

        with self._lock:
            if token != self._generation:
                return False
            if cache_entry is not None:
                self._cache.put(*cache_entry)
            snapshot = self._update(**changes)
        self._notify(snapshot)
        return True

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------
    def start_analysis(self, raw_input: Optional[str], *, force: bool = False) -> Optional[asyncio.Task]:
        """Begin analysing ``raw_input``; returns the pipeline task.

        Invalid input transitions straight to ``Error`` and returns ``None``
        without issuing any fetch.  ``force`` bypasses the cached-result reuse
        path.  Must be called while an event loop is running.
        """

        symbol = normalize_pair(raw_input)
        loop = asyncio.get_running_loop()

        if not is_valid_pair(symbol):
            error = InvalidSymbolFormatError(get_message("invalid_pair", self.locale))
            with self._lock:
                self._generation += 1
                self._teardown_stream()
                changes = self._cleared_fields()
                changes.update(
                    status=AppStatus.ERROR,
                    symbol=None,
                    stream_state=StreamState.DISCONNECTED,
                    error=str(error),
                    error_kind=ErrorKind.INVALID_SYMBOL_FORMAT,
                    error_reason=error.kind,
                    generation=self._generation,
                )
                snapshot = self._update(**changes)
            log_event(logger, "analysis_invalid_input", raw_input=raw_input, normalized=symbol)
            self._notify(snapshot)
            return None

        with self._lock:
            self._generation += 1
            token = self._generation
            keep_stream = self._stream is not None and self._state.symbol == symbol
            if not keep_stream:
                self._teardown_stream()
            changes = self._cleared_fields()
            changes.update(
                status=AppStatus.LOADING,
                symbol=symbol,
                stream_state=self._state.stream_state if keep_stream else StreamState.DISCONNECTED,
                news_loading=self._news_feed is not None,
                generation=token,
            )
            snapshot = self._update(**changes)
            stream = None if keep_stream else self._create_stream(symbol)

            task = loop.create_task(self._run_pipeline(token, symbol, force))
            self._track(task)
            self._news_task = None
            if self._news_feed is not None:
                self._news_task = loop.create_task(self._run_news(token, symbol))
                self._track(self._news_task)

        log_event(
            logger,
            "analysis_started",
            symbol=symbol,
            generation=token,
            force=force,
            stream_reused=keep_stream,
        )
        self._notify(snapshot)
        # Started outside the lock: its state callbacks notify listeners.
        if stream is not None and stream is self._stream:
            stream.start()
        return task

    async def analyze(self, raw_input: Optional[str], *, force: bool = False) -> AnalysisState:
        """Run one analysis to completion and return the resulting snapshot."""

        task = self.start_analysis(raw_input, force=force)
        news_task = self._news_task if task is not None else None
        if task is not None:
            await task
        if news_task is not None:
            await news_task
        return self.state

    def retry(self, *, force: bool = False) -> Optional[asyncio.Task]:
        """Re-issue the analysis for the tracked symbol, if there is one."""

        symbol = self.state.symbol
        if symbol is None:
            return None
        return self.start_analysis(symbol, force=force)

    def set_active_timeframe(self, timeframe: Timeframe | str) -> AnalysisState:
        tf = Timeframe.parse(timeframe)
        with self._lock:
            snapshot = self._update(active_timeframe=tf)
        self._notify(snapshot)
        return snapshot

    def reset(self) -> AnalysisState:
        """Return to ``Idle``; the cache is kept, everything displayed is cleared."""

        with self._lock:
            self._generation += 1
            self._teardown_stream()
            self._news_task = None
            snapshot = self._state = AnalysisState(
                active_timeframe=self._state.active_timeframe,
                generation=self._generation,
            )
        log_event(logger, "analysis_reset", generation=snapshot.generation, cached=len(self._cache))
        self._notify(snapshot)
        return snapshot

    async def aclose(self) -> None:
        """Stop every live stream and cancel every in-flight task."""

        with self._lock:
            self._generation += 1
            stream = self._stream
            self._stream = None
            self._stream_seq += 1
            tasks = list(self._tasks)
            closing = list(self._closing)
            snapshot = self._update(live_quote=None, stream_state=StreamState.CLOSED)
        for task in tasks:
            task.cancel()
        if stream is not None:
            await stream.aclose()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        if closing:
            await asyncio.gather(*closing, return_exceptions=True)
        self._notify(snapshot)

    # ------------------------------------------------------------------
    # Live stream
    # ------------------------------------------------------------------
    @staticmethod
    def _cleared_fields() -> Dict[str, Any]:
        return {
            "series": {},
            "analysis": None,
            "analysis_from_cache": False,
            "live_quote": None,
            "error": None,
            "error_kind": None,
            "error_reason": None,
            "news": (),
            "news_loading": False,
        }

    def _teardown_stream(self) -> None:
        # Caller holds ``self._lock``.  Bumping the sequence first drops any
        # callback the old stream fires while it stops.
        stream = self._stream
        self._stream = None
        self._stream_seq += 1
        if stream is None:
            return
        logger.info("Stopping live stream for %s", stream.symbol)
        stream.stop()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        closing = loop.create_task(stream.aclose())
        self._closing.add(closing)
        closing.add_done_callback(self._closing.discard)

    def _create_stream(self, symbol: str) -> LiveQuoteStream:
        # Caller holds ``self._lock`` and starts the stream after releasing it.
        self._stream_seq += 1
        seq = self._stream_seq

        def on_quote(quote: LiveQuote) -> None:
            self._apply_quote(seq, symbol, quote)

        def on_state_change(state: StreamState) -> None:
            self._apply_stream_state(seq, state)

        stream = self._stream_factory(symbol, on_quote, on_state_change=on_state_change)
        self._stream = stream
        return stream

    def _apply_quote(self, seq: int, symbol: str, quote: LiveQuote) -> None:
        with self._lock:
            if seq != self._stream_seq or self._state.symbol != symbol:
                logger.debug("Dropped stale tick for %s", symbol)
                return
            snapshot = self._update(live_quote=quote)
        self._notify(snapshot)

    def _apply_stream_state(self, seq: int, state: StreamState) -> None:
        with self._lock:
            if seq != self._stream_seq:
                return
            snapshot = self._update(stream_state=state)
        self._notify(snapshot)

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------
    def _track(self, task: asyncio.Task) -> None:
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _fetch_all(self, symbol: str) -> MultiTimeframeSeries:
        """Fetch every timeframe concurrently; the first failure cancels the rest."""

        tasks = {
            tf: asyncio.create_task(self._fetcher.fetch(symbol, tf)) for tf in Timeframe
        }
        try:
            await asyncio.gather(*tasks.values())
        except BaseException:
            for task in tasks.values():
                task.cancel()
            await asyncio.gather(*tasks.values(), return_exceptions=True)
            raise
        return MultiTimeframeSeries.from_mapping({tf: task.result() for tf, task in tasks.items()})

    def _discarded(self, token: int, symbol: str, outcome: str) -> None:
        log_event(
            logger,
            "analysis_result_discarded",
            symbol=symbol,
            generation=token,
            current=self._generation,
            outcome=outcome,
        )

    def _fail(self, token: int, symbol: str, kind: ErrorKind, reason: str, message: str) -> None:
        applied = self._commit(
            token,
            status=AppStatus.ERROR,
            series={},
            analysis=None,
            analysis_from_cache=False,
            error=message,
            error_kind=kind,
            error_reason=reason,
        )
        if applied:
            log_event(
                logger,
                "analysis_failed",
                symbol=symbol,
                generation=token,
                error_kind=kind.value,
                reason=reason,
            )
        else:
            self._discarded(token, symbol, "failure")

    async def _run_pipeline(self, token: int, symbol: str, force: bool) -> None:
        with measure_latency("analysis_pipeline_seconds", symbol=symbol, outcome="error") as labels:
            phase = ErrorKind.HISTORY_FETCH_FAILED
            try:
                bundle = await self._fetch_all(symbol)
                if not self._commit(token, series=bundle.as_dict()):
                    labels["outcome"] = "discarded"
                    self._discarded(token, symbol, "series")
                    return
                log_event(
                    logger,
                    "history_fetched",
                    symbol=symbol,
                    generation=token,
                    points={tf.value: len(s) for tf, s in bundle.as_dict().items()},
                )

                phase = ErrorKind.ANALYSIS_REQUEST_FAILED
                cached = self._cache.get(symbol) if self._reuse_cache and not force else None
                if cached is not None:
                    if self._commit(token, status=AppStatus.SUCCESS, analysis=cached, analysis_from_cache=True):
                        labels["outcome"] = "cache_hit"
                        log_event(logger, "analysis_cache_hit", symbol=symbol, generation=token)
                    else:
                        labels["outcome"] = "discarded"
                        self._discarded(token, symbol, "success")
                    return

                result = await self._client.analyze(symbol, bundle)
                if self._commit(
                    token,
                    cache_entry=(symbol, result),
                    status=AppStatus.SUCCESS,
                    analysis=result,
                    analysis_from_cache=False,
                ):
                    labels["outcome"] = "success"
                    log_event(
                        logger,
                        "analysis_succeeded",
                        symbol=symbol,
                        generation=token,
                        signal=result.recommendation.signal,
                        confidence=result.confidence_score,
                    )
                else:
                    labels["outcome"] = "discarded"
                    self._discarded(token, symbol, "success")
            except asyncio.CancelledError:
                labels["outcome"] = "cancelled"
                raise
            except HistoryFetchError as exc:
                self._fail(token, symbol, ErrorKind.HISTORY_FETCH_FAILED, exc.kind, str(exc))
            except AnalysisRequestError as exc:
                self._fail(token, symbol, ErrorKind.ANALYSIS_REQUEST_FAILED, exc.kind, str(exc))
            except Exception:
                logger.exception("Unexpected failure in analysis pipeline for %s", symbol)
                self._fail(token, symbol, phase, "unexpected", get_message("unknown_error", self.locale))

    async def _run_news(self, token: int, symbol: str) -> None:
        assert self._news_feed is not None
        try:
            articles = await self._news_feed.fetch(base_asset(symbol))
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("News fetch for %s failed", symbol)
            articles = []
        self._commit(token, news=tuple(articles), news_loading=False)


def build_default_orchestrator(
    *,
    locale: Optional[str] = None,
    news: Optional[bool] = None,
    reuse_cache: Optional[bool] = None,
) -> AnalysisOrchestrator:
    """Wire the production collaborators from configuration."""

    with_news = config.news_enabled() if news is None else news
    return AnalysisOrchestrator(
        fetcher=HistoryFetcher(locale=locale),
        client=AnalysisClient(locale=locale),
        news_feed=NewsFeed() if with_news else None,
        reuse_cache=reuse_cache,
        locale=locale,
    )


__all__ = [
    "AnalysisOrchestrator",
    "AnalysisState",
    "AppStatus",
    "ErrorKind",
    "InvalidSymbolFormatError",
    "build_default_orchestrator",
]
