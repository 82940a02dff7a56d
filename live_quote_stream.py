"""Self-healing Binance ticker subscription for a single symbol.

:class:`LiveQuoteStream` keeps one ``<symbol>@ticker`` WebSocket open on the
running event loop and publishes a :class:`LiveQuote` for every inbound
tick.  When the connection drops it waits a fixed delay
(``LIVE_RECONNECT_DELAY_SECS``, 5 seconds by default) and reconnects, for as
long as the stream is running.

``stop()`` disarms the stream before anything is closed: the pending
reconnect timer is cancelled and the connection task is cancelled, so a
stopped stream never reconnects and never publishes another quote.  Call
``start``/``stop`` from the event loop thread.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional

import websockets

import config
from log_utils import setup_logger
from observability import log_event, record_metric
from symbol_utils import to_stream_symbol

logger = setup_logger(__name__)


class StreamError(RuntimeError):
    """Unusable stream payload.  Handled inside the stream, never surfaced."""


class StreamState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    CLOSED = "closed"


def _format_amount(value: float, *, signed: bool = False) -> str:
    text = format(value, "+,.4f" if signed else ",.4f")
    whole, _, frac = text.partition(".")
    frac = frac.rstrip("0").ljust(2, "0")
    return f"{whole}.{frac}"


@dataclass(frozen=True)
class LiveQuote:
    price: float
    absolute_change: float
    percent_change: float
    is_positive: bool

    @classmethod
    def from_ticker(cls, data: Mapping[str, Any]) -> "LiveQuote":
        """Build a quote from a 24hr ticker event (``c``, ``p``, ``P`` fields)."""

        try:
            price = float(data["c"])
            change = float(data["p"])
            percent = float(data["P"])
        except (KeyError, TypeError, ValueError) as exc:
            raise StreamError(f"Ticker payload missing price fields: {exc!r}") from exc
        return cls(price=price, absolute_change=change, percent_change=percent, is_positive=change >= 0)

    def formatted(self) -> Dict[str, str]:
        """Display strings: 2-4 decimals with separators, signed change, percent."""

        return {
            "price": _format_amount(self.price),
            "change": _format_amount(self.absolute_change, signed=True),
            "change_percent": f"{self.percent_change:.2f}%",
        }


QuoteCallback = Callable[[LiveQuote], None]
StateCallback = Callable[[StreamState], None]


class LiveQuoteStream:
    def __init__(
        self,
        symbol: str,
        on_quote: QuoteCallback,
        *,
        on_state_change: Optional[StateCallback] = None,
        reconnect_delay: Optional[float] = None,
        base_url: Optional[str] = None,
        connect: Optional[Callable[..., Any]] = None,
    ) -> None:
        self.symbol = symbol
        base = (base_url or config.get_binance_ws_base()).rstrip("/")
        self.url = f"{base}/{to_stream_symbol(symbol)}@ticker"
        self._on_quote = on_quote
        self._on_state_change = on_state_change
        self._reconnect_delay = (
            float(reconnect_delay) if reconnect_delay is not None else config.get_reconnect_delay()
        )
        self._connect = connect or websockets.connect
        self._state = StreamState.DISCONNECTED
        self._armed = False
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._task: Optional[asyncio.Task] = None
        self._reconnect_handle: Optional[asyncio.TimerHandle] = None
        self._connect_attempts = 0
        self._reconnects = 0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    @property
    def state(self) -> StreamState:
        return self._state

    @property
    def running(self) -> bool:
        return self._armed

    @property
    def connect_attempts(self) -> int:
        return self._connect_attempts

    @property
    def reconnects(self) -> int:
        return self._reconnects

    def start(self) -> None:
        """Open the stream on the running loop.  No-op if already running."""

        if self._armed:
            return
        self._loop = asyncio.get_running_loop()
        self._armed = True
        logger.info("Starting live stream for %s (%s)", self.symbol, self.url)
        self._open_connection()

    def stop(self) -> None:
        """Disarm, cancel the reconnect timer, then cancel the connection task."""

        was_armed = self._armed
        self._armed = False
        handle = self._reconnect_handle
        self._reconnect_handle = None
        if handle is not None:
            handle.cancel()
        task = self._task
        if task is not None and not task.done():
            task.cancel()
        if was_armed:
            self._set_state(StreamState.CLOSED)
            log_event(logger, "live_stream_closed", symbol=self.symbol, reconnects=self._reconnects)

    async def aclose(self) -> None:
        """Stop the stream and wait for the transport to finish closing."""

        task = self._task
        self.stop()
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _set_state(self, state: StreamState) -> None:
        if state is self._state:
            return
        self._state = state
        if self._on_state_change is None:
            return
        try:
            self._on_state_change(state)
        except Exception:
            logger.exception("Live stream state callback failed for %s", self.symbol)

    def _open_connection(self) -> None:
        self._reconnect_handle = None
        if not self._armed or self._loop is None:
            return
        self._connect_attempts += 1
        self._set_state(StreamState.CONNECTING)
        self._task = self._loop.create_task(self._run_connection())

    async def _run_connection(self) -> None:
        try:
            async with self._connect(
                self.url,
                ping_interval=config.get_ws_ping_interval(),
                ping_timeout=config.get_ws_ping_timeout(),
                close_timeout=5,
            ) as ws:
                if not self._armed:
                    return
                self._set_state(StreamState.CONNECTED)
                log_event(
                    logger,
                    "live_stream_connected",
                    symbol=self.symbol,
                    attempt=self._connect_attempts,
                )
                async for raw in ws:
                    if not self._armed:
                        return
                    self._handle_message(raw)
            logger.info("Live stream for %s closed by server", self.symbol)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            if not self._armed:
                return
            logger.warning("Live stream for %s dropped: %r", self.symbol, exc)
        if self._armed:
            self._schedule_reconnect()

    def _schedule_reconnect(self) -> None:
        self._reconnects += 1
        self._set_state(StreamState.DISCONNECTED)
        log_event(
            logger,
            "live_stream_reconnect_scheduled",
            symbol=self.symbol,
            delay=self._reconnect_delay,
            reconnects=self._reconnects,
        )
        record_metric("live_stream_reconnects", 1, labels={"symbol": self.symbol})
        assert self._loop is not None
        self._reconnect_handle = self._loop.call_later(self._reconnect_delay, self._open_connection)

    def _handle_message(self, raw: Any) -> None:
        if isinstance(raw, (bytes, bytearray)):
            raw = raw.decode()
        try:
            obj = json.loads(raw)
        except json.JSONDecodeError:
            logger.debug("Live stream for %s received non-JSON payload", self.symbol)
            return
        if not isinstance(obj, dict):
            return
        # Combined streams wrap the event under ``data``.
        data = obj.get("data", obj)
        if not isinstance(data, dict) or data.get("e", "24hrTicker") != "24hrTicker":
            return
        try:
            quote = LiveQuote.from_ticker(data)
        except StreamError as exc:
            logger.debug("Live stream for %s skipped tick: %s", self.symbol, exc)
            return
        if not self._armed:
            return
        try:
            self._on_quote(quote)
        except Exception:
            logger.exception("Live quote callback failed for %s", self.symbol)


__all__ = ["LiveQuote", "LiveQuoteStream", "StreamError", "StreamState"]
