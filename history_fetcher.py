"""Historical price/volume retrieval from the Binance REST API.

:class:`HistoryFetcher` issues a HTTP GET against ``/api/v3/klines`` for one
symbol and one named :class:`Timeframe` and returns an immutable
:class:`PriceSeries` sorted by date.  Every failure is raised to the caller
as a :class:`HistoryFetchError` subclass; nothing is retried here.

Binance kline schema::

    [ openTime, open, high, low, close, volume, closeTime, quoteAssetVolume,
      trades, takerBuyBase, takerBuyQuote, ignore ]
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterator, Mapping, Optional, Sequence, Tuple

import aiohttp
import pandas as pd

import config
from log_utils import setup_logger
from messages import get_message
from observability import record_metric
from symbol_utils import to_exchange_symbol

logger = setup_logger(__name__)


class Timeframe(str, Enum):
    SEVEN_DAYS = "7D"
    THREE_MONTHS = "3M"
    ONE_YEAR = "1Y"

    @classmethod
    def parse(cls, value: "Timeframe | str") -> "Timeframe":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value or "").strip().upper())
        except ValueError:
            choices = ", ".join(tf.value for tf in cls)
            raise ValueError(f"Unknown timeframe {value!r}; expected one of {choices}") from None


# Provider granularity and length per timeframe: (interval, limit).
TIMEFRAME_PARAMS: Dict[Timeframe, Tuple[str, int]] = {
    Timeframe.SEVEN_DAYS: ("1h", 168),
    Timeframe.THREE_MONTHS: ("1d", 90),
    Timeframe.ONE_YEAR: ("1d", 365),
}

_KLINE_COLUMNS: Sequence[str] = (
    "open_time",
    "open",
    "high",
    "low",
    "close",
    "volume",
)


class HistoryFetchError(RuntimeError):
    """Base class for history retrieval failures."""

    kind = "history"

    def __init__(
        self,
        message: str,
        *,
        symbol: Optional[str] = None,
        timeframe: Optional[Timeframe] = None,
        upstream: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.symbol = symbol
        self.timeframe = timeframe
        self.upstream = upstream


class SymbolNotFoundError(HistoryFetchError):
    kind = "not_found"


class RateLimitedError(HistoryFetchError):
    kind = "rate_limited"


class HistoryNetworkError(HistoryFetchError):
    kind = "network"


class MalformedResponseError(HistoryFetchError):
    kind = "malformed_response"


@dataclass(frozen=True)
class PricePoint:
    date: datetime
    price: float
    volume: float


@dataclass(frozen=True)
class PriceSeries:
    """Chronologically ordered close prices and volumes for one timeframe."""

    symbol: str
    timeframe: Timeframe
    points: Tuple[PricePoint, ...]

    def __len__(self) -> int:
        return len(self.points)

    def __iter__(self) -> Iterator[PricePoint]:
        return iter(self.points)

    @property
    def latest_price(self) -> Optional[float]:
        return self.points[-1].price if self.points else None

    def tail(self, count: int) -> Tuple[PricePoint, ...]:
        if count <= 0:
            return ()
        return self.points[-count:]

    def to_frame(self) -> pd.DataFrame:
        """Return the series as a ``date``-indexed DataFrame of price/volume."""

        frame = pd.DataFrame(
            [(p.date, p.price, p.volume) for p in self.points],
            columns=["date", "price", "volume"],
        )
        return frame.set_index("date")


@dataclass(frozen=True)
class MultiTimeframeSeries:
    """The three series one analysis is built from."""

    seven_days: PriceSeries
    three_months: PriceSeries
    one_year: PriceSeries

    @classmethod
    def from_mapping(cls, series: Mapping[Timeframe, PriceSeries]) -> "MultiTimeframeSeries":
        return cls(
            seven_days=series[Timeframe.SEVEN_DAYS],
            three_months=series[Timeframe.THREE_MONTHS],
            one_year=series[Timeframe.ONE_YEAR],
        )

    def get(self, timeframe: Timeframe | str) -> PriceSeries:
        return self.as_dict()[Timeframe.parse(timeframe)]

    def as_dict(self) -> Dict[Timeframe, PriceSeries]:
        return {
            Timeframe.SEVEN_DAYS: self.seven_days,
            Timeframe.THREE_MONTHS: self.three_months,
            Timeframe.ONE_YEAR: self.one_year,
        }


def parse_klines(
    payload: Any, symbol: str, timeframe: Timeframe, locale: Optional[str] = None
) -> PriceSeries:
    """Shape a raw kline payload into a :class:`PriceSeries`.

    Raises :class:`MalformedResponseError` when the payload is empty, not a
    list of kline rows, or holds no row with a usable time/close/volume.
    """

    malformed = MalformedResponseError(
        get_message("history_malformed", locale, symbol=symbol),
        symbol=symbol,
        timeframe=timeframe,
    )
    if not isinstance(payload, list) or not payload:
        raise malformed
    try:
        rows = [list(row)[: len(_KLINE_COLUMNS)] for row in payload]
        df = pd.DataFrame(rows, columns=list(_KLINE_COLUMNS))
    except (TypeError, ValueError) as exc:
        raise malformed from exc

    df["open_time"] = pd.to_datetime(
        pd.to_numeric(df["open_time"], errors="coerce"), unit="ms", utc=True
    )
    for column in ("close", "volume"):
        df[column] = pd.to_numeric(df[column], errors="coerce")
    df = df.dropna(subset=["open_time", "close", "volume"])
    if df.empty:
        raise malformed
    df = df.sort_values("open_time", kind="stable")

    points = tuple(
        PricePoint(date=ts.to_pydatetime(), price=float(close), volume=float(volume))
        for ts, close, volume in df[["open_time", "close", "volume"]].itertuples(
            index=False, name=None
        )
    )
    return PriceSeries(symbol=symbol, timeframe=timeframe, points=points)


def _upstream_message(payload: Any, status: int) -> str:
    if isinstance(payload, dict):
        msg = payload.get("msg") or payload.get("message")
        if msg:
            return str(msg)
    return f"API request failed with status {status}"


class HistoryFetcher:
    """Retrieve :class:`PriceSeries` for normalised pairs such as ``BTC/USDT``."""

    def __init__(
        self,
        *,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        locale: Optional[str] = None,
    ) -> None:
        self._base_url = (base_url or config.get_binance_rest_base()).rstrip("/")
        self._timeout = timeout if timeout is not None else config.get_history_timeout()
        self._locale = locale

    @property
    def locale(self) -> str:
        return self._locale or config.get_locale()

    async def _request(self, url: str, params: Dict[str, Any]) -> Tuple[int, Any]:
        timeout = aiohttp.ClientTimeout(total=self._timeout)
        async with aiohttp.ClientSession(timeout=timeout) as sess:
            async with sess.get(url, params=params) as r:
                status = r.status
                try:
                    payload = await r.json(content_type=None)
                except ValueError:
                    payload = None
        return status, payload

    async def fetch(self, symbol: str, timeframe: Timeframe | str) -> PriceSeries:
        tf = Timeframe.parse(timeframe)
        locale = self.locale
        interval, limit = TIMEFRAME_PARAMS[tf]
        url = f"{self._base_url}/api/v3/klines"
        params = {"symbol": to_exchange_symbol(symbol), "interval": interval, "limit": limit}

        start = time.perf_counter()
        try:
            status, payload = await self._request(url, params)
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            logger.warning("History fetch for %s (%s) failed: %r", symbol, tf.value, exc)
            raise HistoryNetworkError(
                get_message("history_network", locale), symbol=symbol, timeframe=tf, upstream=str(exc)
            ) from exc

        if status in (418, 429):
            upstream = _upstream_message(payload, status)
            logger.warning("History fetch for %s (%s) rate limited: %s", symbol, tf.value, upstream)
            raise RateLimitedError(
                get_message("rate_limited", locale, symbol=symbol), symbol=symbol, timeframe=tf, upstream=upstream
            )
        if status == 400 or status == 404:
            upstream = _upstream_message(payload, status)
            logger.warning("History fetch for %s (%s) rejected: %s", symbol, tf.value, upstream)
            raise SymbolNotFoundError(
                get_message("pair_not_found", locale, symbol=symbol), symbol=symbol, timeframe=tf, upstream=upstream
            )
        if status >= 400:
            upstream = _upstream_message(payload, status)
            logger.warning("History fetch for %s (%s) failed: %s", symbol, tf.value, upstream)
            raise HistoryNetworkError(
                get_message("history_network", locale), symbol=symbol, timeframe=tf, upstream=upstream
            )

        series = parse_klines(payload, symbol, tf, locale)
        latency = time.perf_counter() - start
        logger.info(
            "Fetched %d %s candles for %s (%s) in %.2fs",
            len(series),
            interval,
            symbol,
            tf.value,
            latency,
        )
        record_metric("history_fetch_seconds", latency, labels={"symbol": symbol, "timeframe": tf.value})
        return series


__all__ = [
    "HistoryFetchError",
    "HistoryFetcher",
    "HistoryNetworkError",
    "MalformedResponseError",
    "MultiTimeframeSeries",
    "PricePoint",
    "PriceSeries",
    "RateLimitedError",
    "SymbolNotFoundError",
    "TIMEFRAME_PARAMS",
    "Timeframe",
    "parse_klines",
]
