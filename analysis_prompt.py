"""Prompt construction for the multi-timeframe AI analysis.

The long-term series supplies context (range, SMA-200/SMA-100), the mid-term
series momentum (SMA-50, RSI-14) and the short-term series recent price
action.  Only the last ``SHORT_SERIES_POINTS`` candles of the 7-day series are
embedded; the 3-month and 1-year series go in full.
"""

from __future__ import annotations

from typing import Dict, List, Optional, Sequence

import pandas as pd

from analysis_schema import SENTIMENT_VALUES, SIGNAL_VALUES, TREND_VALUES
from history_fetcher import MultiTimeframeSeries, PricePoint, PriceSeries

SHORT_SERIES_POINTS = 60

_LANGUAGE_NAMES = {"en": "English", "vi": "Vietnamese"}

SYSTEM_MESSAGE = (
    "You are an expert financial market technical analyst. "
    "You respond with a single valid JSON object and nothing else."
)


def calculate_sma(prices: pd.Series, period: int) -> Optional[float]:
    """Simple moving average of the last ``period`` values, ``None`` if too short."""

    if period <= 0 or len(prices) < period:
        return None
    return float(prices.iloc[-period:].mean())


def calculate_rsi(prices: pd.Series, period: int = 14) -> Optional[float]:
    """Relative Strength Index using Wilder's smoothing."""

    if period <= 0 or len(prices) <= period:
        return None
    diffs = prices.diff().iloc[1:]
    gains = diffs.clip(lower=0.0)
    losses = (-diffs).clip(lower=0.0)

    avg_gain = float(gains.iloc[:period].mean())
    avg_loss = float(losses.iloc[:period].mean())
    for gain, loss in zip(gains.iloc[period:], losses.iloc[period:]):
        avg_gain = (avg_gain * (period - 1) + float(gain)) / period
        avg_loss = (avg_loss * (period - 1) + float(loss)) / period

    if avg_loss == 0:
        return 100.0
    rs = avg_gain / avg_loss
    return 100.0 - (100.0 / (1.0 + rs))


def _prices(series: PriceSeries) -> pd.Series:
    return pd.Series([p.price for p in series.points], dtype="float64")


def compute_indicators(bundle: MultiTimeframeSeries) -> Dict[str, Optional[float]]:
    long_term = _prices(bundle.one_year)
    mid_term = _prices(bundle.three_months)
    latest = (
        bundle.seven_days.latest_price
        or bundle.three_months.latest_price
        or bundle.one_year.latest_price
    )
    return {
        "latest_price": latest,
        "high_1y": float(long_term.max()) if not long_term.empty else None,
        "low_1y": float(long_term.min()) if not long_term.empty else None,
        "sma200": calculate_sma(long_term, 200),
        "sma100": calculate_sma(long_term, 100),
        "sma50": calculate_sma(mid_term, 50),
        "rsi14": calculate_rsi(mid_term, 14),
    }


def _fmt(name: str, value: Optional[float], decimals: int = 4) -> str:
    return f"{name}={value:.{decimals}f}" if value is not None else f"{name}=N/A"


def _csv_rows(points: Sequence[PricePoint]) -> str:
    return "\n".join(
        f"{p.date.strftime('%Y-%m-%d %H:%M')},{p.price:g},{p.volume:g}" for p in points
    )


def _schema_description() -> str:
    trend = "|".join(TREND_VALUES)
    return (
        "{\n"
        '  "supportLevels": [number, number],\n'
        '  "resistanceLevels": [number, number],\n'
        '  "buyZone": {"from": number, "to": number},\n'
        '  "takeProfitLevels": [number, number, number],\n'
        '  "stopLoss": number,\n'
        '  "trendAnalysis": {\n'
        f'    "shortTerm": {{"trend": "{trend}", "reason": string}},\n'
        f'    "mediumTerm": {{"trend": "{trend}", "reason": string}},\n'
        f'    "longTerm": {{"trend": "{trend}", "reason": string}}\n'
        "  },\n"
        '  "confidenceScore": number (0-100),\n'
        '  "confidenceReason": string,\n'
        '  "marketDriver": string,\n'
        '  "summary": string,\n'
        f'  "recommendation": {{"signal": "{"|".join(SIGNAL_VALUES)}", "reason": string}},\n'
        '  "detailedAnalysis": {"bullCase": string, "bearCase": string},\n'
        f'  "marketSentiment": "{"|".join(SENTIMENT_VALUES)}",\n'
        '  "keyTakeaways": [string, string, string]\n'
        "}"
    )


def build_analysis_prompt(symbol: str, bundle: MultiTimeframeSeries, locale: str = "en") -> str:
    ind = compute_indicators(bundle)
    language = _LANGUAGE_NAMES.get(locale, "English")
    latest = ind["latest_price"] or 0.0
    return f"""
**TASK:** Conduct an in-depth, multi-timeframe technical analysis for {symbol} and synthesize it into a single strategic outlook with an actionable trading plan.

**MARKET DATA CONTEXT:**
* Asset: {symbol}
* Current Price: ~{latest:.4f}
* Long-Term Context (1-Year): Range {_fmt('Low', ind['low_1y'])} - {_fmt('High', ind['high_1y'])}; Key SMAs {_fmt('200D', ind['sma200'])}, {_fmt('100D', ind['sma100'])}
* Mid-Term Context (3-Month): {_fmt('SMA50', ind['sma50'])}, {_fmt('RSI(14)', ind['rsi14'], 2)}
* Short-Term Price Action (7-Day): analyze the recent market structure and volatility from the hourly candles below.

**DATA (date,close,volume):**
[7D hourly, last {SHORT_SERIES_POINTS}]
{_csv_rows(bundle.seven_days.tail(SHORT_SERIES_POINTS))}
[3M daily]
{_csv_rows(bundle.three_months.points)}
[1Y daily]
{_csv_rows(bundle.one_year.points)}

**OUTPUT INSTRUCTIONS:**
1. Use the long-term for context, the mid-term for momentum and the short-term for entry points.
2. Fill in ALL fields of the JSON object below; every price level must come from this analysis.
3. Give a trend forecast and a BRIEF reason for each horizon (short, medium, long).
4. List the three most critical takeaways.
5. All text values MUST be written in {language}.
6. Respond with ONLY the JSON object, no markdown or commentary:
{_schema_description()}
""".strip()


def build_analysis_messages(
    symbol: str, bundle: MultiTimeframeSeries, locale: str = "en"
) -> List[Dict[str, str]]:
    return [
        {"role": "system", "content": SYSTEM_MESSAGE},
        {"role": "user", "content": build_analysis_prompt(symbol, bundle, locale)},
    ]


__all__ = [
    "SHORT_SERIES_POINTS",
    "build_analysis_messages",
    "build_analysis_prompt",
    "calculate_rsi",
    "calculate_sma",
    "compute_indicators",
]
