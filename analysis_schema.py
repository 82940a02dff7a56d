"""Canonical structure of an AI market analysis.

The model is asked for a single JSON object using the camelCase field names
below.  :func:`validate_analysis_payload` checks the required-field set
(including nested objects and enum values) and :meth:`AnalysisResult.from_payload`
turns a valid payload into immutable dataclasses.  A payload with any
required field absent or mistyped is rejected as a whole; there is no
partial result.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Tuple

TREND_VALUES = ("Uptrend", "Downtrend", "Sideways")
SIGNAL_VALUES = ("Strong Buy", "Buy", "Hold", "Sell", "Strong Sell", "Avoid")
SENTIMENT_VALUES = ("Extreme Fear", "Fear", "Neutral", "Greed", "Extreme Greed")

REQUIRED_FIELDS: Tuple[str, ...] = (
    "supportLevels",
    "resistanceLevels",
    "buyZone",
    "takeProfitLevels",
    "stopLoss",
    "trendAnalysis",
    "confidenceScore",
    "confidenceReason",
    "marketDriver",
    "summary",
    "recommendation",
    "detailedAnalysis",
    "marketSentiment",
    "keyTakeaways",
)

TREND_HORIZONS: Tuple[str, ...] = ("shortTerm", "mediumTerm", "longTerm")


class SchemaValidationError(ValueError):
    """Raised when a payload does not satisfy the analysis schema."""

    def __init__(self, problems: List[str]) -> None:
        self.problems = list(problems)
        super().__init__("Invalid analysis payload: " + ", ".join(self.problems))


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _check_number(payload: Mapping[str, Any], key: str, path: str, problems: List[str]) -> None:
    if key not in payload:
        problems.append(f"{path}{key}")
    elif not _is_number(payload[key]):
        problems.append(f"{path}{key} (not a number)")


def _check_string(
    payload: Mapping[str, Any],
    key: str,
    path: str,
    problems: List[str],
    choices: Tuple[str, ...] | None = None,
) -> None:
    if key not in payload:
        problems.append(f"{path}{key}")
        return
    value = payload[key]
    if not isinstance(value, str):
        problems.append(f"{path}{key} (not a string)")
    elif choices is not None and value not in choices:
        problems.append(f"{path}{key} (unexpected value {value!r})")


def _check_list(
    payload: Mapping[str, Any], key: str, path: str, problems: List[str], *, numeric: bool
) -> None:
    if key not in payload:
        problems.append(f"{path}{key}")
        return
    value = payload[key]
    check = _is_number if numeric else (lambda item: isinstance(item, str))
    if not isinstance(value, list) or not all(check(item) for item in value):
        kind = "numbers" if numeric else "strings"
        problems.append(f"{path}{key} (not a list of {kind})")


def _check_object(payload: Mapping[str, Any], key: str, path: str, problems: List[str]) -> Mapping[str, Any] | None:
    if key not in payload:
        problems.append(f"{path}{key}")
        return None
    value = payload[key]
    if not isinstance(value, Mapping):
        problems.append(f"{path}{key} (not an object)")
        return None
    return value


def validate_analysis_payload(payload: Any) -> List[str]:
    """Return a list of problems with ``payload``; empty when it is valid."""

    if not isinstance(payload, Mapping):
        return ["<root> (not an object)"]

    problems: List[str] = []
    _check_list(payload, "supportLevels", "", problems, numeric=True)
    _check_list(payload, "resistanceLevels", "", problems, numeric=True)
    _check_list(payload, "takeProfitLevels", "", problems, numeric=True)
    _check_number(payload, "stopLoss", "", problems)
    _check_number(payload, "confidenceScore", "", problems)
    for key in ("confidenceReason", "marketDriver", "summary"):
        _check_string(payload, key, "", problems)
    _check_string(payload, "marketSentiment", "", problems, SENTIMENT_VALUES)
    _check_list(payload, "keyTakeaways", "", problems, numeric=False)

    buy_zone = _check_object(payload, "buyZone", "", problems)
    if buy_zone is not None:
        _check_number(buy_zone, "from", "buyZone.", problems)
        _check_number(buy_zone, "to", "buyZone.", problems)

    trends = _check_object(payload, "trendAnalysis", "", problems)
    if trends is not None:
        for horizon in TREND_HORIZONS:
            info = _check_object(trends, horizon, "trendAnalysis.", problems)
            if info is not None:
                prefix = f"trendAnalysis.{horizon}."
                _check_string(info, "trend", prefix, problems, TREND_VALUES)
                _check_string(info, "reason", prefix, problems)

    recommendation = _check_object(payload, "recommendation", "", problems)
    if recommendation is not None:
        _check_string(recommendation, "signal", "recommendation.", problems, SIGNAL_VALUES)
        _check_string(recommendation, "reason", "recommendation.", problems)

    detailed = _check_object(payload, "detailedAnalysis", "", problems)
    if detailed is not None:
        _check_string(detailed, "bullCase", "detailedAnalysis.", problems)
        _check_string(detailed, "bearCase", "detailedAnalysis.", problems)

    return problems


@dataclass(frozen=True)
class TrendInfo:
    trend: str
    reason: str


@dataclass(frozen=True)
class TrendAnalysis:
    short_term: TrendInfo
    medium_term: TrendInfo
    long_term: TrendInfo


@dataclass(frozen=True)
class BuyZone:
    lower: float
    upper: float


@dataclass(frozen=True)
class Recommendation:
    signal: str
    reason: str


@dataclass(frozen=True)
class DetailedAnalysis:
    bull_case: str
    bear_case: str


@dataclass(frozen=True)
class AnalysisResult:
    support_levels: Tuple[float, ...]
    resistance_levels: Tuple[float, ...]
    buy_zone: BuyZone
    take_profit_levels: Tuple[float, ...]
    stop_loss: float
    trend_analysis: TrendAnalysis
    confidence_score: float
    confidence_reason: str
    market_driver: str
    summary: str
    recommendation: Recommendation
    detailed_analysis: DetailedAnalysis
    market_sentiment: str
    key_takeaways: Tuple[str, ...]

    @classmethod
    def from_payload(cls, payload: Any) -> "AnalysisResult":
        problems = validate_analysis_payload(payload)
        if problems:
            raise SchemaValidationError(problems)

        def _trend(key: str) -> TrendInfo:
            info = payload["trendAnalysis"][key]
            return TrendInfo(trend=info["trend"], reason=info["reason"])

        return cls(
            support_levels=tuple(float(v) for v in payload["supportLevels"]),
            resistance_levels=tuple(float(v) for v in payload["resistanceLevels"]),
            buy_zone=BuyZone(
                lower=float(payload["buyZone"]["from"]),
                upper=float(payload["buyZone"]["to"]),
            ),
            take_profit_levels=tuple(float(v) for v in payload["takeProfitLevels"]),
            stop_loss=float(payload["stopLoss"]),
            trend_analysis=TrendAnalysis(
                short_term=_trend("shortTerm"),
                medium_term=_trend("mediumTerm"),
                long_term=_trend("longTerm"),
            ),
            confidence_score=float(payload["confidenceScore"]),
            confidence_reason=payload["confidenceReason"],
            market_driver=payload["marketDriver"],
            summary=payload["summary"],
            recommendation=Recommendation(
                signal=payload["recommendation"]["signal"],
                reason=payload["recommendation"]["reason"],
            ),
            detailed_analysis=DetailedAnalysis(
                bull_case=payload["detailedAnalysis"]["bullCase"],
                bear_case=payload["detailedAnalysis"]["bearCase"],
            ),
            market_sentiment=payload["marketSentiment"],
            key_takeaways=tuple(payload["keyTakeaways"]),
        )

    def to_payload(self) -> Dict[str, Any]:
        """Return the camelCase wire representation."""

        def _trend(info: TrendInfo) -> Dict[str, str]:
            return {"trend": info.trend, "reason": info.reason}

        return {
            "supportLevels": list(self.support_levels),
            "resistanceLevels": list(self.resistance_levels),
            "buyZone": {"from": self.buy_zone.lower, "to": self.buy_zone.upper},
            "takeProfitLevels": list(self.take_profit_levels),
            "stopLoss": self.stop_loss,
            "trendAnalysis": {
                "shortTerm": _trend(self.trend_analysis.short_term),
                "mediumTerm": _trend(self.trend_analysis.medium_term),
                "longTerm": _trend(self.trend_analysis.long_term),
            },
            "confidenceScore": self.confidence_score,
            "confidenceReason": self.confidence_reason,
            "marketDriver": self.market_driver,
            "summary": self.summary,
            "recommendation": {
                "signal": self.recommendation.signal,
                "reason": self.recommendation.reason,
            },
            "detailedAnalysis": {
                "bullCase": self.detailed_analysis.bull_case,
                "bearCase": self.detailed_analysis.bear_case,
            },
            "marketSentiment": self.market_sentiment,
            "keyTakeaways": list(self.key_takeaways),
        }


__all__ = [
    "AnalysisResult",
    "BuyZone",
    "DetailedAnalysis",
    "REQUIRED_FIELDS",
    "Recommendation",
    "SIGNAL_VALUES",
    "SENTIMENT_VALUES",
    "SchemaValidationError",
    "TREND_VALUES",
    "TrendAnalysis",
    "TrendInfo",
    "validate_analysis_payload",
]
