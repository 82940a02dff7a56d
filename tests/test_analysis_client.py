import copy
import json
import logging
from datetime import datetime, timezone

import pytest
import requests

import analysis_client
from analysis_client import (
    AnalysisClient,
    AnalysisConfigurationError,
    SchemaViolationError,
    UpstreamError,
)
from analysis_schema import AnalysisResult
from history_fetcher import MultiTimeframeSeries, PricePoint, PriceSeries, Timeframe


VALID_PAYLOAD = {
    "supportLevels": [1.0, 0.9],
    "resistanceLevels": [1.2, 1.3],
    "buyZone": {"from": 0.95, "to": 1.0},
    "takeProfitLevels": [1.1, 1.2, 1.3],
    "stopLoss": 0.85,
    "trendAnalysis": {
        "shortTerm": {"trend": "Uptrend", "reason": "a"},
        "mediumTerm": {"trend": "Sideways", "reason": "b"},
        "longTerm": {"trend": "Downtrend", "reason": "c"},
    },
    "confidenceScore": 55,
    "confidenceReason": "mixed",
    "marketDriver": "macro",
    "summary": "neutral",
    "recommendation": {"signal": "Hold", "reason": "wait"},
    "detailedAnalysis": {"bullCase": "up", "bearCase": "down"},
    "marketSentiment": "Neutral",
    "keyTakeaways": ["one", "two", "three"],
}


def _bundle():
    def series(tf):
        point = PricePoint(date=datetime(2024, 1, 1, tzinfo=timezone.utc), price=1.0, volume=1.0)
        return PriceSeries(symbol="ADA/USDT", timeframe=tf, points=(point,))

    return MultiTimeframeSeries(
        seven_days=series(Timeframe.SEVEN_DAYS),
        three_months=series(Timeframe.THREE_MONTHS),
        one_year=series(Timeframe.ONE_YEAR),
    )


def _patch_completion(monkeypatch, result):
    calls = []

    def fake_completion(**kwargs):
        calls.append(kwargs)
        return result

    monkeypatch.setattr(analysis_client, "http_chat_completion", fake_completion)
    return calls


@pytest.mark.asyncio
async def test_missing_key_short_circuits(monkeypatch, caplog):
    monkeypatch.delenv("GROQ_API_KEY", raising=False)
    calls = _patch_completion(monkeypatch, (None, None, None))

    with caplog.at_level(logging.WARNING):
        with pytest.raises(AnalysisConfigurationError):
            await AnalysisClient(locale="en").analyze("ADA/USDT", _bundle())

    assert calls == []
    assert any("no GROQ_API_KEY" in rec.message for rec in caplog.records)


@pytest.mark.asyncio
async def test_successful_analysis(monkeypatch):
    monkeypatch.setenv("GROQ_API_KEY", "gsk_test")
    calls = _patch_completion(monkeypatch, (json.dumps(VALID_PAYLOAD), 200, {}))

    result = await AnalysisClient(model="test-model").analyze("ADA/USDT", _bundle())

    assert isinstance(result, AnalysisResult)
    assert result.recommendation.signal == "Hold"
    assert calls[0]["json_mode"] is True
    assert calls[0]["model"] == "test-model"
    assert calls[0]["api_key"] == "gsk_test"
    assert "ADA/USDT" in calls[0]["messages"][1]["content"]


@pytest.mark.asyncio
async def test_fenced_response_is_accepted(monkeypatch):
    _patch_completion(monkeypatch, ("```json\n" + json.dumps(VALID_PAYLOAD) + "\n```", 200, {}))
    result = await AnalysisClient(api_key="k").analyze("ADA/USDT", _bundle())
    assert result.market_sentiment == "Neutral"


@pytest.mark.asyncio
async def test_missing_field_is_schema_violation(monkeypatch):
    payload = copy.deepcopy(VALID_PAYLOAD)
    del payload["stopLoss"]
    _patch_completion(monkeypatch, (json.dumps(payload), 200, {}))

    with pytest.raises(SchemaViolationError) as excinfo:
        await AnalysisClient(api_key="k", locale="en").analyze("ADA/USDT", _bundle())

    assert excinfo.value.problems == ["stopLoss"]
    assert "stopLoss" in str(excinfo.value)


@pytest.mark.asyncio
async def test_non_json_is_schema_violation(monkeypatch):
    _patch_completion(monkeypatch, ("I cannot help with that.", 200, {}))
    with pytest.raises(SchemaViolationError):
        await AnalysisClient(api_key="k").analyze("ADA/USDT", _bundle())


@pytest.mark.asyncio
async def test_upstream_status_carries_provider_message(monkeypatch):
    error = {"error": {"message": "model overloaded", "code": "server_error"}}
    _patch_completion(monkeypatch, (None, 503, error))

    with pytest.raises(UpstreamError) as excinfo:
        await AnalysisClient(api_key="k", locale="en").analyze("ADA/USDT", _bundle())

    assert excinfo.value.status_code == 503
    assert "model overloaded" in str(excinfo.value)


@pytest.mark.asyncio
async def test_rejected_key_is_configuration_error(monkeypatch):
    _patch_completion(monkeypatch, (None, 401, {"error": {"message": "Invalid API Key"}}))
    with pytest.raises(AnalysisConfigurationError):
        await AnalysisClient(api_key="bad").analyze("ADA/USDT", _bundle())


@pytest.mark.asyncio
async def test_transport_failure_is_upstream_error(monkeypatch):
    _patch_completion(monkeypatch, (None, None, requests.ConnectionError("refused")))
    with pytest.raises(UpstreamError) as excinfo:
        await AnalysisClient(api_key="k").analyze("ADA/USDT", _bundle())
    assert excinfo.value.kind == "upstream"
