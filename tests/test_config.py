import pytest

import config


def test_defaults(monkeypatch):
    for name in (
        "BINANCE_REST_BASE",
        "BINANCE_WS_BASE",
        "LIVE_RECONNECT_DELAY_SECS",
        "HISTORY_HTTP_TIMEOUT",
        "ANALYSIS_HTTP_TIMEOUT",
        "ANALYSIS_LLM_MODEL",
        "GROQ_MODEL",
        "ANALYZER_LOCALE",
        "REUSE_CACHED_ANALYSIS",
        "NEWS_ENABLED",
    ):
        monkeypatch.delenv(name, raising=False)

    assert config.get_binance_rest_base() == "https://api.binance.com"
    assert config.get_binance_ws_base() == "wss://stream.binance.com:9443/ws"
    assert config.get_reconnect_delay() == 5.0
    assert config.get_history_timeout() is None
    assert config.get_analysis_timeout() is None
    assert config.get_analysis_model() == config.DEFAULT_ANALYSIS_MODEL
    assert config.get_locale() == "en"
    assert config.reuse_cached_analysis() is True
    assert config.news_enabled() is True


@pytest.mark.parametrize("raw, expected", [("30", 30.0), ("0", None), ("-5", None), ("abc", None), ("", None)])
def test_timeouts_are_opt_in(monkeypatch, raw, expected):
    monkeypatch.setenv("ANALYSIS_HTTP_TIMEOUT", raw)
    assert config.get_analysis_timeout() == expected


def test_malformed_numbers_fall_back(monkeypatch):
    monkeypatch.setenv("LIVE_RECONNECT_DELAY_SECS", "soon")
    monkeypatch.setenv("ANALYSIS_MAX_TOKENS", "12")
    assert config.get_reconnect_delay() == 5.0
    assert config.get_analysis_max_tokens() == 256


def test_deprecated_model_is_remapped(monkeypatch):
    monkeypatch.delenv("ANALYSIS_LLM_MODEL", raising=False)
    monkeypatch.setenv("GROQ_MODEL", "llama3-70b-8192")
    assert config.get_analysis_model() == config.DEFAULT_ANALYSIS_MODEL


def test_delisting_model_falls_back_to_analysis_model(monkeypatch):
    monkeypatch.delenv("DELISTING_LLM_MODEL", raising=False)
    monkeypatch.delenv("GROQ_MODEL", raising=False)
    monkeypatch.setenv("ANALYSIS_LLM_MODEL", "mixtral-8x7b")
    assert config.get_delisting_model() == "mixtral-8x7b"
    monkeypatch.setenv("DELISTING_LLM_MODEL", "llama-3.1-8b-instant")
    assert config.get_delisting_model() == "llama-3.1-8b-instant"


def test_flags_and_locale(monkeypatch):
    monkeypatch.setenv("REUSE_CACHED_ANALYSIS", "off")
    monkeypatch.setenv("NEWS_ENABLED", "0")
    monkeypatch.setenv("ANALYZER_LOCALE", "VI")
    assert config.reuse_cached_analysis() is False
    assert config.news_enabled() is False
    assert config.get_locale() == "vi"

    monkeypatch.setenv("ANALYZER_LOCALE", "fr")
    assert config.get_locale() == "en"
