"""Central configuration loader for environment variables."""
from __future__ import annotations

from dotenv import load_dotenv

# Load environment variables once when this module is imported.
load_dotenv()

import os


def _truthy(x: str | None) -> bool:
    return str(x or "").strip().lower() in {"1", "true", "yes", "on"}


# ---------------------------------------------------------------------------
# Environment helpers
# ---------------------------------------------------------------------------
def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    normalized = raw.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return float(default)
    try:
        return float(raw)
    except (TypeError, ValueError):
        return float(default)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return int(default)
    try:
        return int(float(raw))
    except (TypeError, ValueError):
        return int(default)


def _env_timeout(name: str) -> float | None:
    """Return a positive timeout in seconds, or ``None`` for no timeout."""

    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return None
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return None
    return value if value > 0 else None


# ---------------------------------------------------------------------------
# Market data endpoints
# ---------------------------------------------------------------------------

DEFAULT_BINANCE_REST_BASE = "https://api.binance.com"
DEFAULT_BINANCE_WS_BASE = "wss://stream.binance.com:9443/ws"
DEFAULT_RECONNECT_DELAY_SECS = 5.0


def get_binance_rest_base() -> str:
    return (os.getenv("BINANCE_REST_BASE") or DEFAULT_BINANCE_REST_BASE).rstrip("/")


def get_binance_ws_base() -> str:
    return (os.getenv("BINANCE_WS_BASE") or DEFAULT_BINANCE_WS_BASE).rstrip("/")


def get_history_timeout() -> float | None:
    """History requests carry no timeout unless ``HISTORY_HTTP_TIMEOUT`` is set."""

    return _env_timeout("HISTORY_HTTP_TIMEOUT")


def get_reconnect_delay() -> float:
    return max(0.0, _env_float("LIVE_RECONNECT_DELAY_SECS", DEFAULT_RECONNECT_DELAY_SECS))


def get_ws_ping_interval() -> float:
    return max(1.0, _env_float("WS_PING_INTERVAL_SECS", 20.0))


def get_ws_ping_timeout() -> float:
    return max(1.0, _env_float("WS_PING_TIMEOUT_SECS", 10.0))


# ---------------------------------------------------------------------------
# AI analysis provider (Groq, OpenAI-compatible API)
# ---------------------------------------------------------------------------

DEFAULT_GROQ_API_URL = "https://api.groq.com/openai/v1/chat/completions"
DEFAULT_ANALYSIS_MODEL = "llama-3.3-70b-versatile"

# Groq periodically retires older Llama releases.  Known deprecated
# identifiers are mapped to the current default so stale ``.env`` files keep
# working.
_DEPRECATED_GROQ_MODELS = {
    "llama3-70b-8192": DEFAULT_ANALYSIS_MODEL,
    "llama-3.1-70b": DEFAULT_ANALYSIS_MODEL,
    "llama-3.1-70b-versatile": DEFAULT_ANALYSIS_MODEL,
}
_DEPRECATED_LOOKUP = {key.lower(): value for key, value in _DEPRECATED_GROQ_MODELS.items()}


def _resolve_model(env_var: str | tuple[str, ...], default: str) -> str:
    """Resolve the configured model name for ``env_var`` falling back to ``default``."""

    env_sources: tuple[str, ...]
    if isinstance(env_var, str):
        env_sources = (env_var,)
    else:
        env_sources = env_var

    normalized = ""
    for candidate in env_sources:
        raw_model = os.getenv(candidate)
        normalized = raw_model.strip() if raw_model else ""
        if normalized:
            break

    if not normalized:
        normalized = default

    replacement = _DEPRECATED_LOOKUP.get(normalized.lower())
    if replacement:
        return replacement

    return normalized


def get_analysis_model() -> str:
    """Return the model used for structured market analysis."""

    return _resolve_model(("ANALYSIS_LLM_MODEL", "GROQ_MODEL"), DEFAULT_ANALYSIS_MODEL)


def get_delisting_model() -> str:
    """Return the model that compiles the exchange delisting watchlist."""

    return _resolve_model(
        ("DELISTING_LLM_MODEL", "ANALYSIS_LLM_MODEL", "GROQ_MODEL"), DEFAULT_ANALYSIS_MODEL
    )


def get_groq_api_url() -> str:
    return os.getenv("GROQ_API_URL", DEFAULT_GROQ_API_URL) or DEFAULT_GROQ_API_URL


def get_groq_api_key() -> str | None:
    """Return the Groq API key from the environment, or ``None`` if not set."""

    key = os.getenv("GROQ_API_KEY", "").strip()
    return key or None


def get_analysis_temperature() -> float:
    return min(2.0, max(0.0, _env_float("ANALYSIS_TEMPERATURE", 0.2)))


def get_analysis_max_tokens() -> int:
    return max(256, _env_int("ANALYSIS_MAX_TOKENS", 2048))


def get_analysis_timeout() -> float | None:
    """Analysis requests carry no timeout unless ``ANALYSIS_HTTP_TIMEOUT`` is set."""

    return _env_timeout("ANALYSIS_HTTP_TIMEOUT")


# ---------------------------------------------------------------------------
# Behaviour flags
# ---------------------------------------------------------------------------

SUPPORTED_LOCALES = ("en", "vi")


def get_locale() -> str:
    locale = (os.getenv("ANALYZER_LOCALE") or "en").strip().lower()
    return locale if locale in SUPPORTED_LOCALES else "en"


def reuse_cached_analysis() -> bool:
    return _env_bool("REUSE_CACHED_ANALYSIS", True)


DEFAULT_NEWS_API_URL = "https://min-api.cryptocompare.com/data/v2/news/"


def news_enabled() -> bool:
    return _truthy(os.getenv("NEWS_ENABLED", "true"))


def get_news_api_url() -> str:
    return os.getenv("NEWS_API_URL", DEFAULT_NEWS_API_URL) or DEFAULT_NEWS_API_URL
