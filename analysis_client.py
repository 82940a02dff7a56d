"""Structured AI market analysis over the Groq chat-completions API.

:class:`AnalysisClient` sends a symbol plus its three price series to the
model in JSON mode and returns a validated :class:`AnalysisResult`.  A missing
API key short-circuits before any network call.  Responses that are not a
JSON object, or that miss any required field, are rejected whole.  No retry
is performed.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, List, Optional

import config
from analysis_prompt import build_analysis_messages
from analysis_schema import AnalysisResult, SchemaValidationError
from groq_http import describe_error, http_chat_completion, is_auth_error
from history_fetcher import MultiTimeframeSeries
from json_utils import parse_json_object
from log_utils import setup_logger
from messages import get_message
from observability import record_metric

logger = setup_logger(__name__)


class AnalysisRequestError(RuntimeError):
    """Base class for analysis request failures."""

    kind = "analysis"

    def __init__(self, message: str, *, upstream: Any = None, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.upstream = upstream
        self.status_code = status_code


class AnalysisConfigurationError(AnalysisRequestError):
    kind = "configuration"


class SchemaViolationError(AnalysisRequestError):
    kind = "schema_violation"

    def __init__(self, message: str, *, problems: Optional[List[str]] = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.problems = list(problems or [])


class UpstreamError(AnalysisRequestError):
    kind = "upstream"


class AnalysisClient:
    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        api_url: Optional[str] = None,
        timeout: Optional[float] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        locale: Optional[str] = None,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._api_url = api_url
        self._timeout = timeout
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._locale = locale

    @property
    def locale(self) -> str:
        return self._locale or config.get_locale()

    def _failure(self, status_code: Optional[int], payload: Any) -> AnalysisRequestError:
        locale = self.locale
        if isinstance(payload, Exception):
            return UpstreamError(
                get_message("analysis_network", locale, detail=str(payload)), upstream=payload
            )
        if is_auth_error(status_code, payload):
            return AnalysisConfigurationError(
                get_message("invalid_api_key", locale), upstream=payload, status_code=status_code
            )
        if status_code is not None and status_code >= 400:
            detail = describe_error(payload) or f"HTTP {status_code}"
            return UpstreamError(
                get_message("analysis_upstream", locale, detail=detail),
                upstream=payload,
                status_code=status_code,
            )
        return SchemaViolationError(
            get_message("analysis_not_json", locale), upstream=payload, status_code=status_code
        )

    async def analyze(self, symbol: str, bundle: MultiTimeframeSeries) -> AnalysisResult:
        locale = self.locale
        api_key = self._api_key or config.get_groq_api_key()
        if not api_key:
            logger.warning("Analysis disabled: no GROQ_API_KEY in environment")
            raise AnalysisConfigurationError(get_message("missing_api_key", locale))

        model = self._model or config.get_analysis_model()
        messages = build_analysis_messages(symbol, bundle, locale)
        timeout = self._timeout if self._timeout is not None else config.get_analysis_timeout()

        start = time.perf_counter()
        content, status_code, payload = await asyncio.to_thread(
            http_chat_completion,
            model=model,
            messages=messages,
            temperature=(
                self._temperature if self._temperature is not None else config.get_analysis_temperature()
            ),
            max_tokens=self._max_tokens or config.get_analysis_max_tokens(),
            api_key=api_key,
            api_url=self._api_url,
            timeout=timeout,
            json_mode=True,
        )
        latency = time.perf_counter() - start

        if content is None:
            error = self._failure(status_code, payload)
            logger.error(
                "Analysis request for %s failed after %.2fs (model=%s): %s",
                symbol,
                latency,
                model,
                error,
            )
            raise error

        data = parse_json_object(content, logger=logger)
        if data is None:
            logger.error("Analysis response for %s is not a JSON object: %.200s", symbol, content)
            raise SchemaViolationError(get_message("analysis_not_json", locale), upstream=content)

        try:
            result = AnalysisResult.from_payload(data)
        except SchemaValidationError as exc:
            logger.error("Analysis response for %s violates schema: %s", symbol, exc.problems)
            raise SchemaViolationError(
                get_message("analysis_invalid_structure", locale, fields=", ".join(exc.problems)),
                problems=exc.problems,
                upstream=data,
            ) from exc

        logger.info("Analysis for %s succeeded in %.2fs (model=%s)", symbol, latency, model)
        record_metric("analysis_request_seconds", latency, labels={"symbol": symbol, "model": model})
        return result


__all__ = [
    "AnalysisClient",
    "AnalysisConfigurationError",
    "AnalysisRequestError",
    "SchemaViolationError",
    "UpstreamError",
]
