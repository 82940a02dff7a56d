"""Shared HTTP helpers for interacting with the Groq OpenAI-compatible API."""

from __future__ import annotations

from typing import Any, List, Mapping, Optional, Tuple

import requests

import config
from log_utils import setup_logger

logger = setup_logger(__name__)


def extract_error_payload(response: Any) -> Any:
    """Best-effort extraction of an error payload from ``response``."""

    try:
        return response.json()
    except ValueError:
        return getattr(response, "text", "")


def _extract_http_content(payload: Mapping[str, Any] | None) -> str:
    if not isinstance(payload, Mapping):
        return ""
    choices = payload.get("choices")
    if isinstance(choices, list) and choices:
        first = choices[0]
        if isinstance(first, Mapping):
            message = first.get("message")
            if isinstance(message, Mapping):
                content = message.get("content")
                if isinstance(content, str):
                    return content
    return ""


def _extract_error_parts(error: Any) -> tuple[str, str | None]:
    """Extract a human readable message and error code from ``error``."""

    if isinstance(error, Mapping):
        inner = error.get("error")
        if isinstance(inner, Mapping):
            message = inner.get("message", "")
            code = inner.get("code")
            return str(message or ""), str(code) if code is not None else None
        message = error.get("message", "")
        code = error.get("code")
        return str(message or ""), str(code) if code is not None else None
    return str(error or ""), None


def describe_error(error: Any) -> str:
    """Return a compact description of ``error`` suitable for logs and users."""

    message, code = _extract_error_parts(error)
    if code and message:
        return f"{code}: {message}"
    if code:
        return str(code)
    return message


def is_auth_error(status_code: Optional[int], error_payload: Any) -> bool:
    """Return ``True`` if the payload describes an authentication failure."""

    if status_code == 401:
        return True
    if isinstance(error_payload, Mapping):
        payload = error_payload.get("error") if "error" in error_payload else error_payload
        if isinstance(payload, Mapping):
            code = str(payload.get("code", ""))
            if code.lower() in {"authentication_error", "invalid_api_key"}:
                return True
            message = str(payload.get("message", ""))
            lowered = message.lower()
            return "invalid api key" in lowered or "authentication" in lowered
    if isinstance(error_payload, str):
        lowered = error_payload.lower()
        return "invalid api key" in lowered or "authentication" in lowered
    return False


def http_chat_completion(
    *,
    model: str,
    messages: List[Mapping[str, str]],
    temperature: float,
    max_tokens: int,
    api_key: str,
    api_url: Optional[str] = None,
    timeout: Optional[float] = None,
    json_mode: bool = False,
) -> Tuple[Optional[str], Optional[int], Any]:
    """Execute a Groq chat completion via the OpenAI-compatible HTTP API.

    Returns ``(content, status_code, payload)``.  ``content`` is ``None`` on
    failure; transport errors are returned as the exception in ``payload``
    with a ``None`` status.  ``timeout=None`` waits indefinitely.
    """

    url = api_url if api_url is not None else config.get_groq_api_url()

    payload: dict[str, Any] = {
        "model": model,
        "messages": messages,
        "temperature": temperature,
        "max_tokens": max_tokens,
    }
    if json_mode:
        payload["response_format"] = {"type": "json_object"}
    headers = {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
    }

    try:
        response = requests.post(url, headers=headers, json=payload, timeout=timeout)
    except requests.RequestException as exc:
        logger.warning("Groq HTTP request to %s failed: %s", url, exc)
        return None, None, exc

    if response.status_code >= 400:
        error_payload = extract_error_payload(response)
        logger.warning(
            "Groq HTTP request failed with status %s: %s",
            response.status_code,
            describe_error(error_payload),
        )
        return None, response.status_code, error_payload

    try:
        data = response.json()
    except ValueError:
        return None, response.status_code, getattr(response, "text", "")

    content = _extract_http_content(data)
    if not content:
        return None, response.status_code, data
    return content, response.status_code, data


__all__ = [
    "describe_error",
    "extract_error_payload",
    "http_chat_completion",
    "is_auth_error",
]
