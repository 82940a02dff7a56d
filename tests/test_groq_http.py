import requests

import groq_http


class _Response:
    def __init__(self, status_code, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload
        self.text = text

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


def _call(**overrides):
    kwargs = dict(
        model="llama-3.3-70b-versatile",
        messages=[{"role": "user", "content": "hi"}],
        temperature=0.2,
        max_tokens=512,
        api_key="gsk_test",
        api_url="https://groq.test/v1/chat/completions",
    )
    kwargs.update(overrides)
    return groq_http.http_chat_completion(**kwargs)


def test_json_mode_request_and_content(monkeypatch):
    captured = {}

    def fake_post(url, headers=None, json=None, timeout=None):
        captured.update(url=url, headers=headers, json=json, timeout=timeout)
        return _Response(200, {"choices": [{"message": {"content": '{"ok": true}'}}]})

    monkeypatch.setattr(groq_http.requests, "post", fake_post)

    content, status, _ = _call(json_mode=True)

    assert content == '{"ok": true}'
    assert status == 200
    assert captured["json"]["response_format"] == {"type": "json_object"}
    assert captured["headers"]["Authorization"] == "Bearer gsk_test"
    assert captured["timeout"] is None


def test_error_status_returns_payload(monkeypatch):
    error = {"error": {"message": "Invalid API Key", "code": "invalid_api_key"}}
    monkeypatch.setattr(groq_http.requests, "post", lambda *a, **k: _Response(401, error))

    content, status, payload = _call()

    assert content is None
    assert status == 401
    assert groq_http.is_auth_error(status, payload)
    assert groq_http.describe_error(payload) == "invalid_api_key: Invalid API Key"


def test_transport_error_is_returned(monkeypatch):
    def boom(*_args, **_kwargs):
        raise requests.ConnectionError("dns failure")

    monkeypatch.setattr(groq_http.requests, "post", boom)

    content, status, payload = _call()

    assert content is None
    assert status is None
    assert isinstance(payload, requests.ConnectionError)


def test_empty_choices_are_a_failure(monkeypatch):
    monkeypatch.setattr(groq_http.requests, "post", lambda *a, **k: _Response(200, {"choices": []}))
    content, status, _ = _call()
    assert content is None
    assert status == 200


def test_is_auth_error_detection():
    assert not groq_http.is_auth_error(500, {"error": {"message": "overloaded"}})
    assert groq_http.is_auth_error(403, "Authentication failed")
