from __future__ import annotations

import pytest
import requests

from troublecode.ai import (
    MISSING_ISSUE_MESSAGE,
    TextGenClient,
    TextGenError,
    TextGenUnavailableError,
    build_prompt,
    report_json_for_prompt,
)


class DummyResponse:
    def __init__(self, status_code: int = 200, text: str = "") -> None:
        self.status_code = status_code
        self.text = text


class DummySession:
    def __init__(self, response: DummyResponse | None = None, exc: Exception | None = None) -> None:
        self.response = response or DummyResponse(text="ok")
        self.exc = exc
        self.calls: list[tuple[str, dict, float]] = []
        self.closed = False

    def get(self, url: str, params=None, timeout=None):
        self.calls.append((url, dict(params or {}), timeout))
        if self.exc is not None:
            raise self.exc
        return self.response

    def close(self) -> None:
        self.closed = True


def test_triage_prompt_mentions_reference_tokens() -> None:
    prompt = build_prompt("triage", '{"a": 1}')
    assert "[[ref:path.to.field]]" in prompt
    assert "1) quick summary" in prompt
    assert prompt.endswith('Report JSON:\n{"a": 1}')


def test_troubleshoot_prompt_includes_issue() -> None:
    prompt = build_prompt("troubleshoot", "{}", issue="  Login loops  ")
    assert "User issue description:\nLogin loops\n" in prompt
    assert "2) suspected fields with callbacks" in prompt


def test_troubleshoot_requires_issue() -> None:
    with pytest.raises(ValueError, match=MISSING_ISSUE_MESSAGE):
        build_prompt("troubleshoot", "{}", issue="   ")


def test_unknown_mode_is_rejected() -> None:
    with pytest.raises(ValueError):
        build_prompt("summarize", "{}")  # type: ignore[arg-type]


def test_report_json_is_pretty() -> None:
    assert report_json_for_prompt({"a": [1]}) == '{\n  "a": [\n    1\n  ]\n}'


def test_generate_quotes_prompt_into_path(monkeypatch) -> None:
    session = DummySession(DummyResponse(text="Look at [[ref:logs[0]]]"))
    monkeypatch.setattr("troublecode.ai.requests.Session", lambda: session)
    client = TextGenClient(base_url="https://text.example/api/", model="m1", api_key="k", timeout=5)
    assert client.generate("why? a/b") == "Look at [[ref:logs[0]]]"
    url, params, timeout = session.calls[0]
    assert url == "https://text.example/api/why%3F%20a%2Fb"
    assert params == {"model": "m1", "key": "k"}
    assert timeout == 5


def test_generate_without_key_sends_only_model(monkeypatch) -> None:
    session = DummySession()
    monkeypatch.setattr("troublecode.ai.requests.Session", lambda: session)
    TextGenClient(base_url="https://text.example").generate("hi")
    assert session.calls[0][1] == {"model": "gemini-fast"}


def test_transport_failure_is_unavailable(monkeypatch) -> None:
    session = DummySession(exc=requests.ConnectionError("refused"))
    monkeypatch.setattr("troublecode.ai.requests.Session", lambda: session)
    client = TextGenClient(base_url="https://text.example")
    with pytest.raises(TextGenUnavailableError):
        client.generate("hi")


def test_error_status_raises(monkeypatch) -> None:
    session = DummySession(DummyResponse(status_code=502, text="bad gateway"))
    monkeypatch.setattr("troublecode.ai.requests.Session", lambda: session)
    client = TextGenClient(base_url="https://text.example")
    with pytest.raises(TextGenError, match="502"):
        client.generate("hi")


def test_from_env_and_context_manager(monkeypatch) -> None:
    session = DummySession()
    monkeypatch.setattr("troublecode.ai.requests.Session", lambda: session)
    env = {
        "TROUBLECODE_TEXTGEN_URL": "https://custom.example/text",
        "TROUBLECODE_TEXTGEN_MODEL": "custom-model",
        "TROUBLECODE_TEXTGEN_KEY": "secret",
    }
    with TextGenClient.from_env(env, timeout=3) as client:
        assert client.base_url == "https://custom.example/text"
        assert client.model == "custom-model"
        assert client.api_key == "secret"
        assert client.timeout == 3
    assert session.closed is True
