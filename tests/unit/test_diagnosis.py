from __future__ import annotations

import httpx
import pytest

from buildheal.errors import DiagnosisUnavailable
from buildheal.llm.chat_client import ChatCompletionsClient
from buildheal.llm.diagnosis import (
    ChatDiagnosisProvider,
    build_diagnosis_prompt,
    build_diagnosis_provider,
    diagnose_with_timeout,
)
from buildheal.settings import Settings


class _FakeResp:
    def __init__(self, status_code: int, payload: dict):
        self.status_code = status_code
        self._payload = payload
        self.text = "x"

    def json(self):
        return self._payload


class _FakeClient:
    status_code = 200
    payload: dict = {"choices": [{"message": {"content": "  Install express.  "}}]}

    def __init__(self, *args, **kwargs):
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False

    def post(self, url, headers=None, json=None):
        assert url.endswith("/chat/completions")
        assert "Authorization" in (headers or {})
        assert json and "model" in json and "messages" in json
        return _FakeResp(self.status_code, self.payload)


def test_chat_client_parses_chat_response(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(httpx, "Client", _FakeClient)
    c = ChatCompletionsClient(api_key="test", base_url="https://llm.example/v1", provider="groq")
    out = c.chat(model="m", messages=[{"role": "user", "content": "hi"}])
    assert out == "  Install express.  "


def test_chat_client_retries_transport_errors_then_fails(monkeypatch: pytest.MonkeyPatch) -> None:
    calls = {"n": 0}

    class _Flaky(_FakeClient):
        def post(self, url, headers=None, json=None):
            calls["n"] += 1
            raise httpx.ConnectError("connection reset")

    monkeypatch.setattr(httpx, "Client", _Flaky)
    c = ChatCompletionsClient(api_key="k", base_url="https://x/v1", provider="groq", max_retries=2, retry_backoff_s=0.0)
    with pytest.raises(RuntimeError) as ei:
        c.chat(model="m", messages=[{"role": "user", "content": "hi"}])
    # One initial attempt plus two retries.
    assert calls["n"] == 3
    assert "groq_transient_error after 3 attempts" in str(ei.value)


def test_chat_client_does_not_retry_http_errors(monkeypatch: pytest.MonkeyPatch) -> None:
    calls = {"n": 0}

    class _Unauthorized(_FakeClient):
        status_code = 401

        def post(self, url, headers=None, json=None):
            calls["n"] += 1
            return super().post(url, headers=headers, json=json)

    monkeypatch.setattr(httpx, "Client", _Unauthorized)
    c = ChatCompletionsClient(api_key="k", base_url="https://x/v1", provider="groq", retry_backoff_s=0.0)
    with pytest.raises(RuntimeError):
        c.chat(model="m", messages=[{"role": "user", "content": "hi"}])
    assert calls["n"] == 1


def test_provider_wraps_http_errors_as_unavailable(monkeypatch: pytest.MonkeyPatch) -> None:
    class _Err(_FakeClient):
        status_code = 402

    monkeypatch.setattr(httpx, "Client", _Err)
    provider = ChatDiagnosisProvider(
        client=ChatCompletionsClient(api_key="k", base_url="https://llm.example/v1", provider="openrouter"),
        model="m",
    )
    with pytest.raises(DiagnosisUnavailable) as ei:
        provider.generate_diagnosis("p", "c")
    assert "openrouter_http_402" in str(ei.value)


def test_provider_strips_text(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(httpx, "Client", _FakeClient)
    provider = ChatDiagnosisProvider(client=ChatCompletionsClient(api_key="k", base_url="https://x/v1"), model="m")
    assert provider.generate_diagnosis("p", "c") == "Install express."


def test_prompt_uses_log_tail() -> None:
    logs = "A" * 1000 + "TAIL"
    prompt = build_diagnosis_prompt(logs, tail_chars=10)
    assert prompt.startswith("The following build just failed.")
    assert "AAAAAATAIL" in prompt
    assert "A" * 11 not in prompt


def test_provider_selection_from_settings() -> None:
    assert build_diagnosis_provider(Settings()) is None
    assert build_diagnosis_provider(Settings(diagnosis_mode="groq")) is None
    p = build_diagnosis_provider(Settings(diagnosis_mode="groq", groq_api_key="k", groq_model="g-model"))
    assert isinstance(p, ChatDiagnosisProvider)
    assert p.model == "g-model"
    assert p.client.provider == "groq"
    p = build_diagnosis_provider(Settings(diagnosis_mode="OpenRouter", openrouter_api_key="k"))
    assert isinstance(p, ChatDiagnosisProvider)
    assert p.client.provider == "openrouter"


def test_diagnose_with_timeout_converts_errors() -> None:
    class _Boom:
        def generate_diagnosis(self, prompt: str, context: str) -> str:
            raise KeyError("choices")

    class _Ok:
        def generate_diagnosis(self, prompt: str, context: str) -> str:
            return f"{context}: ok"

    with pytest.raises(DiagnosisUnavailable):
        diagnose_with_timeout(_Boom(), "p", "c", timeout_s=1.0)
    assert diagnose_with_timeout(_Ok(), "p", "ctx", timeout_s=1.0) == "ctx: ok"
