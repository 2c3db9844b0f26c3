from __future__ import annotations

import concurrent.futures
from dataclasses import dataclass
from typing import Optional, Protocol

from buildheal.errors import DiagnosisUnavailable
from buildheal.llm.chat_client import ChatCompletionsClient
from buildheal.settings import Settings

DIAGNOSIS_CONTEXT = "CI/CD Log Analysis Context"


class DiagnosisProvider(Protocol):
    def generate_diagnosis(self, prompt: str, context: str) -> str: ...


@dataclass(frozen=True)
class ChatDiagnosisProvider:
    client: ChatCompletionsClient
    model: str
    max_tokens: int = 512

    def generate_diagnosis(self, prompt: str, context: str) -> str:
        messages = [
            {"role": "system", "content": f"You are a CI/CD assistant. Context: {context}"},
            {"role": "user", "content": prompt},
        ]
        try:
            text = self.client.chat(model=self.model, messages=messages, max_tokens=self.max_tokens)
        except Exception as e:  # noqa: BLE001
            raise DiagnosisUnavailable(str(e)) from e
        if not (text or "").strip():
            raise DiagnosisUnavailable(f"{self.client.provider}_empty_response")
        return text.strip()


def build_diagnosis_prompt(logs: str, *, tail_chars: int = 500) -> str:
    tail = (logs or "")[-max(1, int(tail_chars)):]
    return (
        "The following build just failed. Analyze the logs and suggest a concise fix.\n"
        "LOGS:\n"
        f"{tail}\n"
    )


def build_diagnosis_provider(settings: Settings) -> Optional[DiagnosisProvider]:
    """
    Returns None when diagnosis is disabled or the selected provider has no credentials.
    """
    mode = (settings.diagnosis_mode or "off").strip().lower()
    if mode == "openrouter" and settings.openrouter_api_key:
        client = ChatCompletionsClient(
            api_key=settings.openrouter_api_key,
            base_url=settings.openrouter_base_url,
            provider="openrouter",
            timeout_s=settings.diagnosis_timeout_s,
        )
        return ChatDiagnosisProvider(client=client, model=settings.openrouter_model, max_tokens=settings.diagnosis_max_tokens)
    if mode == "groq" and settings.groq_api_key:
        client = ChatCompletionsClient(
            api_key=settings.groq_api_key,
            base_url=settings.groq_base_url,
            provider="groq",
            timeout_s=settings.diagnosis_timeout_s,
        )
        return ChatDiagnosisProvider(client=client, model=settings.groq_model, max_tokens=settings.diagnosis_max_tokens)
    return None


def diagnose_with_timeout(provider: DiagnosisProvider, prompt: str, context: str, *, timeout_s: float) -> str:
    """
    Run the provider call on a worker thread, bounded by `timeout_s`.
    Any error or timeout surfaces as DiagnosisUnavailable.
    """
    # Not a `with` block: on timeout the context manager would wait for the worker.
    ex = concurrent.futures.ThreadPoolExecutor(max_workers=1, thread_name_prefix="buildheal-diagnosis")
    try:
        fut = ex.submit(provider.generate_diagnosis, prompt, context)
        try:
            return fut.result(timeout=max(0.001, float(timeout_s)))
        except concurrent.futures.TimeoutError as e:
            raise DiagnosisUnavailable(f"diagnosis_timeout_{timeout_s}s") from e
        except DiagnosisUnavailable:
            raise
        except Exception as e:  # noqa: BLE001
            raise DiagnosisUnavailable(str(e)) from e
    finally:
        ex.shutdown(wait=False)
