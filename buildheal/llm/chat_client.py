from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Dict, List

import httpx


@dataclass(frozen=True)
class ChatCompletionsClient:
    """
    Minimal OpenAI-compatible chat client (OpenRouter, Groq).

    Endpoint: POST {base_url}/chat/completions
    """

    api_key: str
    base_url: str
    provider: str = "openai_compatible"
    timeout_s: float = 30.0
    max_retries: int = 2
    retry_backoff_s: float = 0.5
    extra_headers: Dict[str, str] = field(default_factory=dict)

    def chat(self, *, model: str, messages: List[Dict[str, str]], max_tokens: int = 512) -> str:
        url = f"{self.base_url.rstrip('/')}/chat/completions"
        headers: Dict[str, str] = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            **self.extra_headers,
        }
        payload: Dict[str, Any] = {
            "model": model,
            "messages": messages,
            "max_tokens": int(max(1, min(int(max_tokens), 4096))),
        }

        attempts = max(0, int(self.max_retries)) + 1
        for attempt in range(1, attempts + 1):
            try:
                with httpx.Client(timeout=self.timeout_s) as client:
                    r = client.post(url, headers=headers, json=payload)
                    if r.status_code != 200:
                        raise RuntimeError(f"{self.provider}_http_{r.status_code}: {r.text[:500]}")
                    data = r.json()
            except (httpx.TransportError, httpx.TimeoutException) as e:
                # Connection resets and read timeouts are worth one more try; HTTP errors are not.
                if attempt < attempts:
                    time.sleep(self.retry_backoff_s * (2 ** (attempt - 1)))
                    continue
                raise RuntimeError(f"{self.provider}_transient_error after {attempt} attempts: {e}") from e
            try:
                return data["choices"][0]["message"]["content"]
            except (KeyError, IndexError, TypeError) as e:
                raise RuntimeError(f"{self.provider}_response_parse_error: {str(data)[:500]}") from e

        raise RuntimeError(f"{self.provider}_failed")
