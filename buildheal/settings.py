from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="BUILDHEAL_", extra="ignore")

    audit_log_path: str = "var/audit/buildheal_audit.jsonl"

    # Human-readable diagnosis (external language model)
    diagnosis_mode: str = "off"  # off|openrouter|groq
    diagnosis_timeout_s: float = 20.0
    diagnosis_max_tokens: int = 512
    # Only the tail of the build logs goes into the prompt.
    diagnosis_log_tail_chars: int = 500

    # OpenRouter OpenAI-compatible API
    openrouter_api_key: str | None = None
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    openrouter_model: str = "openai/gpt-4o-mini"

    # Groq OpenAI-compatible API
    groq_api_key: str | None = None
    groq_base_url: str = "https://api.groq.com/openai/v1"
    groq_model: str = "llama-3.1-8b-instant"

    # Dashboard recent builds (one entry per build_id)
    recent_builds_capacity: int = 5

    # Version control collaborator used when an apply request asks for a PR.
    vcs_mode: str = "mock"  # off|mock|github
    github_token: str | None = None
    github_api_base: str = "https://api.github.com"
    github_base_branch: str = "main"
    mock_github_dir: str = ".mock_github"
    public_base_url: str = "http://localhost:8090"

    # In-process broadcast: per-subscriber buffer before oldest messages are dropped.
    broadcast_queue_size: int = 200

    # -------- Integrations --------
    # If set, broadcast topics are relayed (POST JSON) to each URL.
    # Example:
    #   BUILDHEAL_INTEGRATION_WEBHOOK_URLS_JSON='["https://n8n.example/webhook/buildheal"]'
    integration_webhook_urls_json: str | None = None
    # Optional: restrict which topics are relayed (defaults to remediation_available only).
    integration_topics_json: str | None = None
