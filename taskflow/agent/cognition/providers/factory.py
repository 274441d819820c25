from __future__ import annotations

from typing import Any

from taskflow.agent.cognition.providers.ollama import OllamaClient
from taskflow.agent.cognition.providers.openai import OpenAIClient
from taskflow.config import settings


def build_llm_client() -> Any:
    if settings.get_llm_provider() == "ollama":
        return _build_ollama_client()
    return _build_openai_client()


def _build_ollama_client() -> OllamaClient:
    return OllamaClient(
        base_url=settings.get_llm_base_url(),
        model=settings.get_llm_model(),
        timeout=settings.get_llm_http_timeout_seconds(),
    )


def _build_openai_client() -> OpenAIClient:
    return OpenAIClient(
        base_url=settings.get_llm_base_url(),
        model=settings.get_llm_model(),
        api_key_env=settings.get_llm_api_key_env(),
        timeout=settings.get_llm_http_timeout_seconds(),
    )
