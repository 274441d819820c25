from taskflow.agent.cognition.providers.completion import AsyncCompletionService
from taskflow.agent.cognition.providers.factory import build_llm_client
from taskflow.agent.cognition.providers.ollama import OllamaClient
from taskflow.agent.cognition.providers.openai import OpenAIClient

__all__ = [
    "AsyncCompletionService",
    "build_llm_client",
    "OllamaClient",
    "OpenAIClient",
]
