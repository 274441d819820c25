"""Assistant entrypoint."""

from __future__ import annotations

import logging
from pathlib import Path

from dotenv import load_dotenv

from taskflow.agent.cognition.providers.factory import build_llm_client
from taskflow.config import settings
from taskflow.infrastructure.api_server import ApiServer


def load_env() -> None:
    for env_path in (Path.cwd() / ".env", Path(__file__).resolve().parent / ".env"):
        if env_path.exists():
            load_dotenv(env_path)
            return


def main() -> None:
    load_env()
    log_level = settings.get_log_level()
    logging.basicConfig(level=getattr(logging, log_level, logging.INFO))
    client = build_llm_client()
    logging.info(
        "LLM provider=%s model=%s",
        settings.get_llm_provider(),
        getattr(client, "model", "unknown"),
    )
    logging.info(
        "Tool server command=%s args=%s",
        settings.get_mcp_server_command(),
        " ".join(settings.get_mcp_server_args()),
    )
    server = ApiServer(
        host=settings.get_api_host(),
        port=settings.get_api_port(),
        log_level=log_level.lower(),
    )
    server.run()


if __name__ == "__main__":
    main()
