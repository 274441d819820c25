from __future__ import annotations

import os
import shlex
from pathlib import Path
from zoneinfo import ZoneInfo

DEFAULT_TIMEZONE = "UTC"
DEFAULT_TURN_TIMEOUT_SECONDS = 30.0
DEFAULT_COMPOSE_TIMEOUT_SECONDS = 15.0
DEFAULT_EXTRACTION_TIMEOUT_SECONDS = 10.0
DEFAULT_TOOL_CONNECT_TIMEOUT_SECONDS = 10.0
DEFAULT_MAX_ACTIONS_PER_TURN = 3
DEFAULT_SESSION_TTL_SECONDS = 30 * 60
DEFAULT_SESSION_BACKEND = "memory"
DEFAULT_HISTORY_WINDOW = 10
DEFAULT_MAX_MESSAGE_CHARS = 2000
DEFAULT_LLM_PROVIDER = "openai"
DEFAULT_OPENAI_BASE_URL = "https://api.openai.com/v1"
DEFAULT_OPENAI_MODEL = "gpt-4o-mini"
DEFAULT_OLLAMA_BASE_URL = "http://localhost:11434"
DEFAULT_OLLAMA_MODEL = "mistral:7b-instruct"
DEFAULT_LLM_HTTP_TIMEOUT_SECONDS = 60
DEFAULT_MCP_COMMAND = "node"
DEFAULT_API_HOST = "127.0.0.1"
DEFAULT_API_PORT = 8010


def get_timezone() -> str:
    configured = os.getenv("TASKFLOW_TIMEZONE")
    tz_name = (
        configured.strip()
        if isinstance(configured, str) and configured.strip()
        else DEFAULT_TIMEZONE
    )
    try:
        ZoneInfo(tz_name)
    except Exception:
        return DEFAULT_TIMEZONE
    return tz_name


def get_turn_timeout_seconds() -> float:
    return _env_float("TASKFLOW_TURN_TIMEOUT_SECONDS", DEFAULT_TURN_TIMEOUT_SECONDS)


def get_compose_timeout_seconds() -> float:
    return _env_float("TASKFLOW_COMPOSE_TIMEOUT_SECONDS", DEFAULT_COMPOSE_TIMEOUT_SECONDS)


def get_extraction_timeout_seconds() -> float:
    return _env_float(
        "TASKFLOW_EXTRACTION_TIMEOUT_SECONDS", DEFAULT_EXTRACTION_TIMEOUT_SECONDS
    )


def get_tool_connect_timeout_seconds() -> float:
    return _env_float(
        "TASKFLOW_TOOL_CONNECT_TIMEOUT_SECONDS", DEFAULT_TOOL_CONNECT_TIMEOUT_SECONDS
    )


def get_max_actions_per_turn() -> int:
    return max(_env_int("TASKFLOW_MAX_ACTIONS_PER_TURN", DEFAULT_MAX_ACTIONS_PER_TURN), 1)


def get_session_ttl_seconds() -> int:
    return max(_env_int("TASKFLOW_SESSION_TTL_SECONDS", DEFAULT_SESSION_TTL_SECONDS), 0)


def get_session_backend() -> str:
    configured = str(os.getenv("TASKFLOW_SESSION_BACKEND") or "").strip().lower()
    if configured in {"memory", "sqlite"}:
        return configured
    return DEFAULT_SESSION_BACKEND


def get_session_db_path() -> Path:
    configured = os.getenv("TASKFLOW_SESSION_DB_PATH")
    if isinstance(configured, str) and configured.strip():
        return Path(configured.strip()).expanduser()
    return _data_dir() / "sessions.db"


def get_directory_db_path() -> Path | None:
    configured = os.getenv("TASKFLOW_DIRECTORY_DB_PATH")
    if isinstance(configured, str) and configured.strip():
        return Path(configured.strip()).expanduser()
    return None


def get_history_window() -> int:
    return max(_env_int("TASKFLOW_HISTORY_WINDOW", DEFAULT_HISTORY_WINDOW), 0)


def get_max_message_chars() -> int:
    return max(_env_int("TASKFLOW_MAX_MESSAGE_CHARS", DEFAULT_MAX_MESSAGE_CHARS), 1)


def get_llm_provider() -> str:
    configured = str(os.getenv("TASKFLOW_LLM_PROVIDER") or "").strip().lower()
    if configured in {"openai", "ollama"}:
        return configured
    return DEFAULT_LLM_PROVIDER


def get_llm_base_url() -> str:
    configured = os.getenv("TASKFLOW_LLM_BASE_URL") or os.getenv("OPENAI_API_BASE_URL")
    if isinstance(configured, str) and configured.strip():
        return configured.strip().rstrip("/")
    if get_llm_provider() == "ollama":
        return DEFAULT_OLLAMA_BASE_URL
    return DEFAULT_OPENAI_BASE_URL


def get_llm_model() -> str:
    configured = os.getenv("TASKFLOW_LLM_MODEL")
    if isinstance(configured, str) and configured.strip():
        return configured.strip()
    if get_llm_provider() == "ollama":
        return DEFAULT_OLLAMA_MODEL
    return DEFAULT_OPENAI_MODEL


def get_llm_api_key_env() -> str:
    configured = os.getenv("TASKFLOW_LLM_API_KEY_ENV")
    if isinstance(configured, str) and configured.strip():
        return configured.strip()
    return "OPENAI_API_KEY"


def get_llm_http_timeout_seconds() -> int:
    return max(_env_int("TASKFLOW_LLM_HTTP_TIMEOUT_SECONDS", DEFAULT_LLM_HTTP_TIMEOUT_SECONDS), 1)


def get_enable_llm_intent_fallback() -> bool:
    return _env_bool("TASKFLOW_ENABLE_LLM_INTENT_FALLBACK", True)


def get_mcp_server_command() -> str:
    configured = os.getenv("TASKFLOW_MCP_COMMAND")
    if isinstance(configured, str) and configured.strip():
        return configured.strip()
    return DEFAULT_MCP_COMMAND


def get_mcp_server_args() -> list[str]:
    configured = os.getenv("TASKFLOW_MCP_ARGS")
    if isinstance(configured, str) and configured.strip():
        return shlex.split(configured)
    return ["dist/mcp-server.js"]


def get_mcp_server_cwd() -> str | None:
    configured = os.getenv("TASKFLOW_MCP_CWD")
    if isinstance(configured, str) and configured.strip():
        return configured.strip()
    return None


def get_api_host() -> str:
    configured = os.getenv("TASKFLOW_HOST")
    if isinstance(configured, str) and configured.strip():
        return configured.strip()
    return DEFAULT_API_HOST


def get_api_port() -> int:
    return _env_int("TASKFLOW_PORT", DEFAULT_API_PORT)


def get_log_level() -> str:
    configured = str(os.getenv("TASKFLOW_LOG_LEVEL") or "").strip().upper()
    return configured or "INFO"


def _data_dir() -> Path:
    configured = os.getenv("TASKFLOW_DATA_DIR")
    if isinstance(configured, str) and configured.strip():
        return Path(configured.strip()).expanduser()
    return Path.cwd() / ".taskflow-data"


def _env_float(name: str, default: float) -> float:
    configured = os.getenv(name)
    if configured is None:
        return default
    try:
        value = float(configured)
    except (TypeError, ValueError):
        return default
    return value if value > 0 else default


def _env_int(name: str, default: int) -> int:
    configured = os.getenv(name)
    if configured is None:
        return default
    try:
        return int(configured)
    except (TypeError, ValueError):
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    val = raw.strip().lower()
    if val in {"1", "true", "yes", "y", "on"}:
        return True
    if val in {"0", "false", "no", "n", "off"}:
        return False
    return default
