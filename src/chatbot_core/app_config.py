from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"
FALLBACK_MODEL = "nvidia/nemotron-3-nano-30b-a3b:free"


@dataclass
class RuntimeEnv:
    api_key: str
    default_model: str | None


@dataclass
class AppConfig:
    base_url: str
    model: str
    available_models: list[str]
    db_path: str
    referer: str
    app_title: str
    request_timeout_seconds: float | None
    max_conversations: int
    retention_days: int
    log_level: str
    log_consumers: list | None
    extra_headers: dict[str, str] = field(default_factory=dict)


def load_json_config() -> dict:
    config_path = Path.cwd() / "config.json"
    if config_path.exists():
        with open(config_path) as f:
            return json.load(f)
    return {}


def _to_bool(value: object, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"1", "true", "yes", "on"}:
            return True
        if lowered in {"0", "false", "no", "off"}:
            return False
    return bool(value)


def _to_timeout(value: object) -> float | None:
    if value is None:
        return 120.0
    timeout = float(value)
    return timeout if timeout > 0 else None


def parse_app_config(config: dict, env: RuntimeEnv | None = None) -> AppConfig:
    default_model = (env.default_model if env else None) or FALLBACK_MODEL
    model = str(config.get("Model") or default_model).strip()
    available = [str(m).strip() for m in config.get("AvailableModels", []) if str(m).strip()]
    if model not in available:
        available.insert(0, model)

    referer = str(config.get("Referer", "https://github.com/chatbot-core/chatbot-core"))
    app_title = str(config.get("AppTitle", "Chatbot Core"))
    extra_headers = {}
    if _to_bool(config.get("SendIdentificationHeaders", True), default=True):
        extra_headers = {"HTTP-Referer": referer, "X-Title": app_title}

    return AppConfig(
        base_url=str(config.get("BaseUrl", DEFAULT_BASE_URL)).rstrip("/"),
        model=model,
        available_models=available,
        db_path=str(config.get("DbPath", ".chatbot/chat.db")),
        referer=referer,
        app_title=app_title,
        request_timeout_seconds=_to_timeout(config.get("RequestTimeoutSeconds")),
        max_conversations=int(config.get("MaxConversations", 0)),
        retention_days=int(config.get("RetentionDays", 0)),
        log_level=config.get("LogLevel", "INFO"),
        log_consumers=config.get("LogConsumers"),
        extra_headers=extra_headers,
    )


def resolve_runtime_env() -> RuntimeEnv:
    return RuntimeEnv(
        api_key=os.environ.get("OPENROUTER_API_KEY", ""),
        default_model=os.environ.get("DEFAULT_MODEL") or None,
    )
