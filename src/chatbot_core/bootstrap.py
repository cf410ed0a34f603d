from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from loguru import logger

from chatbot_core.app_config import AppConfig, RuntimeEnv
from chatbot_core.logging_config import setup_logging
from chatbot_core.session_manager import SessionManager
from chatbot_core.settings_controller import SettingsController
from chatbot_core.store import RecordStore, prune_conversations
from chatbot_core.transport import CompletionTransport, HttpxTransport


@dataclass
class AppRuntime:
    sessions: SessionManager
    settings: SettingsController
    store: RecordStore
    log_descriptions: list[str]

    async def aclose(self) -> None:
        try:
            await self.sessions.aclose()
        finally:
            self.store.close()


def bootstrap_runtime(
    app: AppConfig,
    env: RuntimeEnv,
    *,
    transport: CompletionTransport | None = None,
    configure_logging: bool = True,
) -> AppRuntime:
    log_descriptions = setup_logging(level=app.log_level, consumers=app.log_consumers) if configure_logging else []

    db_path = Path(app.db_path)
    if not db_path.is_absolute():
        db_path = Path.cwd() / db_path
    store = RecordStore(str(db_path))

    if app.max_conversations > 0 or app.retention_days > 0:
        pruned = prune_conversations(
            store,
            max_conversations=app.max_conversations,
            retention_days=app.retention_days,
        )
        if pruned:
            logger.info(f"Pruned {len(pruned)} conversation(s)")

    if not env.api_key:
        logger.warning("OPENROUTER_API_KEY is not set; requests will be rejected by the endpoint")

    sessions = SessionManager(
        store,
        transport or HttpxTransport(timeout_seconds=app.request_timeout_seconds),
        model=app.model,
        base_url=app.base_url,
        api_key=env.api_key,
        extra_headers=app.extra_headers,
    )
    return AppRuntime(
        sessions=sessions,
        settings=SettingsController(store),
        store=store,
        log_descriptions=log_descriptions,
    )
