import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any

from loguru import logger

# Records logged outside an exchange carry this placeholder for each tag.
UNTAGGED = "-"

EXCHANGE_TAGS = ("conversation_id", "model")

_CONSOLE_FORMAT = (
    "<level>{level:<8}</level> | <cyan>{extra[model]}</cyan> <magenta>{extra[conversation_id]}</magenta>"
    " | <level>{message}</level>"
)
_FILE_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<8} | model={extra[model]} conversation={extra[conversation_id]}"
    " | {name}:{function}:{line} - {message}"
)


def _add_console(level: str, options: dict[str, Any]) -> str:
    logger.add(sys.stderr, level=level, format=_CONSOLE_FORMAT, colorize=options.get("colorize"))
    return f"console (stderr, {level})"


def _add_file(level: str, options: dict[str, Any]) -> str:
    path = str(options.get("path", "chatbot.log"))
    serialize = bool(options.get("serialize", False))
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    logger.add(
        path,
        level=level,
        format=_FILE_FORMAT,
        rotation=options.get("rotation", "5 MB"),
        retention=options.get("retention", 3),
        serialize=serialize,
    )
    return f"file ({path}, {level}{', json' if serialize else ''})"


_SINKS: dict[str, Callable[[str, dict[str, Any]], str]] = {
    "console": _add_console,
    "file": _add_file,
}

_DEFAULT_CONSUMERS = [
    {"type": "console", "level": "WARNING"},
    {"type": "file", "path": "chatbot.log"},
]


def setup_logging(
    level: str = "INFO",
    consumers: list[dict[str, Any]] | None = None,
) -> list[str]:
    """Replace loguru's default sink with the configured consumers.

    Every sink prints the ``conversation_id`` and ``model`` of the exchange a
    record was logged under (see ``SessionManager.send``), or ``-`` outside
    one. A file consumer accepts ``path``, ``rotation``, ``retention`` and
    ``serialize`` (one JSON object per line).

    Returns a description of each registered consumer.
    """
    logger.remove()
    logger.configure(extra={tag: UNTAGGED for tag in EXCHANGE_TAGS})

    if consumers is None:
        consumers = _DEFAULT_CONSUMERS

    descriptions: list[str] = []
    for config in consumers:
        sink_type = config.get("type", "")
        add_sink = _SINKS.get(sink_type)
        if add_sink is None:
            logger.warning(f"Unknown log consumer type: {sink_type!r}")
            continue
        options = {k: v for k, v in config.items() if k not in ("type", "level")}
        descriptions.append(add_sink(config.get("level", level), options))

    return descriptions
