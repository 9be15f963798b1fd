import sys
from pathlib import Path
from typing import Any

from loguru import logger

from termchat.errors import ConfigError


class ConsoleLogConsumer:
    def register(self, level: str) -> None:
        logger.add(
            sys.stderr,
            level=level,
            format="<level>{level:<8}</level> | <level>{message}</level>",
        )

    def describe(self, level: str) -> str:
        return f"console (stderr, {level})"


class FileLogConsumer:
    def __init__(
        self,
        path: str = "~/.chatgpt/termchat.log",
        rotation: str = "10 MB",
        retention: int = 3,
    ):
        self._path = str(Path(path).expanduser())
        self._rotation = rotation
        self._retention = retention

    def register(self, level: str) -> None:
        Path(self._path).parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            self._path,
            level=level,
            format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<8} | {name}:{function}:{line} - {message}",
            rotation=self._rotation,
            retention=self._retention,
        )

    def describe(self, level: str) -> str:
        return f"file ({self._path}, {level})"


_CONSUMER_TYPES: dict[str, type] = {
    "console": ConsoleLogConsumer,
    "file": FileLogConsumer,
}

# Console stays at WARNING: it shares the terminal with the streamed answer.
_DEFAULT_CONSUMERS = [
    {"type": "console", "level": "WARNING"},
    {"type": "file"},
]


def setup_logging(
    level: str = "INFO",
    consumers: list[dict[str, Any]] | None = None,
) -> list[str]:
    """Configure logging sinks. Returns a description of each registered consumer.

    Raises ConfigError for an unknown level or bad consumer settings, leaving a
    plain stderr sink in place so the error can still be reported.
    """
    logger.remove()

    if consumers is None:
        consumers = _DEFAULT_CONSUMERS

    try:
        return _register_consumers(level, consumers)
    except (OSError, ValueError, TypeError, AttributeError) as ex:
        logger.remove()
        logger.add(sys.stderr, level="WARNING")
        raise ConfigError(f"Invalid logging configuration: {ex}") from ex


def _register_consumers(level: str, consumers: list[dict[str, Any]]) -> list[str]:
    descriptions: list[str] = []

    for config in consumers:
        sink_type = config.get("type", "")
        cls = _CONSUMER_TYPES.get(sink_type)
        if cls is None:
            logger.warning(f"Unknown log consumer type: {sink_type!r}")
            continue

        kwargs = {k: v for k, v in config.items() if k not in ("type", "level")}
        sink_level = config.get("level", level)

        consumer = cls(**kwargs)
        consumer.register(sink_level)
        descriptions.append(consumer.describe(sink_level))

    return descriptions
