"""Loguru sinks for the assistant.

Output printed by analysis scripts is logged with ``sandbox=True`` bound.
It is model-authored text, so it goes to the sandbox consumer and stays out
of the console and the main log file unless a consumer opts in with
``include_sandbox``.
"""

import sys
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from loguru import logger

SANDBOX_EXTRA = "sandbox"


def _from_sandbox(record: dict[str, Any]) -> bool:
    return bool(record["extra"].get(SANDBOX_EXTRA))


def _from_host(record: dict[str, Any]) -> bool:
    return not _from_sandbox(record)


@runtime_checkable
class LogConsumer(Protocol):
    def register(self, level: str) -> None: ...
    def describe(self, level: str) -> str: ...


class ConsoleLogConsumer:
    def __init__(self, include_sandbox: bool = False):
        self._include_sandbox = include_sandbox

    def register(self, level: str) -> None:
        logger.add(
            sys.stderr,
            level=level,
            format="<level>{level:<8}</level> | <cyan>{name}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
            filter=None if self._include_sandbox else _from_host,
        )

    def describe(self, level: str) -> str:
        return f"console (stderr, {level})"


class FileLogConsumer:
    def __init__(
        self,
        path: str = "analytic_assistant.log",
        rotation: str = "10 MB",
        retention: int = 3,
        include_sandbox: bool = False,
    ):
        self._path = path
        self._rotation = rotation
        self._retention = retention
        self._include_sandbox = include_sandbox

    def register(self, level: str) -> None:
        Path(self._path).parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            self._path,
            level=level,
            format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<8} | {name}:{function}:{line} - {message}",
            rotation=self._rotation,
            retention=self._retention,
            filter=None if self._include_sandbox else _from_host,
        )

    def describe(self, level: str) -> str:
        return f"file ({self._path}, {level})"


class SandboxLogConsumer:
    """Collects ``print`` output from analysis scripts, one line per call."""

    def __init__(self, path: str = "sandbox.log", rotation: str = "5 MB", retention: int = 3):
        self._path = path
        self._rotation = rotation
        self._retention = retention

    def register(self, level: str) -> None:
        Path(self._path).parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            self._path,
            level=level,
            format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {thread.name} | {message}",
            rotation=self._rotation,
            retention=self._retention,
            filter=_from_sandbox,
        )

    def describe(self, level: str) -> str:
        return f"sandbox ({self._path}, {level})"


_CONSUMER_TYPES: dict[str, type] = {
    "console": ConsoleLogConsumer,
    "file": FileLogConsumer,
    "sandbox": SandboxLogConsumer,
}

# The REPL prints to stdout, so the console sink only carries warnings by default.
_DEFAULT_CONSUMERS = [
    {"type": "console", "level": "WARNING"},
    {"type": "file", "path": "analytic_assistant.log"},
    {"type": "sandbox", "path": "sandbox.log"},
]


def setup_logging(
    level: str = "INFO",
    consumers: list[dict[str, Any]] | None = None,
) -> list[str]:
    """Configure logging sinks. Returns a description of each registered consumer.

    Unknown consumer types are skipped and reported once the remaining sinks
    are in place.
    """
    logger.remove()

    if consumers is None:
        consumers = _DEFAULT_CONSUMERS

    descriptions: list[str] = []
    unknown: list[str] = []
    for config in consumers:
        sink_type = config.get("type", "")
        cls = _CONSUMER_TYPES.get(sink_type)
        if cls is None:
            unknown.append(sink_type)
            continue

        kwargs = {k: v for k, v in config.items() if k not in ("type", "level")}
        sink_level = str(config.get("level", level)).upper()

        consumer = cls(**kwargs)
        consumer.register(sink_level)
        descriptions.append(consumer.describe(sink_level))

    for sink_type in unknown:
        logger.warning(f"Unknown log consumer type: {sink_type!r}")
    return descriptions
