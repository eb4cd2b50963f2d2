"""Structured logging helpers for the mock server."""

from __future__ import annotations

import logging
import sys
from io import StringIO
from typing import Any

import structlog
from rich.console import Console
from rich.text import Text

from .output_config import LogFormat, get_log_format

LOGGER_NAME = "mock_expect"

_HIDDEN_KEYS = ("color_message", "stack", "exception", "logger")


class RichConsoleRenderer:
    """structlog renderer printing one coloured line per event via rich."""

    def __init__(self, width: int = 200) -> None:
        self.width = width
        self.level_styles = {
            "debug": "dim cyan",
            "info": "cyan",
            "warning": "yellow",
            "error": "bold red",
            "critical": "bold white on red",
        }
        # request outcome events get their own colour so unmatched traffic stands out
        self.event_styles = {
            "request_matched": "bold green",
            "request_unmatched": "bold yellow",
            "verification_failed": "bold red",
        }

    def __call__(self, logger: Any, name: str, event_dict: dict[str, Any]) -> str:
        timestamp = event_dict.pop("timestamp", "")
        level = event_dict.pop("level", "info")
        event = str(event_dict.pop("event", ""))
        exception = event_dict.pop("exception", None)

        text = Text()
        text.append(timestamp, style="dim white")
        text.append(" ")
        text.append(f"[{level:<8}]", style=self.level_styles.get(level, "white"))
        text.append(" ")
        text.append(event, style=self.event_styles.get(event, "bold white"))

        padding = max(0, 28 - len(event))
        if padding and event_dict:
            text.append(" " * padding)

        items = [(key, value) for key, value in sorted(event_dict.items()) if key not in _HIDDEN_KEYS]
        for position, (key, value) in enumerate(items):
            text.append(f"{key}=", style="dim white")
            text.append(str(value), style="bright_cyan")
            if position < len(items) - 1:
                text.append(" ")
        if exception:
            text.append("\n")
            text.append(str(exception), style="red")

        buffer = StringIO()
        console = Console(file=buffer, force_terminal=True, width=self.width, legacy_windows=False)
        console.print(text, end="")
        return buffer.getvalue()


def configure_logging(log_level: str = "info", log_format: LogFormat | None = None) -> structlog.stdlib.BoundLogger:
    """Configure structlog for the CLI; tests usually keep structlog's defaults."""

    normalized_level = getattr(logging, log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=normalized_level,
        stream=sys.stderr,
        format="%(message)s",
        force=True,
    )

    resolved = log_format or get_log_format()
    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", key="timestamp"),
        structlog.processors.format_exc_info,
    ]
    if resolved == "console":
        processors.append(RichConsoleRenderer())
    elif resolved == "plain":
        processors.append(structlog.dev.ConsoleRenderer(colors=False))
    else:
        processors.append(structlog.processors.JSONRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(normalized_level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    return structlog.get_logger(LOGGER_NAME)


def null_logger() -> Any:
    """A bound logger that drops every event, for servers with request logging off."""

    return structlog.wrap_logger(
        None,
        processors=[_drop_event],
        wrapper_class=structlog.make_filtering_bound_logger(logging.CRITICAL + 10),
    )


def _drop_event(logger: Any, name: str, event_dict: dict[str, Any]) -> Any:
    raise structlog.DropEvent
