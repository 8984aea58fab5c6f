from __future__ import annotations

from datetime import datetime, timezone
import json
import logging
from pathlib import Path
import sys
from typing import Final, Literal, TextIO, cast


_LOGGER_NAME: Final[str] = "mergelabel"
_MAX_VALUE_LEN: Final[int] = 120
_VERBOSE_FORMAT: Final[str] = "%(asctime)s %(levelname)s %(name)s [%(threadName)s] %(message)s"
_LOW_VERBOSITY_EVENTS: Final[frozenset[str]] = frozenset(
    {
        "conflict_label_resolved",
        "poll_budget_exhausted",
        "pr_labeled",
        "pr_unlabeled",
        "pr_label_failed",
        "pr_unlabel_failed",
        "run_finished",
    }
)


VerboseMode = Literal["low", "high"]


def configure_logging(
    verbose: bool | str | None,
    *,
    log_dir: Path | None = None,
    github_actions: bool = False,
) -> None:
    """Route ``mergelabel`` log records to stderr and optional daily files.

    With ``github_actions`` the console handler writes workflow commands to
    stdout instead: info records become ``::debug::`` lines, which the runner
    only shows when step debug logging is enabled, and warnings become
    ``::warning::`` annotations.
    """
    logger = logging.getLogger(_LOGGER_NAME)
    logger.propagate = False
    logger.handlers.clear()
    mode = _normalize_verbose_mode(verbose)

    if mode is None:
        logger.addHandler(logging.NullHandler())
        logger.setLevel(logging.CRITICAL + 1)
        return

    handlers: list[logging.Handler] = []
    if github_actions:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(_WorkflowCommandFormatter())
    else:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(logging.Formatter(_VERBOSE_FORMAT))
    handlers.append(console_handler)

    if log_dir is not None:
        file_handler = _UtcDailyFileHandler(log_dir=log_dir)
        file_handler.setFormatter(logging.Formatter(_VERBOSE_FORMAT))
        handlers.append(file_handler)

    for handler in handlers:
        if mode == "low":
            handler.addFilter(_LowVerbosityFilter())
        logger.addHandler(handler)
    logger.setLevel(logging.INFO)


def escape_workflow_command(message: str) -> str:
    return message.replace("%", "%25").replace("\r", "%0D").replace("\n", "%0A")


def log_event(logger: logging.Logger, event: str, **fields: object) -> None:
    logger.info(_build_event_message(event=event, fields=fields))


def log_warning_event(logger: logging.Logger, event: str, **fields: object) -> None:
    logger.warning(_build_event_message(event=event, fields=fields))


def _build_event_message(*, event: str, fields: dict[str, object]) -> str:
    parts = [f"event={_normalize_field_value(event)}"]
    for key in sorted(fields.keys()):
        parts.append(f"{key}={_normalize_field_value(fields[key])}")
    return " ".join(parts)


def _normalize_field_value(value: object) -> str:
    if value is None:
        normalized = "null"
    elif isinstance(value, bool):
        normalized = "true" if value else "false"
    elif isinstance(value, int | float):
        normalized = str(value)
    elif isinstance(value, str):
        collapsed = " ".join(value.split())
        if len(collapsed) > _MAX_VALUE_LEN:
            collapsed = f"{collapsed[:_MAX_VALUE_LEN]}..."
        normalized = collapsed if collapsed else "<empty>"
    else:
        normalized = f"<{type(value).__name__}>"

    if any(ch.isspace() for ch in normalized) or "=" in normalized:
        return json.dumps(normalized)
    return normalized


def _normalize_verbose_mode(verbose: bool | str | None) -> VerboseMode | None:
    if verbose is None:
        return None
    if isinstance(verbose, bool):
        return "high" if verbose else None
    normalized = verbose.strip().lower()
    if normalized in {"low", "high"}:
        return cast(VerboseMode, normalized)
    raise ValueError(f"Unsupported verbose mode: {verbose!r}")


class _LowVerbosityFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        if record.levelno >= logging.WARNING:
            return True
        head = record.getMessage().split(" ", 1)[0]
        return head.startswith("event=") and head[len("event=") :] in _LOW_VERBOSITY_EVENTS


class _UtcDailyFileHandler(logging.Handler):
    """Appends to ``<log_dir>/YYYY-MM-DD.log``, rolling over at UTC midnight."""

    def __init__(self, *, log_dir: Path) -> None:
        super().__init__()
        self._log_dir = log_dir
        self._stream: TextIO | None = None
        self._active_date = ""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            stream = self._stream_for_current_date()
            stream.write(f"{self.format(record)}\n")
            stream.flush()
        except Exception:
            self.handleError(record)

    def close(self) -> None:
        self.acquire()
        try:
            self._close_stream()
            super().close()
        finally:
            self.release()

    def _stream_for_current_date(self) -> TextIO:
        date_key = datetime.now(timezone.utc).strftime("%Y-%m-%d")
        if self._stream is None or self._active_date != date_key:
            self._close_stream()
            self._log_dir.mkdir(parents=True, exist_ok=True)
            self._stream = (self._log_dir / f"{date_key}.log").open("a", encoding="utf-8")
            self._active_date = date_key
        return self._stream

    def _close_stream(self) -> None:
        if self._stream is not None:
            self._stream.close()
            self._stream = None


class _WorkflowCommandFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        command = "warning" if record.levelno >= logging.WARNING else "debug"
        message = f"{record.name}: {record.getMessage()}"
        return f"::{command}::{escape_workflow_command(message)}"
