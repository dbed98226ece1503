"""
ChatRelay Logging — human-readable lines on a terminal, JSON everywhere else.

setup_logging() is called once by main(). Everything else just does
logging.getLogger(__name__).

Env vars:
    CHATRELAY_LOG_LEVEL   DEBUG / INFO / WARNING / ERROR (default INFO)
    CHATRELAY_LOG_FORMAT  text / json (default text)
    CHATRELAY_LOG_COLOR   true / false / auto (default auto, on for a TTY)

Exchange log lines carry extra fields that the JSON formatter lifts to the
top level:
    logger.info("...", extra={"session_id": sid, "exchange_id": eid})
"""

from __future__ import annotations

import copy
import json
import logging
import os
import sys
import time

_RESET = "\033[0m"
_DIM = "\033[2m"
_LEVEL_COLORS = {
    logging.DEBUG: "\033[36m",
    logging.INFO: "\033[32m",
    logging.WARNING: "\033[33m",
    logging.ERROR: "\033[31m",
    logging.CRITICAL: "\033[1;31m",
}

# Extra record attributes copied into JSON lines
EXTRA_FIELDS = ("session_id", "exchange_id", "state", "duration_ms", "event")

# Third-party loggers that are chatty at INFO
QUIET_LOGGERS = (
    "httpx",
    "httpcore",
    "openai",
    "google_genai",
    "uvicorn.access",
)


class ColorFormatter(logging.Formatter):
    """`HH:MM:SS LEVEL logger: message`, with the level and logger tinted."""

    def __init__(self, use_color: bool = True):
        super().__init__(
            fmt="%(asctime)s %(levelname)s [%(name)s] %(message)s",
            datefmt="%H:%M:%S",
        )
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        if not self.use_color:
            return super().format(record)
        # Tint a copy so other handlers see the plain record
        tinted = copy.copy(record)
        color = _LEVEL_COLORS.get(record.levelno, "")
        tinted.levelname = f"{color}{record.levelname}{_RESET}"
        tinted.name = f"{_DIM}{record.name}{_RESET}"
        return super().format(tinted)


class StructuredFormatter(logging.Formatter):
    """One JSON object per line, UTC timestamps, extras at the top level."""

    converter = time.gmtime

    def format(self, record: logging.LogRecord) -> str:
        entry: dict = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%S")
            + f".{int(record.msecs):03d}Z",
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        entry.update(
            (key, record.__dict__[key]) for key in EXTRA_FIELDS if key in record.__dict__
        )
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class ExchangeTimer:
    """Per-stage durations for one exchange.

        timer = ExchangeTimer()
        timer.mark("normalize")   # time since the timer started
        timer.mark("llm")         # time since "normalize"
        timer.summary()           # "normalize: 0.0s | llm: 2.1s | Total: 2.1s"
    """

    def __init__(self):
        self._started = self._last = time.monotonic()
        self._stages: dict[str, float] = {}

    def mark(self, stage: str) -> None:
        now = time.monotonic()
        self._stages[stage] = now - self._last
        self._last = now

    def total(self) -> float:
        return time.monotonic() - self._started

    def summary(self) -> str:
        rendered = [f"{stage}: {secs:.1f}s" for stage, secs in self._stages.items()]
        rendered.append(f"Total: {self.total():.1f}s")
        return " | ".join(rendered)


def _use_color() -> bool:
    setting = os.getenv("CHATRELAY_LOG_COLOR", "auto").lower()
    if setting in ("true", "false"):
        return setting == "true"
    return sys.stdout.isatty()


def setup_logging() -> None:
    level_name = os.getenv("CHATRELAY_LOG_LEVEL", "INFO").upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        level = logging.INFO
    log_format = os.getenv("CHATRELAY_LOG_FORMAT", "text").lower()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        StructuredFormatter()
        if log_format == "json"
        else ColorFormatter(use_color=_use_color())
    )
    logging.basicConfig(level=level, handlers=[handler], force=True)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    # uvicorn installs no handlers of its own when log_config=None
    logging.getLogger("uvicorn.error").setLevel(level)

    logging.getLogger("chatrelay").debug(
        "Logging configured (level=%s, format=%s)", level_name, log_format
    )
