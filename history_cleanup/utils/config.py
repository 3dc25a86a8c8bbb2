"""
Configuration for history cleanup.

Values are loaded once (explicitly or from ``HISTORY_CLEANUP_*`` environment
variables) and never mutated afterwards.

Usage:
    from history_cleanup.utils.config import get_config

    config = get_config()
    window = config.batch_window()
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field

from loguru import logger

from history_cleanup.cleanup.window import BatchWindow, parse_time_of_day
from history_cleanup.exceptions import ConfigurationError, ParseError
from history_cleanup.utils.clock import Clock

MAX_BATCH_SIZE = 500
DEFAULT_BATCH_SIZE = 500
DEFAULT_BATCH_THRESHOLD = 10

_ISO_DAYS = re.compile(r"^P(\d+)D$")

_TRUE_VALUES = ("1", "true", "yes", "on")
_FALSE_VALUES = ("0", "false", "no", "off")


def parse_history_time_to_live(value: str | int) -> int:
    """
    Parse a history time to live into days.

    Accepts a plain day count (``"5"``) or an ISO-8601 day period (``"P5D"``).

    Raises:
        ConfigurationError: If the value is not a non-negative day count
    """
    if isinstance(value, bool):
        raise ConfigurationError(f"Invalid history time to live: {value!r}")
    if isinstance(value, int):
        days = value
    else:
        text = str(value).strip()
        match = _ISO_DAYS.match(text)
        if match:
            days = int(match.group(1))
        elif text.lstrip("-").isdigit():
            days = int(text)
        else:
            raise ConfigurationError(
                f"Invalid history time to live: {value!r} (expected e.g. '5' or 'P5D')"
            )

    if days < 0:
        raise ConfigurationError(f"History time to live must be non-negative, got {days}")
    return days


def _parse_bool(name: str, value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ConfigurationError(f"{name} must be a boolean, got {value!r}")


def _parse_int(name: str, value: str) -> int:
    try:
        return int(value)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer, got {value!r}") from e


def _parse_operations(value: str) -> dict[str, str]:
    """Parse ``"type=ttl,type=ttl"`` into a mapping."""
    operations = {}
    for item in value.split(","):
        item = item.strip()
        if not item:
            continue
        operation, sep, ttl = item.partition("=")
        if not sep or not operation.strip():
            raise ConfigurationError(
                f"Invalid batch operation entry {item!r} (expected 'operation=ttl')"
            )
        operations[operation.strip()] = ttl.strip()
    return operations


@dataclass(frozen=True)
class HistoryCleanupConfig:
    """
    History cleanup configuration.

    Attributes:
        batch_size: Maximum ids removed per cleanup cycle (1-500)
        batch_threshold: Minimum batch size that makes the job run again
            immediately instead of waiting for the next window
        batch_window_start_time: Window start, "HH:mm" or "HH:mmZ"
        batch_window_end_time: Window end, "HH:mm" or "HH:mmZ"
        dmn_enabled: Whether historic decision instances are cleaned up
        cmmn_enabled: Whether historic case instances are cleaned up
        batch_operations_for_history_cleanup: Batch operation type -> history
            time to live ("5" or "P5D")
        db_path: History store database path
    """

    batch_size: int = DEFAULT_BATCH_SIZE
    batch_threshold: int = DEFAULT_BATCH_THRESHOLD
    batch_window_start_time: str | None = None
    batch_window_end_time: str | None = None
    dmn_enabled: bool = True
    cmmn_enabled: bool = True
    batch_operations_for_history_cleanup: dict[str, str] = field(default_factory=dict)
    db_path: str | None = None

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        if not 1 <= self.batch_size <= MAX_BATCH_SIZE:
            raise ConfigurationError(
                f"batch_size must be between 1 and {MAX_BATCH_SIZE}, got {self.batch_size}"
            )
        if self.batch_threshold < 0:
            raise ConfigurationError(
                f"batch_threshold must be non-negative, got {self.batch_threshold}"
            )
        if (self.batch_window_start_time is None) != (self.batch_window_end_time is None):
            raise ConfigurationError(
                "batch_window_start_time and batch_window_end_time must be set together"
            )
        for name in ("batch_window_start_time", "batch_window_end_time"):
            value = getattr(self, name)
            if value is not None:
                try:
                    parse_time_of_day(value)
                except ParseError as e:
                    raise ParseError(f"{name}: {e}") from e
        # Fail fast on unparseable time to live values
        self.batch_operation_ttls()

    @property
    def batch_window_configured(self) -> bool:
        return self.batch_window_start_time is not None

    def batch_window(self, clock: Clock | None = None) -> BatchWindow:
        """Build the batch window (possibly unconfigured)."""
        return BatchWindow.from_config(
            self.batch_window_start_time,
            self.batch_window_end_time,
            clock=clock,
        )

    def batch_operation_ttls(self) -> dict[str, int]:
        """Batch operation type -> history time to live in days."""
        return {
            operation: parse_history_time_to_live(ttl)
            for operation, ttl in self.batch_operations_for_history_cleanup.items()
        }

    @classmethod
    def from_env(cls) -> "HistoryCleanupConfig":
        """
        Load configuration from environment variables.

        Variables:
            HISTORY_CLEANUP_BATCH_SIZE
            HISTORY_CLEANUP_BATCH_THRESHOLD
            HISTORY_CLEANUP_BATCH_WINDOW_START_TIME
            HISTORY_CLEANUP_BATCH_WINDOW_END_TIME
            HISTORY_CLEANUP_DMN_ENABLED
            HISTORY_CLEANUP_CMMN_ENABLED
            HISTORY_CLEANUP_BATCH_OPERATIONS ("type=ttl,type=ttl")
            HISTORY_CLEANUP_DB_PATH
        """
        kwargs = {}

        batch_size = os.getenv("HISTORY_CLEANUP_BATCH_SIZE")
        if batch_size:
            kwargs["batch_size"] = _parse_int("HISTORY_CLEANUP_BATCH_SIZE", batch_size)

        batch_threshold = os.getenv("HISTORY_CLEANUP_BATCH_THRESHOLD")
        if batch_threshold:
            kwargs["batch_threshold"] = _parse_int(
                "HISTORY_CLEANUP_BATCH_THRESHOLD", batch_threshold
            )

        kwargs["batch_window_start_time"] = os.getenv("HISTORY_CLEANUP_BATCH_WINDOW_START_TIME") or None
        kwargs["batch_window_end_time"] = os.getenv("HISTORY_CLEANUP_BATCH_WINDOW_END_TIME") or None

        for key, env_var in (
            ("dmn_enabled", "HISTORY_CLEANUP_DMN_ENABLED"),
            ("cmmn_enabled", "HISTORY_CLEANUP_CMMN_ENABLED"),
        ):
            value = os.getenv(env_var)
            if value:
                kwargs[key] = _parse_bool(env_var, value)

        operations = os.getenv("HISTORY_CLEANUP_BATCH_OPERATIONS")
        if operations:
            kwargs["batch_operations_for_history_cleanup"] = _parse_operations(operations)

        kwargs["db_path"] = os.getenv("HISTORY_CLEANUP_DB_PATH") or None

        return cls(**kwargs)


_config: HistoryCleanupConfig | None = None


def get_config() -> HistoryCleanupConfig:
    """Get the process-wide configuration, loading it from the environment once."""
    global _config
    if _config is None:
        _config = HistoryCleanupConfig.from_env()
        logger.debug(
            f"Loaded history cleanup config (batch_size={_config.batch_size}, "
            f"window={_config.batch_window_start_time}-{_config.batch_window_end_time})"
        )
    return _config


def reset_config() -> None:
    """Drop the cached configuration (used by tests)."""
    global _config
    _config = None
