"""Utility helpers for the EUC Range integration."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from contextlib import suppress
from typing import Any

_LOGGER = logging.getLogger(__name__)


def validate_and_clamp_option(
    value: Any,
    min_val: float,
    max_val: float,
    default: float,
    option_name: str,
) -> float:
    """Validate and clamp a numeric option value to a range.

    Args:
        value: The raw option value to validate
        min_val: Minimum allowed value
        max_val: Maximum allowed value
        default: Default value if invalid
        option_name: Name for logging

    Returns:
        Clamped value within range, or default if invalid
    """
    if isinstance(value, bool):
        value = None
    try:
        number = float(value)
    except (TypeError, ValueError):
        _LOGGER.warning(
            "Invalid %s value %s, using default %s",
            option_name,
            value,
            default,
        )
        return default
    if number != number:  # NaN
        _LOGGER.warning("Invalid %s value %s, using default %s", option_name, value, default)
        return default
    clamped = max(min_val, min(number, max_val))
    if clamped != number:
        _LOGGER.warning(
            "%s value %s out of range, clamped to %s",
            option_name,
            value,
            clamped,
        )
    return clamped


def validate_choice(value: Any, choices: Iterable[Any], default: Any, option_name: str) -> Any:
    """Return value if it is one of choices, otherwise default with a warning."""
    allowed = tuple(choices)
    if value in allowed:
        return value
    if value is not None:
        _LOGGER.warning(
            "Invalid %s value %s (expected one of %s), using default %s",
            option_name,
            value,
            ", ".join(str(item) for item in allowed),
            default,
        )
    return default


def validate_bool(value: Any, default: bool, option_name: str) -> bool:
    """Coerce common boolean spellings; anything else falls back to default."""
    if isinstance(value, bool):
        return value
    if value is None:
        return default
    if isinstance(value, str) and value.strip().lower() in ("true", "on", "yes", "1"):
        return True
    if isinstance(value, str) and value.strip().lower() in ("false", "off", "no", "0"):
        return False
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    _LOGGER.warning("Invalid %s value %s, using default %s", option_name, value, default)
    return default


async def async_cancel_task(task: asyncio.Task | None) -> None:
    """Cancel an asyncio task and wait for it to finish.

    Safely cancels the task and suppresses CancelledError.
    Does nothing if task is None.

    Args:
        task: The asyncio task to cancel, or None
    """
    if task is None:
        return
    task.cancel()
    with suppress(asyncio.CancelledError):
        await task
