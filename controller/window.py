"""Disruption window evaluation.

A window opens at every firing of a pod's cron schedule (UTC) and stays open
for the configured duration. Misconfiguration fails open: a schedule that
cannot be parsed never blocks disruption.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta, timezone

from croniter import CroniterError, croniter  # type: ignore[import-untyped]

from .metrics import (
    DURATION_PARSE_FAILURE,
    SCHEDULE_PARSE_FAILURE,
    MetricsSink,
    NullSink,
    record_parse_failure,
)

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_DURATION = timedelta(hours=3)
# largest value an int64 nanosecond count can hold, about 2562047h (292 years)
MAX_DURATION = timedelta(microseconds=(2**63 - 1) // 1000)

CRON_DESCRIPTORS = frozenset(
    {"@yearly", "@annually", "@monthly", "@weekly", "@daily", "@midnight", "@hourly"}
)

_UNIT_SECONDS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,  # U+00B5 micro sign
    "μs": 1e-6,  # U+03BC greek mu
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_NUMBER = r"(?:\d+\.?\d*|\.\d+)"
_UNIT = r"(?:ns|us|µs|μs|ms|s|m|h)"
_DURATION_RE = re.compile(rf"^([-+]?)((?:{_NUMBER}{_UNIT})+)$")
_COMPONENT_RE = re.compile(rf"({_NUMBER})({_UNIT})")


def parse_duration(text: str) -> timedelta:
    """Parse a Go-style duration string such as ``4h``, ``1h30m`` or ``2.5h``."""
    value = text.strip()
    if value in ("0", "+0", "-0"):
        return timedelta(0)
    match = _DURATION_RE.match(value)
    if not match:
        raise ValueError(f"invalid duration {text!r}")
    sign, body = match.groups()
    seconds = sum(float(number) * _UNIT_SECONDS[unit] for number, unit in _COMPONENT_RE.findall(body))
    if seconds > MAX_DURATION.total_seconds():
        raise ValueError(f"duration {text!r} is out of range")
    if sign == "-":
        seconds = -seconds
    return timedelta(seconds=seconds)


def parse_schedule(expr: str) -> str:
    """Validate a standard five-field cron expression and return it normalized."""
    value = " ".join(expr.split())
    if value.startswith("@"):
        if value.lower() not in CRON_DESCRIPTORS:
            raise ValueError(f"unrecognized descriptor {expr!r}")
        return value.lower()
    fields = value.split(" ")
    if len(fields) != 5:
        raise ValueError(f"expected exactly 5 fields, found {len(fields)}: {expr!r}")
    if not croniter.is_valid(value):
        raise ValueError(f"invalid cron expression {expr!r}")
    return value


def resolve_duration(duration: str, name: str, metrics: MetricsSink) -> timedelta:
    if not duration:
        return DEFAULT_WINDOW_DURATION
    try:
        parsed = parse_duration(duration)
        if parsed < DEFAULT_WINDOW_DURATION:
            raise ValueError(f"duration {duration!r} is shorter than {DEFAULT_WINDOW_DURATION}")
    except (ValueError, OverflowError) as e:
        logger.error("Invalid or too short disruption window duration for %s, using default of 3 hours: %s", name, e)
        record_parse_failure(metrics, DURATION_PARSE_FAILURE, name)
        return DEFAULT_WINDOW_DURATION
    return parsed


def is_window_active(
    schedule: str,
    duration: str,
    now: datetime | None = None,
    *,
    name: str = "",
    metrics: MetricsSink | None = None,
) -> bool:
    """Return True when ``now`` falls inside the window opened by the latest schedule firing."""
    metrics = metrics if metrics is not None else NullSink()
    if not schedule:
        return True

    try:
        expr = parse_schedule(schedule)
    except ValueError as e:
        logger.error("Failed to parse disruption window schedule for pod %s: %s", name, e)
        record_parse_failure(metrics, SCHEDULE_PARSE_FAILURE, name)
        return True

    window = resolve_duration(duration, name, metrics)

    now = _as_utc(now if now is not None else datetime.now(timezone.utc))
    checkpoint = now - window
    try:
        next_fire = croniter(expr, checkpoint).get_next(datetime)
    except CroniterError as e:
        # e.g. "0 0 30 2 *" never fires
        logger.error("Disruption window schedule for pod %s never fires: %s", name, e)
        record_parse_failure(metrics, SCHEDULE_PARSE_FAILURE, name)
        return True
    return _as_utc(next_fire) <= now


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
