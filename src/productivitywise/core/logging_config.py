import json
import logging
import os
import re
import threading
from datetime import datetime, timezone
from typing import Any

from prometheus_client import Counter, Histogram, start_http_server


_PROM_LOCK = threading.Lock()
_PROM_STARTED_PORT: int | None = None

_REDACT_KEYS = {
    "token",
    "authorization",
    "api_key",
    "secret",
    "password",
}

_METRIC_DISPATCH = Counter(
    "productivitywise_dispatch_total",
    "Dispatched commands by action and outcome",
    ["action", "outcome"],
)
_METRIC_ERRORS = Counter(
    "productivitywise_errors_total",
    "Observed component errors",
    ["component", "error_type"],
)
_METRIC_DISPATCH_DURATION = Histogram(
    "productivitywise_dispatch_duration_seconds",
    "Time until the synchronous response was ready",
    ["action"],
    buckets=(0.05, 0.1, 0.2, 0.5, 1, 2, 5),
)


def record_dispatch(*, action: str, outcome: str, duration_s: float | None = None) -> None:
    """Count one dispatched command; ``outcome`` is completed/timed_out/error."""
    safe_action = _bounded_label(action, fallback="unknown")
    _METRIC_DISPATCH.labels(
        action=safe_action, outcome=_bounded_label(outcome, fallback="unknown")
    ).inc()
    if duration_s is not None:
        _METRIC_DISPATCH_DURATION.labels(action=safe_action).observe(
            max(0.0, float(duration_s))
        )


def record_error(*, component: str, error_type: str) -> None:
    """Increment the error counter.

    Use this in any component (store, notifier, dispatcher) to surface errors
    to the productivitywise_errors_total Prometheus counter.
    """
    _METRIC_ERRORS.labels(
        component=_bounded_label(component, fallback="unknown"),
        error_type=_bounded_label(error_type, fallback="error"),
    ).inc()


# ---------------------------------------------------------------------------
# StructuredJsonFormatter
# ---------------------------------------------------------------------------

_STRUCTURED_EXTRACT_FIELDS: frozenset[str] = frozenset(
    {
        "action",
        "user_id",
        "team_id",
        "session_id",
        "outcome",
    }
)


class StructuredJsonFormatter(logging.Formatter):
    """Format log records as one JSON envelope per line.

    Every line carries ``ts``, ``level``, ``logger`` and ``message``, plus any
    of the known context fields passed through ``logger.info(..., extra={...})``
    and ``exc`` when an exception is attached. JSON payload messages are
    re-serialized with sensitive keys (``token``, ``secret``, ...) redacted.
    """

    def format(self, record: logging.LogRecord) -> str:
        try:
            msg = record.getMessage()
        except Exception as exc:
            msg = f"[coerced-log-payload:{type(exc).__name__}] {record.msg!r}"

        ts = (
            datetime.fromtimestamp(record.created, tz=timezone.utc)
            .replace(tzinfo=None)
            .isoformat(timespec="milliseconds")
            + "Z"
        )
        envelope: dict[str, Any] = {
            "ts": ts,
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": msg,
        }

        if msg and msg[0] == "{":
            try:
                payload = json.loads(msg)
            except ValueError:
                payload = None
            if isinstance(payload, dict):
                envelope["message"] = json.dumps(
                    _redact_dict(payload), ensure_ascii=False, default=str
                )

        for field in _STRUCTURED_EXTRACT_FIELDS:
            val = getattr(record, field, None)
            if val is not None:
                envelope[field] = str(val)

        if record.exc_info:
            envelope["exc"] = self.formatException(record.exc_info)

        return json.dumps(envelope, ensure_ascii=False, default=str)


def configure_logging(
    *,
    default_level: str | int = "INFO",
    log_format: str | None = None,
    prometheus_port: int | None = None,
) -> None:
    """Configure application logging with sane defaults."""

    logging.basicConfig(level=_coerce_level(os.getenv("LOG_LEVEL", default_level)))
    _configure_json_stdout(log_format or os.getenv("LOG_FORMAT", "text"))
    port = prometheus_port or _coerce_int(os.getenv("PROMETHEUS_PORT"), default=0)
    if port:
        _configure_prometheus_exporter(port)

    # Keep HTTP noise down by default (can still override via LOG_LEVEL).
    logging.getLogger("httpx").setLevel(
        _coerce_level(os.getenv("HTTPX_LOG_LEVEL", "WARNING"))
    )
    logging.getLogger("apscheduler").setLevel(
        _coerce_level(os.getenv("APSCHEDULER_LOG_LEVEL", "WARNING"))
    )
    logging.getLogger("slack_bolt").setLevel(
        _coerce_level(os.getenv("SLACK_BOLT_LOG_LEVEL", "INFO"))
    )


def _configure_prometheus_exporter(port: int) -> None:
    global _PROM_STARTED_PORT
    with _PROM_LOCK:
        if _PROM_STARTED_PORT == port:
            return
        if _PROM_STARTED_PORT is not None:
            logging.getLogger(__name__).warning(
                "Prometheus exporter already running on port %s (requested %s).",
                _PROM_STARTED_PORT,
                port,
            )
            return
        try:
            start_http_server(port)
        except OSError as exc:
            logging.getLogger(__name__).warning(
                "Prometheus exporter not started on :%s (%s).", port, exc
            )
            return
        _PROM_STARTED_PORT = port
    logging.getLogger(__name__).info("Prometheus exporter enabled on :%s", port)


def _configure_json_stdout(log_format: str) -> None:
    """Swap the root stream handler formatter for StructuredJsonFormatter.

    Idempotent; only active when the format is ``json``.
    """
    if (log_format or "").strip().lower() != "json":
        return
    formatter = StructuredJsonFormatter()
    for handler in logging.root.handlers:
        if hasattr(handler, "stream"):
            if not isinstance(handler.formatter, StructuredJsonFormatter):
                handler.setFormatter(formatter)


def _redact_dict(payload: dict[str, Any]) -> dict[str, Any]:
    return {k: "[REDACTED]" if _key_is_sensitive(k) else v for k, v in payload.items()}


def _key_is_sensitive(key: str) -> bool:
    lowered = str(key).lower()
    return any(marker in lowered for marker in _REDACT_KEYS)


def _coerce_level(value: str | int) -> int:
    if isinstance(value, int):
        return value
    name = (value or "").strip().upper()
    return getattr(logging, name, logging.INFO)


def _coerce_int(value: str | None, *, default: int) -> int:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return default


def _bounded_label(value: Any, *, fallback: str) -> str:
    raw = str(value or "").strip()
    if not raw:
        return fallback
    compact = re.sub(r"[^A-Za-z0-9_.:-]+", "_", raw)
    return compact[:80] or fallback


__all__ = [
    "StructuredJsonFormatter",
    "configure_logging",
    "record_dispatch",
    "record_error",
]
