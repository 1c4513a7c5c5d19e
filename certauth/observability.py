"""
CERTAUTH Observability Framework

Structured logging, correlation ids and a tamper-evident audit trail for the
hosting layer. The registry core does not log; the host and the CLI do.

Architecture:
    ┌─────────────────────────────────────────────────────────┐
    │                  Host / CLI / Snapshot                   │
    │  logger.info("msg", authority_id=x)   audit.log(...)     │
    └───────────────────────┬─────────────────────────────────┘
                            │
    ┌───────────────────────▼─────────────────────────────────┐
    │              RegistryLogger / AuditLogger                │
    │  Correlation ids, component tags, hash-chained events    │
    └───────────────────────┬─────────────────────────────────┘
                            │
    ┌───────────────────────▼─────────────────────────────────┐
    │                    logging handlers                      │
    │       StructuredHandler (json) │ StreamHandler (text)    │
    └─────────────────────────────────────────────────────────┘

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import contextvars
import json
import logging
import sys
import threading
import time
import traceback
import uuid
import weakref
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from functools import wraps
from typing import Any, Callable, Dict, List, Optional, Tuple, TypeVar

from certauth.config import get_config
from certauth.core import canonical_json_bytes, sha256_bytes

correlation_id_var: contextvars.ContextVar[str] = contextvars.ContextVar(
    "correlation_id", default=""
)


class LogLevel(Enum):
    """Log severity levels."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class Component(Enum):
    """Components that emit logs."""
    HOST = "host"
    SNAPSHOT = "snapshot"
    CONFIG = "config"
    CLI = "cli"


@dataclass
class LogEvent:
    """Structured log event."""
    timestamp: str
    level: str
    logger: str
    message: str
    correlation_id: str = ""
    component: str = ""
    operation: str = ""
    duration_ms: Optional[float] = None
    error_code: str = ""
    context: Dict[str, Any] = field(default_factory=dict)
    exception: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary, excluding empty values."""
        d = asdict(self)
        return {k: v for k, v in d.items() if v is not None and v != "" and v != {}}

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)


class StructuredHandler(logging.Handler):
    """Logging handler that outputs one JSON object per line."""

    def __init__(self, stream: Any = None):
        super().__init__()
        self.stream = stream

    def emit(self, record: logging.LogRecord) -> None:
        try:
            event = LogEvent(
                timestamp=datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
                level=record.levelname.lower(),
                logger=record.name,
                message=record.getMessage(),
                correlation_id=correlation_id_var.get(),
                component=getattr(record, "component", ""),
                operation=getattr(record, "operation", ""),
                duration_ms=getattr(record, "duration_ms", None),
                error_code=getattr(record, "error_code", ""),
                context=getattr(record, "context", {}),
            )

            if record.exc_info:
                event.exception = "".join(traceback.format_exception(*record.exc_info))

            stream = self.stream or sys.stderr
            stream.write(event.to_json() + "\n")
            stream.flush()
        except Exception:
            self.handleError(record)


_TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

# Every live RegistryLogger, so configure_logging can reach module-level ones
_loggers: "weakref.WeakSet[RegistryLogger]" = weakref.WeakSet()


class RegistryLogger:
    """
    Structured logger for registry components.

    Every record carries the component tag and the current correlation id.
    """

    def __init__(
        self,
        name: str,
        component: Component,
        level: Optional[LogLevel] = None,
        log_format: Optional[str] = None,
        stream: Any = None,
    ):
        self.name = name
        self.component = component
        self._level = level
        self._format = log_format
        self._stream = stream
        self._logger = logging.getLogger(f"certauth.{component.value}.{name}")
        self.apply_config()
        _loggers.add(self)

    def apply_config(self) -> None:
        """Set level and handler from configuration, unless fixed at construction."""
        obs = get_config().observability
        level = self._level or LogLevel(obs.log_level.get())
        log_format = self._format or obs.log_format.get()

        self._logger.setLevel(getattr(logging, level.value.upper()))
        for handler in list(self._logger.handlers):
            self._logger.removeHandler(handler)
        if log_format == "text":
            handler = logging.StreamHandler(self._stream or sys.stderr)
            handler.setFormatter(logging.Formatter(_TEXT_FORMAT))
        else:
            handler = StructuredHandler(self._stream)
        self._logger.addHandler(handler)

    def _log(
        self,
        level: int,
        message: str,
        operation: str = "",
        error_code: str = "",
        duration_ms: Optional[float] = None,
        exc_info: bool = False,
        **context: Any,
    ) -> None:
        extra = {
            "component": self.component.value,
            "operation": operation,
            "error_code": error_code,
            "duration_ms": duration_ms,
            "context": context,
        }
        self._logger.log(level, message, extra=extra, exc_info=exc_info)

    def debug(self, message: str, **context: Any) -> None:
        self._log(logging.DEBUG, message, **context)

    def info(self, message: str, **context: Any) -> None:
        self._log(logging.INFO, message, **context)

    def warning(self, message: str, **context: Any) -> None:
        self._log(logging.WARNING, message, **context)

    def error(
        self,
        message: str,
        error_code: str = "",
        exc_info: bool = False,
        **context: Any,
    ) -> None:
        self._log(logging.ERROR, message, error_code=error_code, exc_info=exc_info, **context)

    def operation(
        self,
        name: str,
        duration_ms: float,
        success: bool = True,
        **context: Any,
    ) -> None:
        """Log an operation completion."""
        level = logging.INFO if success else logging.WARNING
        status = "completed" if success else "failed"
        self._log(
            level,
            f"Operation {name} {status}",
            operation=name,
            duration_ms=round(duration_ms, 3),
            **context,
        )


def generate_correlation_id() -> str:
    """Generate a new correlation ID."""
    return f"corr-{uuid.uuid4().hex[:12]}"


def set_correlation_id(correlation_id: str) -> contextvars.Token:
    """Set the correlation ID for the current context."""
    return correlation_id_var.set(correlation_id)


def reset_correlation_id(token: contextvars.Token) -> None:
    correlation_id_var.reset(token)


def get_correlation_id() -> str:
    """Get the current correlation ID, creating one if unset."""
    cid = correlation_id_var.get()
    if not cid:
        cid = generate_correlation_id()
        correlation_id_var.set(cid)
    return cid


def get_logger(name: str, component: Component) -> RegistryLogger:
    """Get a logger for a registry component."""
    return RegistryLogger(name, component)


def configure_logging() -> None:
    """Re-apply observability config to every logger built so far."""
    for logger in list(_loggers):
        logger.apply_config()


T = TypeVar("T")


def timed_operation(
    logger: RegistryLogger,
    operation_name: str,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Decorator for timing and logging operations."""
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            start = time.monotonic()
            success = True
            try:
                return func(*args, **kwargs)
            except Exception:
                success = False
                raise
            finally:
                duration_ms = (time.monotonic() - start) * 1000
                logger.operation(operation_name, duration_ms, success)
        return wrapper
    return decorator


# =============================================================================
# AUDIT TRAIL
# =============================================================================

class AuditOutcome(Enum):
    """Outcome of an audited transaction."""
    SUCCESS = "success"
    DENIED = "denied"
    FAILURE = "failure"


@dataclass
class AuditEvent:
    """An audit log entry, chained to its predecessor by digest."""
    event_id: str
    timestamp: str
    actor: str
    action: str
    resource_id: str
    outcome: AuditOutcome
    height: int
    correlation_id: str = ""
    details: Dict[str, Any] = field(default_factory=dict)
    previous_event_digest: Optional[str] = None
    event_digest: str = ""

    def __post_init__(self):
        if not self.event_digest:
            self.event_digest = self.compute_digest()

    def compute_digest(self) -> str:
        """Compute tamper-evident digest."""
        content = {
            "event_id": self.event_id,
            "timestamp": self.timestamp,
            "actor": self.actor,
            "action": self.action,
            "resource_id": self.resource_id,
            "outcome": self.outcome.value,
            "height": self.height,
            "correlation_id": self.correlation_id,
            "details": self.details,
            "previous_event_digest": self.previous_event_digest,
        }
        return sha256_bytes(canonical_json_bytes(content))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_id": self.event_id,
            "timestamp": self.timestamp,
            "actor": self.actor,
            "action": self.action,
            "resource_id": self.resource_id,
            "outcome": self.outcome.value,
            "height": self.height,
            "correlation_id": self.correlation_id,
            "details": self.details,
            "previous_event_digest": self.previous_event_digest,
            "event_digest": self.event_digest,
        }


class AuditLogger:
    """
    Tamper-evident audit logger.

    Each event includes a hash chain link to the previous event,
    making it possible to detect log tampering.
    """

    def __init__(self, logger: Optional[RegistryLogger] = None):
        self._events: List[AuditEvent] = []
        self._lock = threading.Lock()
        self._logger = logger

    def log(
        self,
        actor: str,
        action: str,
        resource_id: str,
        outcome: AuditOutcome,
        height: int,
        **details: Any,
    ) -> AuditEvent:
        """Append an audit event."""
        with self._lock:
            previous_digest = self._events[-1].event_digest if self._events else None

            event = AuditEvent(
                event_id=f"evt-{len(self._events) + 1:012d}",
                timestamp=datetime.now(timezone.utc).isoformat(),
                actor=actor,
                action=action,
                resource_id=resource_id,
                outcome=outcome,
                height=height,
                correlation_id=correlation_id_var.get(),
                details=details,
                previous_event_digest=previous_digest,
            )
            self._events.append(event)

        if self._logger:
            self._logger.info(
                f"AUDIT: {action} on {resource_id or '-'} -> {outcome.value}",
                operation="audit",
                event_id=event.event_id,
                actor=actor,
                event_digest=event.event_digest,
            )
        return event

    def verify_chain(self) -> Tuple[bool, Optional[int]]:
        """
        Verify the audit log chain integrity.

        Returns (valid, first_invalid_index).
        """
        with self._lock:
            for i, event in enumerate(self._events):
                if event.compute_digest() != event.event_digest:
                    return (False, i)
                if i > 0 and event.previous_event_digest != self._events[i - 1].event_digest:
                    return (False, i)
            return (True, None)

    def get_events(
        self,
        actor: Optional[str] = None,
        outcome: Optional[AuditOutcome] = None,
        resource_id: Optional[str] = None,
        limit: int = 100,
    ) -> List[AuditEvent]:
        """Query audit events."""
        with self._lock:
            events = list(self._events)

        if actor:
            events = [e for e in events if e.actor == actor]
        if outcome:
            events = [e for e in events if e.outcome == outcome]
        if resource_id:
            events = [e for e in events if e.resource_id == resource_id]

        return events[-limit:]

    def export(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [e.to_dict() for e in self._events]

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)
