"""
Event Logger Module

Records what an encryption session does and fans each event out to the
operator-facing notification sink.

Features:
- Mode selection, key derivation, key import and field encryption events
- Failure and environment advisory events with a user-facing message
- Callbacks for live consumers (UI banners, terminal output)
- JSON export of the session's event history

Events never contain key material or plaintext: only modes, lengths,
epochs and short SHA-256 fingerprints of public values.

Author: fieldcrypt Project
"""

import hashlib
import json
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, List, Dict, Any, Callable


logger = logging.getLogger(__name__)


# ============================================================================
# Constants
# ============================================================================

EVENT_VERSION = "1.0"
FINGERPRINT_CHARS = 16


# ============================================================================
# Notifications
# ============================================================================

class Severity(Enum):
    """Severity of an operator notification."""
    INFO = "info"
    WARNING = "warning"
    DANGER = "danger"


# The presentation layer supplies one of these to show alert banners.
NotificationSink = Callable[[Severity, str], None]


@dataclass(frozen=True)
class OutputField:
    """A value to display to the operator (label, value, masked flag)."""
    label: str
    value: str
    masked: bool = False

    def display_value(self, reveal: bool = False) -> str:
        """Value as it should be rendered; masked values become bullets."""
        if self.masked and not reveal:
            return "•" * len(self.value)
        return self.value


def key_fingerprint(data: bytes) -> str:
    """
    Short SHA-256 fingerprint of a public value for log correlation.

    Args:
        data: Public bytes (e.g. a raw public point)

    Returns:
        First 16 hex characters of the SHA-256 digest
    """
    return hashlib.sha256(bytes(data)).hexdigest()[:FINGERPRINT_CHARS]


# ============================================================================
# Event Types
# ============================================================================

class EventType(Enum):
    """Types of session events that can be logged."""

    # Lifecycle
    SESSION_START = "session_start"
    MODE_SELECTED = "mode_selected"
    SESSION_RESET = "session_reset"

    # Key material
    KEYS_DERIVED = "keys_derived"
    KEY_IMPORTED = "key_imported"

    # Encryption
    FIELD_ENCRYPTED = "field_encrypted"

    # Problems
    OPERATION_FAILED = "operation_failed"
    STALE_RESULT = "stale_result"
    ENVIRONMENT_ADVISORY = "environment_advisory"


# ============================================================================
# Event Structure
# ============================================================================

@dataclass
class SessionEvent:
    """Represents one session event."""
    event_type: EventType
    epoch: int
    timestamp: int  # Unix timestamp
    severity: Severity = Severity.INFO
    message: str = ""
    details: Dict[str, Any] = field(default_factory=dict)

    def to_record(self) -> str:
        """Serialize as a compact JSON record."""
        return json.dumps({
            'version': EVENT_VERSION,
            'type': self.event_type.value,
            'epoch': self.epoch,
            'time': self.timestamp,
            'iso_time': datetime.fromtimestamp(self.timestamp).isoformat(),
            'severity': self.severity.value,
            'message': self.message,
            'details': self.details,
        }, separators=(',', ':'))

    @classmethod
    def from_record(cls, record: str) -> 'SessionEvent':
        """Parse an event from its JSON record."""
        data = json.loads(record)
        return cls(
            event_type=EventType(data['type']),
            epoch=data['epoch'],
            timestamp=data['time'],
            severity=Severity(data.get('severity', Severity.INFO.value)),
            message=data.get('message', ''),
            details=data.get('details', {}),
        )

    @property
    def notifies(self) -> bool:
        """Whether the event should reach the operator as a banner."""
        return bool(self.message)

    def __str__(self) -> str:
        dt = datetime.fromtimestamp(self.timestamp)
        return (
            f"[{dt.strftime('%Y-%m-%d %H:%M:%S')}] "
            f"{self.event_type.value} | epoch:{self.epoch}"
            + (f" | {self.message}" if self.message else "")
        )


# ============================================================================
# Event Logger
# ============================================================================

class EventLogger:
    """
    In-memory event log for one operator session.

    Every event is appended to the log, mirrored to the module logger and
    passed to registered callbacks. Events that carry a message are also
    delivered to notification sinks as ``(severity, message)``.
    """

    def __init__(self, max_events: Optional[int] = None):
        """
        Initialize the event logger.

        Args:
            max_events: Keep at most this many events (oldest dropped first)
        """
        self._events: List[SessionEvent] = []
        self._max_events = max_events
        self._callbacks: List[Callable[[SessionEvent], None]] = []

    def _add_event(self, event: SessionEvent) -> SessionEvent:
        self._events.append(event)
        if self._max_events is not None and len(self._events) > self._max_events:
            del self._events[:len(self._events) - self._max_events]

        level = {
            Severity.INFO: logging.DEBUG,
            Severity.WARNING: logging.WARNING,
            Severity.DANGER: logging.ERROR,
        }[event.severity]
        logger.log(level, "%s epoch=%d %s", event.event_type.value, event.epoch,
                   event.message or event.details)

        # Notify callbacks
        for callback in list(self._callbacks):
            try:
                callback(event)
            except Exception:
                # A broken consumer must not break the session.
                logger.exception("Event callback %r failed", callback)
        return event

    def add_callback(self, callback: Callable[[SessionEvent], None]) -> None:
        """Add a callback to be notified of new events."""
        self._callbacks.append(callback)

    def remove_callback(self, callback: Callable[[SessionEvent], None]) -> None:
        """Remove a callback."""
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def add_sink(self, sink: NotificationSink) -> Callable[[SessionEvent], None]:
        """
        Deliver notifying events to a ``(severity, message)`` sink.

        Returns:
            The registered callback (pass it to ``remove_callback`` to detach)
        """
        def deliver(event: SessionEvent) -> None:
            if event.notifies:
                sink(event.severity, event.message)

        self.add_callback(deliver)
        return deliver

    def _event(self, event_type: EventType, epoch: int,
               severity: Severity = Severity.INFO, message: str = "",
               **details: Any) -> SessionEvent:
        return self._add_event(SessionEvent(
            event_type=event_type,
            epoch=epoch,
            timestamp=int(time.time()),
            severity=severity,
            message=message,
            details=details,
        ))

    # ========================================================================
    # Lifecycle Events
    # ========================================================================

    def log_session_start(self, epoch: int) -> SessionEvent:
        return self._event(EventType.SESSION_START, epoch)

    def log_mode_selected(self, epoch: int, mode: str) -> SessionEvent:
        return self._event(EventType.MODE_SELECTED, epoch, mode=mode)

    def log_reset(self, epoch: int) -> SessionEvent:
        return self._event(EventType.SESSION_RESET, epoch)

    # ========================================================================
    # Key Events
    # ========================================================================

    def log_keys_derived(self, epoch: int, server_public_key: bytes,
                         device_public_key: bytes) -> SessionEvent:
        """
        Log a completed "new key" derivation.

        Args:
            epoch: Session epoch the derivation belongs to
            server_public_key: Raw operator public point (fingerprinted)
            device_public_key: Raw device public point (fingerprinted)

        Returns:
            The logged event
        """
        return self._event(
            EventType.KEYS_DERIVED, epoch, Severity.INFO,
            "New server public key & encryption key successfully generated",
            server_key=key_fingerprint(server_public_key),
            device_key=key_fingerprint(device_public_key),
            algo="ECDH-P256/HMAC-SHA256",
        )

    def log_key_imported(self, epoch: int) -> SessionEvent:
        return self._event(
            EventType.KEY_IMPORTED, epoch, Severity.INFO,
            "Encryption key successfully loaded",
        )

    # ========================================================================
    # Encryption Events
    # ========================================================================

    def log_field_encrypted(self, epoch: int, plaintext_size: int) -> SessionEvent:
        """Log an encrypted field (size only, never content)."""
        return self._event(
            EventType.FIELD_ENCRYPTED, epoch,
            size=plaintext_size, algo="AES-128-CTR",
        )

    # ========================================================================
    # Problem Events
    # ========================================================================

    def log_failure(self, epoch: int, operation: str, kind: str,
                    user_message: str) -> SessionEvent:
        return self._event(
            EventType.OPERATION_FAILED, epoch, Severity.DANGER, user_message,
            operation=operation, kind=kind,
        )

    def log_stale_result(self, epoch: int, current_epoch: int,
                         operation: str) -> SessionEvent:
        """Log a result dropped because the session moved on (no banner)."""
        return self._event(
            EventType.STALE_RESULT, epoch,
            operation=operation, current_epoch=current_epoch,
        )

    def log_advisory(self, epoch: int, severity: Severity, message: str) -> SessionEvent:
        return self._event(EventType.ENVIRONMENT_ADVISORY, epoch, severity, message)

    # ========================================================================
    # Queries
    # ========================================================================

    def get_all_events(self) -> List[SessionEvent]:
        return list(self._events)

    def get_events_by_type(self, event_type: EventType) -> List[SessionEvent]:
        return [e for e in self._events if e.event_type == event_type]

    def get_recent_events(self, count: int = 10) -> List[SessionEvent]:
        """Get the most recent events."""
        return self._events[-count:] if count > 0 else []

    def print_audit_log(self, last_n: Optional[int] = None) -> None:
        """Print the event history to stdout."""
        events = self.get_recent_events(last_n) if last_n else self._events
        print("=" * 70)
        print(f"Session event log ({len(events)} events)")
        print("=" * 70)
        for event in events:
            print(f"  {event}")

    def export_log(self) -> str:
        """Export all events as a JSON array of records."""
        return json.dumps([json.loads(e.to_record()) for e in self._events], indent=2)

    @classmethod
    def import_log(cls, json_str: str) -> 'EventLogger':
        """Rebuild a logger from ``export_log`` output (callbacks not restored)."""
        event_logger = cls()
        for record in json.loads(json_str):
            event_logger._events.append(SessionEvent.from_record(json.dumps(record)))
        return event_logger
