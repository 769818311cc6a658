# Integration Module
"""
Operator-facing plumbing around the cryptographic core:
- Notification severities, sinks and output fields
- Session event log with callbacks
- Advisory environment precondition checks
"""

# Lazy imports to avoid RuntimeWarning when running module directly
def __getattr__(name):
    """Lazy import to avoid circular import issues."""
    if name in ('Advisory', 'check_transport', 'check_backend', 'check_environment'):
        from . import environment
        return getattr(environment, name)
    from . import event_logger
    return getattr(event_logger, name)

__all__ = [
    'Severity',
    'NotificationSink',
    'OutputField',
    'EventType',
    'SessionEvent',
    'EventLogger',
    'key_fingerprint',
    'Advisory',
    'check_transport',
    'check_backend',
    'check_environment',
]
