"""
Core services for the alert engine.

This package contains the decision pipeline (classification, preference
gating, lifecycle, escalation) and the boundaries it talks to (record store,
notifier, audit stream).
"""

from .audit import AuditEvent, AuditTrail
from .engine import AlertEngine
from .escalation import EscalationScheduler
from .lifecycle import AlertLifecycle, Transition
from .notifier import LoggingNotifier, NotificationDispatcher, Notifier, Result
from .preference_gate import PreferenceGate
from .preferences import PreferenceRepository
from .records import InMemoryRecordStore, KeyedLocks, RecordStore

__all__ = [
    "AlertEngine",
    "AlertLifecycle",
    "AuditEvent",
    "AuditTrail",
    "EscalationScheduler",
    "InMemoryRecordStore",
    "KeyedLocks",
    "LoggingNotifier",
    "NotificationDispatcher",
    "Notifier",
    "PreferenceGate",
    "PreferenceRepository",
    "RecordStore",
    "Result",
    "Transition",
]
