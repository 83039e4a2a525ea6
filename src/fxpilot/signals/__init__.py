"""
Signal publishing.

Non-PASS decisions are published for an external consumer, keyed by the
caller identity, last write wins.
"""

from __future__ import annotations

from fxpilot.signals.base import PublishResult, Signal, SignalPublisher
from fxpilot.signals.identity import IdentityBootstrap, IdentityProvider, StaticIdentity
from fxpilot.signals.memory import MemorySignalStore
from fxpilot.signals.webhook import WebhookSignalPublisher, signal_document_path

__all__ = [
    "IdentityBootstrap",
    "IdentityProvider",
    "MemorySignalStore",
    "PublishResult",
    "Signal",
    "SignalPublisher",
    "StaticIdentity",
    "WebhookSignalPublisher",
    "signal_document_path",
]
