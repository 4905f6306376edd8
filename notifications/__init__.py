"""
Notification records fanned out from ledger and friend-graph events.

Delivery (push, email) happens elsewhere; this package only records the
notification and tracks its read flag.
"""

from .models import Notification, NotificationKind
from .service import Notifier

__all__ = [
    "Notification",
    "NotificationKind",
    "Notifier",
]
