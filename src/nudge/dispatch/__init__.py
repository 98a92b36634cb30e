"""Notification delivery.

Public API:
- Dispatcher: Contract the scheduler depends on
- WebhookDispatcher: Posts to configured webhook URLs (JSON or Teams cards)
- LogDispatcher: Logs instead of delivering
"""

from nudge.dispatch.base import Dispatcher
from nudge.dispatch.log import LogDispatcher
from nudge.dispatch.webhook import WebhookDestination, WebhookDispatcher

__all__ = [
    "Dispatcher",
    "LogDispatcher",
    "WebhookDestination",
    "WebhookDispatcher",
]
