"""Notification fanout: webhook and live broadcast sinks"""

from .broadcast import SubscriberRegistry
from .fanout import NotificationFanout
from .webhook import WebhookNotifier

__all__ = ["NotificationFanout", "SubscriberRegistry", "WebhookNotifier"]
