"""Notifier service package.

Re-exports all public symbols::

    from nostrinbox.services.notifications import Notifier, NotificationsConfig
"""

from .aggregator import NotificationAggregator
from .baseline import BaselineState, FollowerBaseline
from .configs import NotificationsConfig, NotificationTypesConfig
from .service import Notifier


__all__ = [
    "BaselineState",
    "FollowerBaseline",
    "NotificationAggregator",
    "NotificationTypesConfig",
    "Notifier",
    "NotificationsConfig",
]
