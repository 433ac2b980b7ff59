"""Messenger service package.

Re-exports all public symbols::

    from nostrinbox.services.messages import Messenger, MessagesConfig
"""

from .configs import MessagesConfig
from .service import Messenger, SendResult
from .store import ConversationStore


__all__ = [
    "ConversationStore",
    "MessagesConfig",
    "Messenger",
    "SendResult",
]
