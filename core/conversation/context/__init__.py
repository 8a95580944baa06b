"""Session storage components"""

from .storage import ConversationStore, StoreConfig

__all__ = [
    'ConversationStore',
    'StoreConfig',
]
