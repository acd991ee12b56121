"""
Persistence for books, chapters, translation job checkpoints and results.
"""

from .store import Store, QueryResult
from .remote_store import RemoteStore
from .database import LocalStore
from .checkpoint_manager import CheckpointManager

__all__ = ['Store', 'QueryResult', 'RemoteStore', 'LocalStore', 'CheckpointManager']
