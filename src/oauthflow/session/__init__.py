"""セッション（トークン状態）の保持と永続化"""

from oauthflow.session.storage import KeyringStore, KeyValueStore, MemoryStore
from oauthflow.session.store import Session, SessionStore

__all__ = [
    "KeyringStore",
    "KeyValueStore",
    "MemoryStore",
    "Session",
    "SessionStore",
]
