"""外部ユーザーエージェントの公開API。"""

from __future__ import annotations

from oauthflow.user_agent.base import LoadFailure, LoadFailureKind, UserAgent
from oauthflow.user_agent.loopback import BrowserUserAgent

__all__ = [
    "BrowserUserAgent",
    "LoadFailure",
    "LoadFailureKind",
    "UserAgent",
]
