"""OAuth2 / OpenID Connect 認可コードフローのクライアント"""

from oauthflow.claims import OpenIDClaim
from oauthflow.config import Config, ConfigManager, OAuthSettings
from oauthflow.errors import (
    AppInterruptedError,
    AuthorizationDeniedError,
    AuthorizationSupersededError,
    ConfigurationError,
    ConnectionFailedError,
    InvalidTokenResponseError,
    OAuthFlowException,
    RefreshTokenMissingError,
    StateMismatchError,
    TransportError,
    UserCancelledError,
)
from oauthflow.events import AppLifecycle, Signal, Subscription
from oauthflow.flow import AuthorizationState, LoginResult, OAuth2Module
from oauthflow.query import parse_query
from oauthflow.session import KeyringStore, MemoryStore, Session, SessionStore
from oauthflow.transport import HttpTransport
from oauthflow.user_agent import BrowserUserAgent, LoadFailure, LoadFailureKind, UserAgent

__version__ = "0.3.0"

__all__ = [
    "AppInterruptedError",
    "AppLifecycle",
    "AuthorizationDeniedError",
    "AuthorizationState",
    "AuthorizationSupersededError",
    "BrowserUserAgent",
    "Config",
    "ConfigManager",
    "ConfigurationError",
    "ConnectionFailedError",
    "HttpTransport",
    "InvalidTokenResponseError",
    "KeyringStore",
    "LoadFailure",
    "LoadFailureKind",
    "LoginResult",
    "MemoryStore",
    "OAuth2Module",
    "OAuthFlowException",
    "OAuthSettings",
    "OpenIDClaim",
    "RefreshTokenMissingError",
    "Session",
    "SessionStore",
    "Signal",
    "StateMismatchError",
    "Subscription",
    "TransportError",
    "UserAgent",
    "UserCancelledError",
    "parse_query",
    "__version__",
]
