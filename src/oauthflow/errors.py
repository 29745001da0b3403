"""
エラー定義

OAuth2 認可フローで使用されるエラーコードと例外クラス
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

# エラードメイン
AUTHZ_ERROR_DOMAIN = "AGAuthzErrorDomain"
MODULE_ERROR_DOMAIN = "OAuth2Module"


class ErrorCode(Enum):
    """エラーコード

    カテゴリ別にエラーコードを定義:
    - CONFIG_xxx: 設定エラー
    - AUTHZ_xxx: 認可フローエラー
    - CONN_xxx: 認可ページの接続エラー
    - HTTP_xxx: トランスポートエラー
    - TOKEN_xxx: トークン状態エラー
    """
    # 設定エラー
    CONFIG_MISSING_VALUE = "CONFIG_001"
    CONFIG_INVALID_VALUE = "CONFIG_002"
    CONFIG_MISSING_ENDPOINT = "CONFIG_003"

    # 認可フローエラー
    AUTHZ_USER_CANCELLED = "AUTHZ_001"
    AUTHZ_DENIED = "AUTHZ_002"
    AUTHZ_INTERRUPTED = "AUTHZ_003"
    AUTHZ_SUPERSEDED = "AUTHZ_004"
    AUTHZ_STATE_MISMATCH = "AUTHZ_005"

    # 接続エラー
    CONNECTION_FAILED = "CONN_001"

    # トランスポートエラー
    TRANSPORT_ERROR = "HTTP_001"
    TRANSPORT_INVALID_RESPONSE = "HTTP_002"

    # トークン状態エラー
    TOKEN_REFRESH_UNAVAILABLE = "TOKEN_001"


@dataclass
class OAuthError:
    """OAuthエラー情報

    Attributes:
        code: エラーコード文字列
        message: エラーメッセージ
        domain: エラードメイン
        details: 追加のエラー詳細情報
        recoverable: 呼び出し側のリトライで復旧可能かどうか
    """
    code: str
    message: str
    domain: str = MODULE_ERROR_DOMAIN
    details: Optional[Dict[str, Any]] = None
    recoverable: bool = False
    log_level: int = logging.ERROR


class OAuthFlowException(Exception):
    """OAuthフロー例外クラス

    OAuthErrorをラップする例外クラス
    """

    def __init__(self, error: OAuthError):
        """OAuthFlowExceptionを初期化

        Args:
            error: OAuthErrorインスタンス
        """
        self.error = error
        self.log_level = error.log_level
        super().__init__(f"[{error.code}] {error.message}")

    @property
    def code(self) -> str:
        return self.error.code

    @property
    def domain(self) -> str:
        return self.error.domain


class ConfigurationError(OAuthFlowException):
    """必須の設定値やエンドポイントが欠けている"""


class UserCancelledError(OAuthFlowException):
    """ユーザーが認可を中断した"""


class AuthorizationDeniedError(UserCancelledError):
    """認可サーバーが error パラメータ付きでリダイレクトした"""

    @property
    def reason(self) -> Optional[str]:
        return (self.error.details or {}).get("error")


class AppInterruptedError(OAuthFlowException):
    """認可待ちの間にアプリが再開された"""


class AuthorizationSupersededError(AppInterruptedError):
    """新しい認可リクエストによって置き換えられた"""


class StateMismatchError(OAuthFlowException):
    """リダイレクトの state が認可リクエストと一致しない"""


class ConnectionFailedError(OAuthFlowException):
    """認可ページの読み込みがリトライ上限まで失敗した"""


class TransportError(OAuthFlowException):
    """トークン/リフレッシュ/失効/ユーザー情報リクエストの HTTP 層エラー"""

    @property
    def status_code(self) -> Optional[int]:
        return (self.error.details or {}).get("status_code")

    @property
    def body(self) -> Optional[str]:
        return (self.error.details or {}).get("body")


class InvalidTokenResponseError(TransportError):
    """トークンレスポンスに access_token が含まれていない"""


class RefreshTokenMissingError(OAuthFlowException):
    """リフレッシュトークンが保存されていない"""


ERROR_CODE_LOG_LEVEL: Dict[ErrorCode, int] = {
    ErrorCode.AUTHZ_USER_CANCELLED: logging.INFO,
    ErrorCode.AUTHZ_DENIED: logging.WARNING,
    ErrorCode.AUTHZ_INTERRUPTED: logging.INFO,
    ErrorCode.AUTHZ_SUPERSEDED: logging.INFO,
    ErrorCode.AUTHZ_STATE_MISMATCH: logging.ERROR,
    ErrorCode.CONNECTION_FAILED: logging.ERROR,
    ErrorCode.TRANSPORT_ERROR: logging.ERROR,
    ErrorCode.TRANSPORT_INVALID_RESPONSE: logging.ERROR,
    ErrorCode.TOKEN_REFRESH_UNAVAILABLE: logging.WARNING,
}


# よく使用されるエラーのファクトリ関数
def create_config_error(
    message: str,
    code: ErrorCode = ErrorCode.CONFIG_MISSING_VALUE,
    details: Optional[Dict[str, Any]] = None,
) -> OAuthError:
    """設定エラーを作成

    Args:
        message: エラーメッセージ
        code: エラーコード
        details: 追加詳細

    Returns:
        OAuthError: 設定エラー
    """
    return OAuthError(
        code=code.value,
        message=message,
        domain=MODULE_ERROR_DOMAIN,
        details=details,
        recoverable=False,
        log_level=logging.ERROR,
    )


def create_authz_error(
    code: ErrorCode,
    message: str,
    details: Optional[Dict[str, Any]] = None,
) -> OAuthError:
    """認可フローのエラーを作成

    ユーザー操作やアプリ状態に起因するため、呼び出し側で再試行できる。

    Args:
        code: エラーコード
        message: エラーメッセージ
        details: 追加詳細

    Returns:
        OAuthError: 認可フローエラー
    """
    return OAuthError(
        code=code.value,
        message=message,
        domain=AUTHZ_ERROR_DOMAIN,
        details=details,
        recoverable=True,
        log_level=ERROR_CODE_LOG_LEVEL.get(code, logging.ERROR),
    )


def create_connection_error(url: str, attempts: int) -> OAuthError:
    """接続エラーを作成

    Args:
        url: 読み込みに失敗した認可URL
        attempts: 読み込みを試行した回数

    Returns:
        OAuthError: 接続エラー
    """
    return OAuthError(
        code=ErrorCode.CONNECTION_FAILED.value,
        message="Couldn't connect to the authorization server",
        domain=MODULE_ERROR_DOMAIN,
        details={"url": url, "attempts": attempts},
        recoverable=True,
        log_level=ERROR_CODE_LOG_LEVEL[ErrorCode.CONNECTION_FAILED],
    )


def create_transport_error(
    message: str,
    status_code: Optional[int] = None,
    body: Optional[str] = None,
    code: ErrorCode = ErrorCode.TRANSPORT_ERROR,
) -> OAuthError:
    """トランスポートエラーを作成

    Args:
        message: エラーメッセージ
        status_code: HTTPステータスコード（接続失敗時はNone）
        body: レスポンス本文
        code: エラーコード

    Returns:
        OAuthError: トランスポートエラー
    """
    return OAuthError(
        code=code.value,
        message=message,
        domain=MODULE_ERROR_DOMAIN,
        details={"status_code": status_code, "body": body},
        recoverable=status_code is None or status_code >= 500,
        log_level=ERROR_CODE_LOG_LEVEL.get(code, logging.ERROR),
    )
