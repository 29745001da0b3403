"""OAuth2 認可コードフローの状態機械とトークンライフサイクル管理。

``OAuth2Module`` は外部ユーザーエージェントに認可URLを読み込ませ、リダイレクトから
認可コードを取り出してアクセストークンと交換する。アクセストークンの更新・失効、
認可ヘッダーの生成、OpenID Connect のログインもここで扱う。

1つのモジュールが同時に保持できる認可試行（``AuthorizationAttempt``）は1つだけで、
新しい試行は進行中の試行を置き換える。試行が終わる経路（成功・キャンセル・エラー・
アプリ復帰による中断・呼び出し側のキャンセル）では必ずイベント購読を解除する。
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
import logging
from typing import Any, Mapping, Optional
from urllib.parse import unquote, urlsplit
import uuid

from oauthflow.claims import OpenIDClaim
from oauthflow.config.manager import Config
from oauthflow.config.settings import OAuthSettings
from oauthflow.errors import (
    AppInterruptedError,
    AuthorizationDeniedError,
    AuthorizationSupersededError,
    ConfigurationError,
    ConnectionFailedError,
    ErrorCode,
    InvalidTokenResponseError,
    OAuthError,
    RefreshTokenMissingError,
    StateMismatchError,
    UserCancelledError,
    create_authz_error,
    create_config_error,
    create_connection_error,
    create_transport_error,
)
from oauthflow.events import AppLifecycle, Subscription
from oauthflow.query import build_query, parse_query, query_of
from oauthflow.session.storage import KeyringStore
from oauthflow.session.store import SessionStore
from oauthflow.transport import HttpTransport
from oauthflow.user_agent.base import LoadFailure, LoadFailureKind, UserAgent

logger = logging.getLogger(__name__)


class AuthorizationState(Enum):
    """認可フローの状態

    - IDLE: 試行なし
    - PENDING_EXTERNAL_APPROVAL: 外部ユーザーエージェントでの承認待ち
    - APPROVED: 認可コードを受け取った
    - UNKNOWN: キャンセル・中断・エラーで終了した
    """

    IDLE = "idle"
    PENDING_EXTERNAL_APPROVAL = "pending_external_approval"
    APPROVED = "approved"
    UNKNOWN = "unknown"


@dataclass
class AuthorizationAttempt:
    """1回分の認可の往復。解決したら破棄される。"""

    nonce: str
    url: str
    future: asyncio.Future
    retries: int = 0
    subscriptions: list[Subscription] = field(default_factory=list)
    load_timer: Optional[asyncio.TimerHandle] = None
    exchange_task: Optional[asyncio.Task] = None

    @property
    def resolved(self) -> bool:
        return self.future.done()

    def cancel_load_timer(self) -> None:
        if self.load_timer is not None:
            self.load_timer.cancel()
            self.load_timer = None

    def stop_observing(self) -> None:
        for subscription in self.subscriptions:
            subscription.cancel()
        self.subscriptions.clear()
        self.cancel_load_timer()


@dataclass(frozen=True)
class LoginResult:
    """OpenID Connect ログインの結果"""

    access_token: str
    claims: Optional[OpenIDClaim]


class OAuth2Module:
    """OAuth2 認可コードフローを駆動する。"""

    def __init__(
        self,
        config: Config,
        user_agent: UserAgent,
        *,
        session_store: Optional[SessionStore] = None,
        transport: Optional[HttpTransport] = None,
        app_events: Optional[AppLifecycle] = None,
        settings: Optional[OAuthSettings] = None,
    ) -> None:
        """OAuth2Moduleを初期化する。

        Args:
            config: クライアント登録情報。
            user_agent: 認可画面を表示するユーザーエージェント。
            session_store: トークンの保存先（既定は keyring に永続化）。
            transport: HTTP トランスポート（既定は config.base_url 向けに作成）。
            app_events: アプリのライフサイクル通知。
            settings: 実行時設定。
        """

        self.config = config
        self.settings = settings or OAuthSettings()
        self.user_agent = user_agent
        self.app_events = app_events or AppLifecycle()
        self.session = session_store or SessionStore(
            config.account_id,
            KeyringStore(self.settings.keyring_service, self.settings.token_fallback_path),
        )
        self._owns_transport = transport is None
        self.http = transport or HttpTransport(config.base_url, timeout=self.settings.http_timeout)
        self.state = AuthorizationState.IDLE
        self._attempt: Optional[AuthorizationAttempt] = None
        self._refresh_task: Optional[asyncio.Task] = None

    async def __aenter__(self) -> "OAuth2Module":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    @property
    def has_pending_attempt(self) -> bool:
        return self._attempt is not None

    # 公開API

    async def request_authorization_code(self) -> str:
        """外部ユーザーエージェントで認可を行い、アクセストークンを返す。

        進行中の試行があれば AuthorizationSupersededError で終わらせてから開始する。

        Raises:
            UserCancelledError: ユーザーが認可を中断した。
            AppInterruptedError: 承認待ちの間にアプリが再開された。
            ConnectionFailedError: 認可ページの読み込みがリトライ上限まで失敗した。
            TransportError: 認可コードの交換に失敗した。
        """
        if self._attempt is not None:
            self._supersede(self._attempt)

        loop = asyncio.get_running_loop()
        nonce = str(uuid.uuid4())
        attempt = AuthorizationAttempt(
            nonce=nonce,
            url=self.authorization_url(nonce),
            future=loop.create_future(),
        )
        self._attempt = attempt
        attempt.subscriptions = [
            self.app_events.did_become_active.connect(lambda: self._on_app_did_become_active(attempt)),
            self.app_events.launched_with_url.connect(lambda url: self._on_redirect(attempt, url)),
            self.user_agent.navigation_attempt.connect(lambda url: self._on_redirect(attempt, url)),
            self.user_agent.load_finished.connect(lambda url: self._on_load_finished(attempt, url)),
            self.user_agent.load_failed.connect(lambda failure: self._on_load_failed(attempt, failure)),
            self.user_agent.user_cancelled.connect(lambda: self._on_user_cancelled(attempt)),
        ]
        self.state = AuthorizationState.PENDING_EXTERNAL_APPROVAL
        logger.info("Authorization requested for %s", self.config.account_id)

        try:
            self._load(attempt)
            return await attempt.future
        finally:
            if self._attempt is attempt:
                # 呼び出し側のキャンセルや load() の例外で抜けた
                self._abandon(attempt)

    def extract_code(self, url: str) -> bool:
        """進行中の試行に対してリダイレクトURLを処理する。

        Returns:
            ユーザーエージェントに遷移を続けさせるなら True。
        """
        if self._attempt is None:
            return True
        return self._on_redirect(self._attempt, url)

    async def exchange_authorization_code_for_access_token(self, code: str) -> str:
        """認可コードをアクセストークンと交換し、セッションに保存する。

        失敗した場合はセッションを変更しない。
        """
        params = {
            "code": code,
            "client_id": self.config.client_id,
            "redirect_uri": self.config.redirect_url,
            "grant_type": "authorization_code",
        }
        if self.config.client_secret:
            params["client_secret"] = self.config.client_secret

        response = await self.http.post(self.config.access_token_endpoint, params)
        payload = self._token_payload(response)

        refresh_token = payload.get("refresh_token")
        self.session.save_tokens(
            payload["access_token"],
            refresh_token if isinstance(refresh_token, str) else None,
            self.session.expiration_from(_seconds(payload.get("expires_in"))),
            self.session.expiration_from(_seconds(payload.get("refresh_expires_in"))),
        )
        self.user_agent.cancel()
        return payload["access_token"]

    async def refresh_access_token(self) -> str:
        """リフレッシュトークンでアクセストークンを更新する。

        同時に呼ばれた場合は1つのリクエストを共有する。

        Raises:
            RefreshTokenMissingError: リフレッシュトークンが保存されていない。
            TransportError: リフレッシュに失敗した。
        """
        task = self._refresh_task
        if task is None:
            refresh_token = self.session.get().refresh_token
            if refresh_token is None:
                raise RefreshTokenMissingError(
                    OAuthError(
                        code=ErrorCode.TOKEN_REFRESH_UNAVAILABLE.value,
                        message="No refresh token available",
                        recoverable=True,
                        log_level=logging.WARNING,
                    )
                )
            task = asyncio.ensure_future(self._refresh(refresh_token))
            self._refresh_task = task
            task.add_done_callback(self._clear_refresh_task)
        return await asyncio.shield(task)

    async def request_access(self) -> str:
        """有効なアクセストークンを返す。

        期限内のアクセストークンがあればそのまま、期限内のリフレッシュトークンが
        あれば更新し、どちらもなければ認可コードフローを開始する。
        """
        session = self.session.get()
        now = self.session.now()
        if session.access_token is not None and session.token_is_not_expired(now):
            return session.access_token
        if session.refresh_token is not None and session.refresh_token_is_not_expired(now):
            return await self.refresh_access_token()
        return await self.request_authorization_code()

    async def login(self) -> LoginResult:
        """アクセスを取得し、UserInfo エンドポイントからクレームを取得する。

        Raises:
            ConfigurationError: user_info_endpoint が未設定（通信は行わない）。
        """
        endpoint = self.config.user_info_endpoint
        if not endpoint:
            raise ConfigurationError(
                create_config_error(
                    "No UserInfo endpoint available in config",
                    code=ErrorCode.CONFIG_MISSING_ENDPOINT,
                    details={"endpoint": "user_info_endpoint", "feature": "OpenID Connect"},
                )
            )

        access_token = await self.request_access()
        response = await self.http.get(endpoint, {"access_token": access_token})
        claims = OpenIDClaim.from_dict(response) if isinstance(response, Mapping) else None
        return LoginResult(access_token=access_token, claims=claims)

    async def revoke_access(self) -> Any:
        """アクセストークンを失効させ、成功したらセッションを空にする。

        アクセストークンがなければ通信せずに None を返す。
        """
        access_token = self.session.get().access_token
        if access_token is None:
            return None

        endpoint = self.config.revoke_token_endpoint
        if not endpoint:
            raise ConfigurationError(
                create_config_error(
                    "No revoke endpoint available in config",
                    code=ErrorCode.CONFIG_MISSING_ENDPOINT,
                    details={"endpoint": "revoke_token_endpoint"},
                )
            )

        response = await self.http.post(endpoint, {"token": access_token})
        self.session.clear_tokens()
        return response

    def clear_tokens(self) -> None:
        """セッションとユーザーエージェントのクッキーを消去する（ローカルのログアウト）"""
        if self.session.get().access_token is None:
            return
        self.session.clear_tokens()
        self.user_agent.clear_cookies()

    def authorization_fields(self) -> Optional[dict[str, str]]:
        access_token = self.session.get().access_token
        if access_token is None:
            return None
        return {"Authorization": f"Bearer {access_token}"}

    def is_authorized(self) -> bool:
        session = self.session.get()
        return session.access_token is not None and session.token_is_not_expired(self.session.now())

    def authorization_url(self, nonce: str) -> str:
        base = self.http.calculate_url(self.config.authorization_endpoint)
        query = build_query(
            {
                "scope": self.config.scope,
                "redirect_uri": self.config.redirect_url,
                "client_id": self.config.client_id,
                "response_type": "code",
                "state": nonce,
            }
        )
        separator = "&" if "?" in base else "?"
        return f"{base}{separator}{query}"

    async def close(self) -> None:
        """進行中の試行を中断し、所有するトランスポートを閉じる。"""
        attempt = self._attempt
        if attempt is not None:
            self._fail(
                attempt,
                AppInterruptedError(
                    create_authz_error(ErrorCode.AUTHZ_INTERRUPTED, "Authorization module was closed.")
                ),
            )
        if self._owns_transport:
            await self.http.aclose()

    # ユーザーエージェント/アプリのイベント

    def _on_redirect(self, attempt: AuthorizationAttempt, url: str) -> bool:
        if not self._is_pending(attempt):
            return True

        query = query_of(url)
        params = parse_query(query)

        code = params.get("code")
        if code is not None:
            if self.settings.verify_state and params.get("state") != attempt.nonce:
                self._fail(
                    attempt,
                    StateMismatchError(
                        create_authz_error(
                            ErrorCode.AUTHZ_STATE_MISMATCH,
                            "Authorization response state does not match the request.",
                        )
                    ),
                )
                return False

            self.state = AuthorizationState.APPROVED
            attempt.stop_observing()
            logger.info("Authorization code received for %s", self.config.account_id)
            attempt.exchange_task = asyncio.ensure_future(self._complete_exchange(attempt, code))
            return False

        if "error" in params and self._targets_redirect_url(url):
            self._fail(
                attempt,
                AuthorizationDeniedError(
                    create_authz_error(
                        ErrorCode.AUTHZ_DENIED,
                        params.get("error_description") or f"Authorization denied: {params['error']}",
                        details={"error": params["error"], "error_description": params.get("error_description")},
                    )
                ),
            )
            return False

        if "response_type" not in params and "response_type" not in parse_query(unquote(query)):
            self._fail(
                attempt,
                UserCancelledError(
                    create_authz_error(ErrorCode.AUTHZ_USER_CANCELLED, "User cancelled authorization.")
                ),
            )
            return True

        # 認可サーバー内の遷移
        return True

    def _on_load_finished(self, attempt: AuthorizationAttempt, url: str) -> None:
        if self._is_pending(attempt):
            attempt.cancel_load_timer()

    def _on_load_failed(self, attempt: AuthorizationAttempt, failure: LoadFailure) -> None:
        if not self._is_pending(attempt):
            return

        attempt.cancel_load_timer()
        if self._is_loopback_redirect_failure(failure):
            # リダイレクト先はアプリ側で処理するため、到達できなくてよい
            logger.debug("Ignoring load failure for loopback redirect target")
            return

        if attempt.retries >= self.settings.max_load_retries:
            logger.error(
                "Authorization page failed to load after %d retries: %s",
                attempt.retries,
                failure.reason or failure.kind.value,
            )
            self._fail(attempt, ConnectionFailedError(create_connection_error(attempt.url, attempt.retries + 1)))
            return

        attempt.retries += 1
        logger.warning(
            "Authorization page failed to load (%s), retry %d/%d",
            failure.reason or failure.kind.value,
            attempt.retries,
            self.settings.max_load_retries,
        )
        self._load(attempt)

    def _on_load_timeout(self, attempt: AuthorizationAttempt) -> None:
        attempt.load_timer = None
        self._on_load_failed(
            attempt,
            LoadFailure(
                attempt.url,
                LoadFailureKind.TIMEOUT,
                f"timed out after {self.settings.load_timeout} seconds",
            ),
        )

    def _on_app_did_become_active(self, attempt: AuthorizationAttempt) -> None:
        if self._is_pending(attempt):
            self._fail(
                attempt,
                AppInterruptedError(
                    create_authz_error(
                        ErrorCode.AUTHZ_INTERRUPTED,
                        "App became active before authorization completed.",
                    )
                ),
            )

    def _on_user_cancelled(self, attempt: AuthorizationAttempt) -> None:
        if self._is_pending(attempt):
            self._fail(
                attempt,
                UserCancelledError(
                    create_authz_error(
                        ErrorCode.AUTHZ_USER_CANCELLED,
                        "User cancelled authorization.",
                        details={"reason": "user agent closed by the user"},
                    )
                ),
            )

    # 内部処理

    def _is_pending(self, attempt: AuthorizationAttempt) -> bool:
        return (
            attempt is self._attempt
            and not attempt.resolved
            and self.state is AuthorizationState.PENDING_EXTERNAL_APPROVAL
        )

    def _load(self, attempt: AuthorizationAttempt) -> None:
        loop = asyncio.get_running_loop()
        # 同期的に load_finished が届いても解除できるよう先に設定する
        attempt.load_timer = loop.call_later(self.settings.load_timeout, self._on_load_timeout, attempt)
        self.user_agent.load(attempt.url)

    async def _complete_exchange(self, attempt: AuthorizationAttempt, code: str) -> None:
        try:
            access_token = await self.exchange_authorization_code_for_access_token(code)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self._fail(attempt, exc)
            return

        if attempt is self._attempt:
            self._attempt = None
            self.state = AuthorizationState.APPROVED
        if not attempt.resolved:
            attempt.future.set_result(access_token)
        logger.info("Authorization completed for %s", self.config.account_id)

    def _fail(self, attempt: AuthorizationAttempt, error: BaseException) -> None:
        """試行をエラーで終わらせ、購読を解除してユーザーエージェントを閉じる。"""
        attempt.stop_observing()
        if attempt.exchange_task is not None and attempt.exchange_task is not asyncio.current_task():
            attempt.exchange_task.cancel()
        if attempt is self._attempt:
            self._attempt = None
            self.state = AuthorizationState.UNKNOWN
        self.user_agent.cancel()

        if attempt.resolved:
            return
        logger.log(getattr(error, "log_level", logging.ERROR), "Authorization failed: %s", error)
        attempt.future.set_exception(error)

    def _supersede(self, attempt: AuthorizationAttempt) -> None:
        logger.info("Superseding pending authorization for %s", self.config.account_id)
        self._fail(
            attempt,
            AuthorizationSupersededError(
                create_authz_error(
                    ErrorCode.AUTHZ_SUPERSEDED,
                    "Authorization was superseded by a newer request.",
                )
            ),
        )

    def _abandon(self, attempt: AuthorizationAttempt) -> None:
        attempt.stop_observing()
        if attempt.exchange_task is not None:
            attempt.exchange_task.cancel()
        if not attempt.resolved:
            attempt.future.cancel()
        self._attempt = None
        self.state = AuthorizationState.UNKNOWN
        self.user_agent.cancel()
        logger.info("Authorization abandoned for %s", self.config.account_id)

    async def _refresh(self, refresh_token: str) -> str:
        params = {
            "refresh_token": refresh_token,
            "client_id": self.config.client_id,
            "grant_type": "refresh_token",
        }
        if self.config.client_secret:
            params["client_secret"] = self.config.client_secret

        endpoint = self.config.refresh_token_endpoint or self.config.access_token_endpoint
        response = await self.http.post(endpoint, params)
        payload = self._token_payload(response)
        self.session.save_access_token(
            payload["access_token"],
            self.session.expiration_from(_seconds(payload.get("expires_in"))),
        )
        logger.info("Refreshed access token for %s", self.config.account_id)
        return payload["access_token"]

    def _clear_refresh_task(self, task: asyncio.Task) -> None:
        if self._refresh_task is task:
            self._refresh_task = None
        if not task.cancelled():
            # 待機者がいなくなっても未回収の例外として警告させない
            task.exception()

    def _token_payload(self, response: Any) -> Mapping[str, Any]:
        if isinstance(response, Mapping):
            access_token = response.get("access_token")
            if isinstance(access_token, str) and access_token:
                return response
        raise InvalidTokenResponseError(
            create_transport_error(
                "Token response does not contain an access_token",
                body=None if response is None else str(response)[:512],
                code=ErrorCode.TRANSPORT_INVALID_RESPONSE,
            )
        )

    def _targets_redirect_url(self, url: str) -> bool:
        return url.split("?", 1)[0].split("#", 1)[0] == self.config.redirect_url.split("?", 1)[0]

    def _is_loopback_redirect_failure(self, failure: LoadFailure) -> bool:
        if failure.kind is not LoadFailureKind.CONNECT:
            return False
        redirect = urlsplit(self.config.redirect_url)
        if (redirect.hostname or "").lower() not in self.settings.loopback_hosts:
            return False
        origin = f"{redirect.scheme}://{redirect.netloc}"
        return failure.url == origin or failure.url.startswith(origin + "/")


def _seconds(value: Any) -> Optional[float]:
    """expires_in などの秒数を float に変換する。解釈できなければ None。"""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None
