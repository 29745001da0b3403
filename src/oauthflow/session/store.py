"""アカウントごとのトークン状態（セッション）を管理する。"""

from __future__ import annotations

from dataclasses import asdict, dataclass, replace
import json
import logging
import threading
import time
from typing import Callable
import warnings

from oauthflow.session.storage import KeyValueStore

logger = logging.getLogger(__name__)

_ACCOUNT_LOCKS: dict[str, threading.Lock] = {}
_ACCOUNT_LOCKS_GUARD = threading.Lock()


def _account_lock(account_id: str) -> threading.Lock:
    """アカウントIDごとの書き込みロックを返す（プロセス内で共有）"""
    with _ACCOUNT_LOCKS_GUARD:
        lock = _ACCOUNT_LOCKS.get(account_id)
        if lock is None:
            lock = threading.Lock()
            _ACCOUNT_LOCKS[account_id] = lock
        return lock


@dataclass
class Session:
    """アクセストークン・リフレッシュトークンとその有効期限。

    有効期限はエポック秒。None は期限不明（期限切れとして扱わない）を表す。
    """

    access_token: str | None = None
    refresh_token: str | None = None
    access_token_expiration: float | None = None
    refresh_token_expiration: float | None = None

    def token_is_not_expired(self, now: float) -> bool:
        if self.access_token_expiration is None:
            return True
        return now < self.access_token_expiration

    def refresh_token_is_not_expired(self, now: float) -> bool:
        if self.refresh_token_expiration is None:
            return True
        return now < self.refresh_token_expiration

    @property
    def is_empty(self) -> bool:
        return self.access_token is None and self.refresh_token is None

    def to_json(self) -> str:
        return json.dumps(asdict(self), ensure_ascii=False)

    @classmethod
    def from_json(cls, raw: str) -> "Session":
        """保存済みJSONから復元する。不正な値は ValueError。"""
        payload = json.loads(raw)
        if not isinstance(payload, dict):
            raise ValueError("session payload must be a JSON object")

        def _text(key: str) -> str | None:
            value = payload.get(key)
            return value if isinstance(value, str) else None

        def _number(key: str) -> float | None:
            value = payload.get(key)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                return None
            return float(value)

        return cls(
            access_token=_text("access_token"),
            refresh_token=_text("refresh_token"),
            access_token_expiration=_number("access_token_expiration"),
            refresh_token_expiration=_number("refresh_token_expiration"),
        )


class SessionStore:
    """1アカウント分のセッションを保持し、バックエンドへ永続化する。

    書き込みはアカウントIDごとのロックで直列化されるため、同じアカウントを
    共有する複数のストアやスレッドから呼ばれても更新が失われない。
    """

    def __init__(
        self,
        account_id: str,
        backend: KeyValueStore,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """SessionStoreを初期化する。

        Args:
            account_id: セッションの保存キー。
            backend: 永続化先のキー・バリューストア。
            clock: 現在時刻（エポック秒）を返す関数。
        """

        self._account_id = account_id
        self._backend = backend
        self._clock = clock
        self._lock = _account_lock(account_id)

    @property
    def account_id(self) -> str:
        return self._account_id

    def now(self) -> float:
        return self._clock()

    def get(self) -> Session:
        """現在のセッションのコピーを返す。未保存なら空のセッション。"""
        return self._load()

    def save_tokens(
        self,
        access_token: str | None,
        refresh_token: str | None,
        access_token_expiration: float | None = None,
        refresh_token_expiration: float | None = None,
    ) -> Session:
        """4つのフィールドをまとめて上書きし、永続化する。"""
        session = Session(
            access_token=access_token,
            refresh_token=refresh_token,
            access_token_expiration=access_token_expiration,
            refresh_token_expiration=refresh_token_expiration,
        )
        with self._lock:
            self._persist(session)
        logger.info("Saved tokens for %s", self._account_id)
        return replace(session)

    def save_access_token(
        self,
        access_token: str,
        access_token_expiration: float | None = None,
    ) -> Session:
        """アクセストークンのみ更新する。リフレッシュトークンとその期限は保持する。"""
        with self._lock:
            session = replace(
                self._load(),
                access_token=access_token,
                access_token_expiration=access_token_expiration,
            )
            self._persist(session)
        logger.info("Updated access token for %s", self._account_id)
        return replace(session)

    def clear_tokens(self) -> None:
        """全フィールドを空にして永続化する。セッション自体は削除しない。"""
        with self._lock:
            self._persist(Session())
        logger.info("Cleared tokens for %s", self._account_id)

    def token_is_not_expired(self) -> bool:
        return self._load().token_is_not_expired(self.now())

    def refresh_token_is_not_expired(self) -> bool:
        return self._load().refresh_token_is_not_expired(self.now())

    def expiration_from(self, expires_in: float | None) -> float | None:
        """expires_in（秒）を絶対時刻に変換する"""
        if expires_in is None:
            return None
        return self.now() + expires_in

    def _load(self) -> Session:
        raw = self._backend.get(self._account_id)
        if not raw:
            return Session()
        try:
            return Session.from_json(raw)
        except ValueError:
            warnings.warn(
                f"保存済みセッションの形式が不正です。空として扱います: {self._account_id}",
                RuntimeWarning,
                stacklevel=3,
            )
            return Session()

    def _persist(self, session: Session) -> None:
        self._backend.put(self._account_id, session.to_json())
