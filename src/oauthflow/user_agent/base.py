"""外部ユーザーエージェント（認可画面を表示するブラウザ面）の抽象。

コントローラーはこのインターフェースだけを通して認可画面を操作するため、
描画を持たないフェイクでフロー全体をテストできる。
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from oauthflow.events import Signal


class LoadFailureKind(Enum):
    """読み込み失敗の種別"""

    CONNECT = "connect"
    TIMEOUT = "timeout"
    OTHER = "other"


@dataclass(frozen=True)
class LoadFailure:
    """ユーザーエージェントが報告するページ読み込み失敗。

    Attributes:
        url: 読み込みに失敗したURL
        kind: 失敗の種別
        reason: 人間向けの説明
    """

    url: str
    kind: LoadFailureKind = LoadFailureKind.OTHER
    reason: Optional[str] = None


class UserAgent(ABC):
    """認可URLを読み込み、ナビゲーションを報告する面。

    Signals:
        navigation_attempt(url) -> bool: 遷移しようとしている。False を返した購読者があれば遷移を止める。
        load_finished(url): ページの読み込みが完了した。
        load_failed(LoadFailure): ページの読み込みに失敗した。
        user_cancelled(): ユーザーが面を閉じた。
    """

    def __init__(self) -> None:
        self.navigation_attempt: Signal[Callable[[str], bool]] = Signal("navigation_attempt")
        self.load_finished: Signal[Callable[[str], None]] = Signal("load_finished")
        self.load_failed: Signal[Callable[[LoadFailure], None]] = Signal("load_failed")
        self.user_cancelled: Signal[Callable[[], None]] = Signal("user_cancelled")

    @abstractmethod
    def load(self, url: str) -> None:
        """URLの読み込みを開始する。結果はシグナルで通知する。"""

    @abstractmethod
    def cancel(self) -> None:
        """面を閉じる。何度呼んでもよく、シグナルは発行しない。"""

    def clear_cookies(self) -> None:
        """面が保持するクッキーを削除する。"""

    def should_navigate(self, url: str) -> bool:
        """navigation_attempt を発行し、遷移を許可するかを返す。"""
        return all(result is not False for result in self.navigation_attempt.emit(url))
