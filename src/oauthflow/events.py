"""購読・購読解除できるイベントソース。"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Generic, List, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=Callable[..., Any])


class Subscription:
    """Signal への購読。cancel() は何度呼んでもよい。"""

    def __init__(self, signal: "Signal[Any]", callback: Callable[..., Any]) -> None:
        self._signal = signal
        self._callback = callback
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> None:
        if not self._active:
            return
        self._active = False
        self._signal._remove(self)


class Signal(Generic[T]):
    """コールバックを登録し、emit で同期的に呼び出す。

    emit は各コールバックの戻り値をリストで返す。コールバック内で
    購読解除しても、その emit の残りの呼び出しには影響しない。
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._subscriptions: List[Subscription] = []
        self._lock = threading.Lock()

    def connect(self, callback: T) -> Subscription:
        subscription = Subscription(self, callback)
        with self._lock:
            self._subscriptions.append(subscription)
        return subscription

    def emit(self, *args: Any) -> List[Any]:
        with self._lock:
            snapshot = list(self._subscriptions)
        results = []
        for subscription in snapshot:
            # 前のコールバックが解除した購読は呼ばない
            if subscription.active:
                results.append(subscription._callback(*args))
        return results

    @property
    def receiver_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def _remove(self, subscription: Subscription) -> None:
        with self._lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

    def __repr__(self) -> str:
        return f"Signal({self.name!r}, receivers={self.receiver_count})"


class AppLifecycle:
    """アプリのライフサイクル通知。

    Attributes:
        did_become_active: アプリが前面に戻った。
        launched_with_url: 外部ブラウザなどからURL付きで起動・復帰した。
    """

    def __init__(self) -> None:
        self.did_become_active: Signal[Callable[[], None]] = Signal("did_become_active")
        self.launched_with_url: Signal[Callable[[str], None]] = Signal("launched_with_url")

    def notify_did_become_active(self) -> None:
        logger.debug("app did become active")
        self.did_become_active.emit()

    def notify_launched_with_url(self, url: str) -> None:
        logger.debug("app launched with url")
        self.launched_with_url.emit(url)
