"""システムブラウザとループバックのコールバックサーバーによるユーザーエージェント。"""

from __future__ import annotations

import asyncio
from http.server import BaseHTTPRequestHandler, HTTPServer
import logging
import threading
from typing import Any, Callable, Optional
from urllib.parse import urlsplit, urlunsplit
import webbrowser

from oauthflow.user_agent.base import LoadFailure, LoadFailureKind, UserAgent

logger = logging.getLogger(__name__)

_RESULT_PAGE = """
<html>
<head><meta charset="utf-8"><title>oauthflow</title></head>
<body style="font-family: sans-serif; text-align: center; padding-top: 50px;">
    <h2>{message}</h2>
    <script>setTimeout(function() {{ window.close(); }}, 2000);</script>
</body>
</html>
"""


class _CallbackServer(HTTPServer):
    def __init__(
        self,
        server_address: tuple[str, int],
        callback_path: str,
        redirect_base: str,
        on_redirect: Callable[[str], bool],
    ) -> None:
        super().__init__(server_address, _CallbackHandler)
        self.callback_path = callback_path
        self.redirect_base = redirect_base
        self.on_redirect = on_redirect


class _CallbackHandler(BaseHTTPRequestHandler):
    def do_GET(self) -> None:  # noqa: N802
        server = self.server
        if not isinstance(server, _CallbackServer):
            self.send_error(500, "Server configuration error")
            return

        parsed = urlsplit(self.path)
        if parsed.path != server.callback_path:
            self.send_error(404, "Not Found")
            return

        redirect_url = server.redirect_base + self.path
        handled = server.on_redirect(redirect_url)
        if handled:
            self._send_page("認証が完了しました。このウィンドウを閉じてください。")
        else:
            self._send_page("認証を完了できませんでした。アプリに戻ってください。")

    def _send_page(self, message: str) -> None:
        self.send_response(200)
        self.send_header("Content-type", "text/html; charset=utf-8")
        self.end_headers()
        self.wfile.write(_RESULT_PAGE.format(message=message).encode("utf-8"))

    def log_message(self, format: str, *args: Any) -> None:  # noqa: A002
        return


class BrowserUserAgent(UserAgent):
    """認可URLをシステムブラウザで開き、リダイレクトをローカルサーバーで受け取る。

    リダイレクトURIは http のループバックアドレスである必要がある
    （例: ``http://127.0.0.1:8765/callback``）。コールバックはサーバースレッドで
    受け取り、イベントループ上で navigation_attempt を発行する。
    """

    def __init__(self, redirect_url: str, open_browser: Callable[[str], bool] = webbrowser.open) -> None:
        """BrowserUserAgentを初期化する。

        Args:
            redirect_url: 認可サーバーに登録したリダイレクトURI。
            open_browser: URLを開く関数（既定は webbrowser.open）。
        """

        super().__init__()
        parsed = urlsplit(redirect_url)
        if parsed.scheme != "http" or not parsed.hostname:
            raise ValueError(f"ループバックの http リダイレクトURIが必要です: {redirect_url}")

        self._host = parsed.hostname
        self._port = parsed.port or 80
        self._callback_path = parsed.path or "/"
        self._redirect_base = urlunsplit((parsed.scheme, parsed.netloc, "", "", ""))
        self._open_browser = open_browser
        self._server: Optional[_CallbackServer] = None
        self._thread: Optional[threading.Thread] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._state_lock = threading.Lock()

    @property
    def is_serving(self) -> bool:
        return self._server is not None

    def load(self, url: str) -> None:
        self._loop = asyncio.get_running_loop()
        try:
            self._start_server()
        except OSError as exc:
            logger.error(f"Callback server could not listen on {self._host}:{self._port}: {exc}")
            self._loop.call_soon(
                self.load_failed.emit,
                LoadFailure(url, LoadFailureKind.OTHER, f"コールバックサーバーを起動できません: {exc}"),
            )
            return

        if self._open_browser(url):
            self._loop.call_soon(self.load_finished.emit, url)
        else:
            self._loop.call_soon(
                self.load_failed.emit,
                LoadFailure(url, LoadFailureKind.OTHER, "ブラウザを起動できませんでした"),
            )

    def cancel(self) -> None:
        with self._state_lock:
            server, thread = self._server, self._thread
            self._server = None
            self._thread = None
        if server is None:
            return
        # コールバック処理中はサーバースレッドがループの応答を待っているため、
        # shutdown() は別スレッドで行い呼び出し元をブロックしない
        threading.Thread(target=self._stop_server, args=(server, thread), daemon=True).start()

    @staticmethod
    def _stop_server(server: _CallbackServer, thread: Optional[threading.Thread]) -> None:
        server.shutdown()
        server.server_close()
        if thread is not None:
            thread.join(timeout=1)
        logger.debug("Callback server stopped")

    def clear_cookies(self) -> None:
        # システムブラウザのクッキーはこのプロセスから操作できない
        logger.debug("system browser cookies are not managed by this user agent")

    def _start_server(self) -> None:
        with self._state_lock:
            if self._server is not None:
                return
            server = _CallbackServer(
                (self._host, self._port),
                self._callback_path,
                self._redirect_base,
                self._deliver_redirect,
            )
            thread = threading.Thread(target=server.serve_forever, daemon=True)
            self._server, self._thread = server, thread
        thread.start()

    def _deliver_redirect(self, url: str) -> bool:
        """サーバースレッドから呼ばれる。ループ上で遷移を判定し、結果を待つ。"""
        loop = self._loop
        if loop is None or loop.is_closed():
            return False

        async def _dispatch() -> bool:
            return self.should_navigate(url)

        future = asyncio.run_coroutine_threadsafe(_dispatch(), loop)
        try:
            allowed = future.result(timeout=5)
        except Exception as exc:  # noqa: BLE001 - ブラウザへの応答は継続する
            logger.error(f"Redirect dispatch failed: {exc}")
            return False
        # 遷移を止めた = コントローラーが終端リダイレクトとして処理した
        return not allowed
