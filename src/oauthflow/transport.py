"""認可サーバーとの HTTP 通信を行うトランスポート。"""

from __future__ import annotations

import json
import logging
from typing import Any, Mapping, Optional
from urllib.parse import urljoin, urlsplit

import httpx

from oauthflow.errors import TransportError, create_transport_error

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "Accept": "application/json",
    "User-Agent": "oauthflow",
}


def calculate_url(base_url: str, endpoint: str) -> str:
    """エンドポイントの絶対URLを返す。

    絶対URLはそのまま使い、相対パスは base_url に連結する。
    """
    if urlsplit(endpoint).scheme:
        return endpoint
    if not base_url.endswith("/"):
        base_url += "/"
    return urljoin(base_url, endpoint.lstrip("/"))


class HttpTransport:
    """フォームパラメータで GET/POST を行い、レスポンスを JSON として読み出す。"""

    def __init__(
        self,
        base_url: str,
        *,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ) -> None:
        """HttpTransportを初期化する。

        Args:
            base_url: 相対エンドポイントの基準URL。
            client: 共有する httpx クライアント。指定時はクローズしない。
            timeout: 自前でクライアントを作る場合のタイムアウト秒数。
        """

        self.base_url = base_url
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    def calculate_url(self, endpoint: str) -> str:
        return calculate_url(self.base_url, endpoint)

    async def get(self, endpoint: str, params: Optional[Mapping[str, str]] = None) -> Any:
        """GET リクエストを送り、デシリアライズ済みのレスポンスを返す。"""
        url = self.calculate_url(endpoint)
        return await self._send("GET", url, params=dict(params or {}))

    async def post(self, endpoint: str, data: Optional[Mapping[str, str]] = None) -> Any:
        """フォームエンコードの POST リクエストを送り、デシリアライズ済みのレスポンスを返す。"""
        url = self.calculate_url(endpoint)
        return await self._send("POST", url, data=dict(data or {}))

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _send(self, method: str, url: str, **kwargs: Any) -> Any:
        try:
            response = await self._client.request(method, url, headers=DEFAULT_HEADERS, **kwargs)
        except httpx.HTTPError as exc:
            logger.error(f"{method} {url} failed: {exc}")
            raise TransportError(
                create_transport_error(f"{method} {url} に失敗しました: {exc}")
            ) from exc

        if response.is_error:
            logger.error(f"{method} {url} returned {response.status_code}: {response.text}")
            raise TransportError(
                create_transport_error(
                    f"{method} {url} がステータス {response.status_code} を返しました",
                    status_code=response.status_code,
                    body=response.text,
                )
            )

        return self.deserialize(response)

    @staticmethod
    def deserialize(response: httpx.Response) -> Any:
        """JSON として読める本文は辞書/リストに、それ以外は文字列として返す。空本文は None。"""
        text = response.text
        if not text.strip():
            return None
        try:
            return json.loads(text)
        except json.JSONDecodeError:
            return text
