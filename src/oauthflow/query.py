"""クエリ文字列の解析と組み立て。"""

from __future__ import annotations

from typing import Mapping
from urllib.parse import quote, unquote, urlsplit


def parse_query(query: str | None) -> dict[str, str]:
    """クエリ文字列を辞書に変換する。

    ``&`` で区切り、最初の ``=`` で名前と値に分ける。名前と値はそれぞれ
    パーセントデコードする（``+`` は空白に変換しない）。``=`` を含まない
    断片と、名前または値が空の断片は読み飛ばす。同じ名前が複数ある場合は後勝ち。

    Args:
        query: ``?`` を含まないクエリ文字列。None は空として扱う。

    Returns:
        名前から値への辞書。
    """
    parameters: dict[str, str] = {}
    if not query:
        return parameters

    for pair in query.split("&"):
        name, separator, value = pair.partition("=")
        if not separator or not name or not value:
            continue
        parameters[unquote(name)] = unquote(value)
    return parameters


def query_of(url: str | None) -> str:
    """URLからクエリ部分を取り出す（フラグメントは含めない）"""
    if not url:
        return ""
    return urlsplit(url).query


def build_query(params: Mapping[str, str], *, safe: Mapping[str, str] | None = None) -> str:
    """辞書をクエリ文字列に変換する。

    Args:
        params: 名前と値。挿入順に並べる。
        safe: 名前ごとにエンコードしない文字。既定は空（全て予約文字をエンコード）。
    """
    safe = safe or {}
    return "&".join(
        f"{quote(name, safe='')}={quote(value, safe=safe.get(name, ''))}"
        for name, value in params.items()
    )
