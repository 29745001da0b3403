"""OpenID Connect の UserInfo レスポンスをクレームに変換する。"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from types import MappingProxyType
from typing import Any, Mapping

STANDARD_CLAIMS = (
    "sub",
    "name",
    "given_name",
    "family_name",
    "middle_name",
    "nickname",
    "preferred_username",
    "profile",
    "picture",
    "website",
    "email",
    "email_verified",
    "gender",
    "birthdate",
    "zoneinfo",
    "locale",
    "phone_number",
    "phone_number_verified",
    "address",
    "updated_at",
)


@dataclass(frozen=True)
class OpenIDClaim:
    """UserInfo エンドポイントが返す標準クレーム。

    標準外のクレームは ``extra`` に読み取り専用で保持する。
    """

    sub: str | None = None
    name: str | None = None
    given_name: str | None = None
    family_name: str | None = None
    middle_name: str | None = None
    nickname: str | None = None
    preferred_username: str | None = None
    profile: str | None = None
    picture: str | None = None
    website: str | None = None
    email: str | None = None
    email_verified: bool | None = None
    gender: str | None = None
    birthdate: str | None = None
    zoneinfo: str | None = None
    locale: str | None = None
    phone_number: str | None = None
    phone_number_verified: bool | None = None
    address: Mapping[str, Any] | None = None
    updated_at: int | None = None
    extra: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "extra", MappingProxyType(dict(self.extra)))
        if self.address is not None:
            object.__setattr__(self, "address", MappingProxyType(dict(self.address)))

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "OpenIDClaim":
        """UserInfo レスポンスからクレームを作成する。

        Raises:
            TypeError: payload がマッピングでない場合。
        """
        if not isinstance(payload, Mapping):
            raise TypeError(f"UserInfo response must be a mapping, got {type(payload).__name__}")

        known: dict[str, Any] = {}
        extra: dict[str, Any] = {}
        for key, value in payload.items():
            if key in STANDARD_CLAIMS:
                known[key] = _coerce(key, value)
            else:
                extra[key] = value
        return cls(**known, extra=extra)

    def to_dict(self) -> dict[str, Any]:
        """値のあるクレームのみを辞書にして返す。"""
        result: dict[str, Any] = {}
        for item in fields(self):
            if item.name == "extra":
                continue
            value = getattr(self, item.name)
            if value is not None:
                result[item.name] = dict(value) if item.name == "address" else value
        result.update(self.extra)
        return result


def _coerce(key: str, value: Any) -> Any:
    if value is None:
        return None
    if key in ("email_verified", "phone_number_verified"):
        # 文字列で返すプロバイダがある
        if isinstance(value, str):
            return value.lower() == "true"
        return bool(value)
    if key == "updated_at":
        try:
            return int(value)
        except (TypeError, ValueError):
            return None
    if key == "address":
        return value if isinstance(value, Mapping) else {"formatted": str(value)}
    return value if isinstance(value, str) else str(value)
