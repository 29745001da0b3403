"""Pydantic V2 ベースの実行時設定モデル"""

from pathlib import Path
from typing import Optional, Tuple

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class OAuthSettings(BaseSettings):
    """認可フローの実行時設定"""

    model_config = SettingsConfigDict(
        env_prefix="OAUTHFLOW_",
        env_file=".env",
        extra="ignore",
    )

    # 認可ページ読み込み設定
    load_timeout: float = Field(default=10.0, gt=0)
    max_load_retries: int = Field(default=3, ge=0, le=10)
    loopback_hosts: Tuple[str, ...] = ("localhost", "127.0.0.1", "::1")
    verify_state: bool = False

    # HTTP 設定
    http_timeout: float = Field(default=30.0, gt=0)

    # トークン保存設定
    keyring_service: str = Field(default="oauthflow", min_length=1)
    token_fallback_path: Optional[Path] = None

    @field_validator("loopback_hosts")
    @classmethod
    def normalize_loopback_hosts(cls, value: Tuple[str, ...]) -> Tuple[str, ...]:
        """ホスト名を小文字化し、IPv6 の角括弧を外す"""
        return tuple(host.strip("[]").lower() for host in value if host)

    def dump_masked(self) -> dict:
        """表示用の設定を返却する（ホームディレクトリを ~ に置き換える）"""
        data = self.model_dump()
        path = data.get("token_fallback_path")
        if path is not None:
            try:
                data["token_fallback_path"] = "~/" + str(Path(path).relative_to(Path.home()))
            except ValueError:
                data["token_fallback_path"] = str(path)
        data["loopback_hosts"] = list(data["loopback_hosts"])
        return data
