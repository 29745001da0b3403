"""
設定管理

OAuth2 クライアント登録情報の読み込みと管理を行う
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

import yaml

from oauthflow.errors import ConfigurationError, ErrorCode, create_config_error

ACCOUNT_ID_PREFIX = "ACCOUNT_FOR_CLIENTID_"

# 必須の設定キー
REQUIRED_KEYS = (
    "client_id",
    "base_url",
    "authorization_endpoint",
    "access_token_endpoint",
    "redirect_url",
)


@dataclass(frozen=True)
class Config:
    """OAuth2 クライアント登録情報

    Attributes:
        client_id: クライアントID
        base_url: 認可サーバーのベースURL
        authorization_endpoint: 認可エンドポイント（base_url からの相対パスまたは絶対URL）
        access_token_endpoint: トークンエンドポイント
        redirect_url: リダイレクトURI
        scope: 要求するスコープ（空白区切り）
        client_secret: クライアントシークレット
        refresh_token_endpoint: リフレッシュエンドポイント（未設定時はトークンエンドポイント）
        revoke_token_endpoint: トークン失効エンドポイント
        user_info_endpoint: OpenID Connect の UserInfo エンドポイント
        account_id: セッションの保存キー（未設定時は client_id から導出）
    """
    client_id: str
    base_url: str
    authorization_endpoint: str
    access_token_endpoint: str
    redirect_url: str
    scope: str = ""
    client_secret: Optional[str] = field(default=None, repr=False)
    refresh_token_endpoint: Optional[str] = None
    revoke_token_endpoint: Optional[str] = None
    user_info_endpoint: Optional[str] = None
    account_id: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.account_id:
            object.__setattr__(self, "account_id", f"{ACCOUNT_ID_PREFIX}{self.client_id}")

    @classmethod
    def from_scopes(cls, scopes: List[str], **kwargs: Any) -> "Config":
        """スコープのリストから Config を作成する"""
        return cls(scope=" ".join(scopes), **kwargs)


@dataclass
class ValidationResult:
    """バリデーション結果

    Attributes:
        is_valid: バリデーションが成功したかどうか
        errors: エラーメッセージのリスト
    """
    is_valid: bool
    errors: List[str] = field(default_factory=list)


class ConfigManager:
    """クライアント登録情報の読み込みと管理

    環境変数と設定ファイルから設定を読み込み、管理する。
    環境変数は設定ファイルの値を上書きする。
    """

    ENV_PREFIX = "OAUTHFLOW_"
    ENV_MAPPING = {
        "client_id": "OAUTHFLOW_CLIENT_ID",
        "client_secret": "OAUTHFLOW_CLIENT_SECRET",
        "base_url": "OAUTHFLOW_BASE_URL",
        "authorization_endpoint": "OAUTHFLOW_AUTHORIZATION_ENDPOINT",
        "access_token_endpoint": "OAUTHFLOW_ACCESS_TOKEN_ENDPOINT",
        "refresh_token_endpoint": "OAUTHFLOW_REFRESH_TOKEN_ENDPOINT",
        "revoke_token_endpoint": "OAUTHFLOW_REVOKE_TOKEN_ENDPOINT",
        "user_info_endpoint": "OAUTHFLOW_USER_INFO_ENDPOINT",
        "redirect_url": "OAUTHFLOW_REDIRECT_URL",
        "scope": "OAUTHFLOW_SCOPE",
        "account_id": "OAUTHFLOW_ACCOUNT_ID",
    }

    # 設定ファイル内の別名
    FILE_ALIASES = {
        "authz_endpoint": "authorization_endpoint",
        "token_endpoint": "access_token_endpoint",
        "userinfo_endpoint": "user_info_endpoint",
        "redirect_uri": "redirect_url",
    }

    def __init__(self):
        """ConfigManagerを初期化"""
        self._config: Optional[Config] = None

    def load(
        self,
        config_path: Optional[Path] = None,
        force_reload: bool = False
    ) -> Config:
        """設定を読み込む

        Args:
            config_path: 設定ファイルのパス（省略時はデフォルトパスを検索）
            force_reload: キャッシュを無視して再読み込みするかどうか

        Returns:
            Config: 読み込んだ設定

        Raises:
            ConfigurationError: 必須項目が設定されていない、またはファイルが不正な場合
        """
        if self._config is not None and not force_reload:
            return self._config

        # 設定値を収集（優先順位: 環境変数 > ファイル）
        config_dict: Dict[str, Any] = {}
        config_dict.update(self._load_from_file(config_path))
        config_dict.update(self._load_from_env())

        missing = [key for key in REQUIRED_KEYS if not config_dict.get(key)]
        if missing:
            raise ConfigurationError(
                create_config_error(
                    "必須の設定項目が不足しています: " + ", ".join(missing),
                    details={"missing": missing},
                )
            )

        self._config = Config(**config_dict)
        return self._config

    def _load_from_file(self, config_path: Optional[Path] = None) -> Dict[str, Any]:
        """設定ファイルから読み込み

        Args:
            config_path: 設定ファイルのパス

        Returns:
            Dict[str, Any]: 読み込んだ設定値
        """
        if config_path is None:
            for path in self._get_default_config_paths():
                if path.exists():
                    config_path = path
                    break

        if config_path is None or not config_path.exists():
            return {}

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as exc:
            raise ConfigurationError(
                create_config_error(
                    f"設定ファイルの形式が不正です: {config_path}",
                    code=ErrorCode.CONFIG_INVALID_VALUE,
                    details={"path": str(config_path)},
                )
            ) from exc

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigurationError(
                create_config_error(
                    f"設定ファイルのトップレベルはマッピングである必要があります: {config_path}",
                    code=ErrorCode.CONFIG_INVALID_VALUE,
                )
            )
        return self._normalize_config(data)

    def _load_from_env(self) -> Dict[str, Any]:
        config: Dict[str, Any] = {}
        for key, env_var in self.ENV_MAPPING.items():
            value = os.environ.get(env_var)
            if value is not None:
                config[key] = value
        return config

    def _get_default_config_paths(self) -> List[Path]:
        home = Path.home()
        return [
            Path.cwd() / "oauthflow.yaml",
            Path.cwd() / "oauthflow.yml",
            home / ".oauthflow.yaml",
            home / ".oauthflow.yml",
            home / ".config" / "oauthflow" / "config.yaml",
            home / ".config" / "oauthflow" / "config.yml",
        ]

    def _normalize_config(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """設定値を正規化

        別名を正式なキーへ寄せ、scope がリストなら空白区切りに連結する。
        """
        result: Dict[str, Any] = {}
        for raw_key, value in data.items():
            key = self.FILE_ALIASES.get(raw_key, raw_key)
            if key == "scopes":
                key = "scope"
            if key not in self.ENV_MAPPING or value is None:
                continue
            if key == "scope" and isinstance(value, (list, tuple)):
                value = " ".join(str(item) for item in value)
            result[key] = str(value)
        return result

    def validate(self, config: Config) -> ValidationResult:
        """設定の妥当性を検証

        Args:
            config: 検証する設定

        Returns:
            ValidationResult: バリデーション結果
        """
        errors: List[str] = []

        if not config.client_id.strip():
            errors.append("client_id: クライアントIDが空です")

        for name in ("base_url", "redirect_url"):
            value = getattr(config, name)
            parsed = urlparse(value)
            if not parsed.scheme or not parsed.netloc:
                errors.append(f"{name}: 絶対URLを指定してください（現在: '{value}'）")

        for name in ("authorization_endpoint", "access_token_endpoint"):
            if not getattr(config, name).strip():
                errors.append(f"{name}: エンドポイントが空です")

        for name in ("refresh_token_endpoint", "revoke_token_endpoint", "user_info_endpoint"):
            value = getattr(config, name)
            if value is not None and not value.strip():
                errors.append(f"{name}: 空文字ではなく未設定にしてください")

        return ValidationResult(is_valid=len(errors) == 0, errors=errors)
