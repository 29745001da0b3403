"""設定管理 - クライアント登録情報と実行時設定"""

from oauthflow.config.manager import (
    ACCOUNT_ID_PREFIX,
    Config,
    ConfigManager,
    ValidationResult,
)
from oauthflow.config.settings import OAuthSettings

__all__ = [
    "ACCOUNT_ID_PREFIX",
    "Config",
    "ConfigManager",
    "ValidationResult",
    "OAuthSettings",
]
