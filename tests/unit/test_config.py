"""
ConfigManagerのユニットテスト
"""

import os
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from oauthflow.config.manager import ACCOUNT_ID_PREFIX, Config, ConfigManager, ValidationResult
from oauthflow.errors import ConfigurationError, ErrorCode

REQUIRED = dict(
    client_id="client-123",
    base_url="https://idp.example.com",
    authorization_endpoint="/authorize",
    access_token_endpoint="/token",
    redirect_url="http://localhost:8100/callback",
)


class TestConfig(unittest.TestCase):
    """Configデータクラスのテスト"""

    def test_default_values(self):
        """デフォルト値が正しく設定されることを確認"""
        config = Config(**REQUIRED)

        self.assertEqual(config.scope, "")
        self.assertIsNone(config.client_secret)
        self.assertIsNone(config.refresh_token_endpoint)
        self.assertIsNone(config.revoke_token_endpoint)
        self.assertIsNone(config.user_info_endpoint)

    def test_account_id_is_derived_from_client_id(self):
        config = Config(**REQUIRED)
        self.assertEqual(config.account_id, "ACCOUNT_FOR_CLIENTID_client-123")
        self.assertTrue(config.account_id.startswith(ACCOUNT_ID_PREFIX))

    def test_explicit_account_id(self):
        config = Config(account_id="shared", **REQUIRED)
        self.assertEqual(config.account_id, "shared")

    def test_from_scopes(self):
        config = Config.from_scopes(["openid", "email"], **REQUIRED)
        self.assertEqual(config.scope, "openid email")

    def test_secret_is_not_in_repr(self):
        config = Config(client_secret="s3cret", **REQUIRED)
        self.assertNotIn("s3cret", repr(config))


class TestValidationResult(unittest.TestCase):
    """ValidationResultデータクラスのテスト"""

    def test_default_errors(self):
        result = ValidationResult(is_valid=True)
        self.assertTrue(result.is_valid)
        self.assertEqual(result.errors, [])


class TestConfigManagerLoad(unittest.TestCase):
    """ConfigManager.loadのテスト"""

    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.config_path = Path(self.temp_dir.name) / "oauthflow.yaml"
        env_patcher = patch.dict(os.environ, {}, clear=True)
        env_patcher.start()
        self.addCleanup(env_patcher.stop)
        self.addCleanup(self.temp_dir.cleanup)

    def write(self, text):
        self.config_path.write_text(text, encoding="utf-8")

    def test_load_from_file(self):
        """YAMLファイルから読み込めることを確認"""
        self.write(
            "client_id: client-123\n"
            "base_url: https://idp.example.com\n"
            "authorization_endpoint: /authorize\n"
            "access_token_endpoint: /token\n"
            "redirect_url: http://localhost:8100/callback\n"
            "user_info_endpoint: /userinfo\n"
        )

        config = ConfigManager().load(self.config_path)

        self.assertEqual(config.client_id, "client-123")
        self.assertEqual(config.user_info_endpoint, "/userinfo")
        self.assertEqual(config.account_id, "ACCOUNT_FOR_CLIENTID_client-123")

    def test_file_aliases_and_scope_list(self):
        """別名キーとスコープのリストを正規化する"""
        self.write(
            "client_id: abc\n"
            "base_url: https://idp.example.com\n"
            "authz_endpoint: /authorize\n"
            "token_endpoint: /token\n"
            "redirect_uri: http://localhost:8100/callback\n"
            "userinfo_endpoint: /me\n"
            "scopes:\n  - openid\n  - profile\n"
            "unrelated: ignored\n"
        )

        config = ConfigManager().load(self.config_path)

        self.assertEqual(config.authorization_endpoint, "/authorize")
        self.assertEqual(config.access_token_endpoint, "/token")
        self.assertEqual(config.redirect_url, "http://localhost:8100/callback")
        self.assertEqual(config.user_info_endpoint, "/me")
        self.assertEqual(config.scope, "openid profile")

    def test_env_overrides_file(self):
        """環境変数がファイルの値を上書きする"""
        self.write("\n".join(f"{key}: {value}" for key, value in REQUIRED.items()))
        os.environ["OAUTHFLOW_CLIENT_ID"] = "from-env"
        os.environ["OAUTHFLOW_CLIENT_SECRET"] = "secret"

        config = ConfigManager().load(self.config_path)

        self.assertEqual(config.client_id, "from-env")
        self.assertEqual(config.client_secret, "secret")

    def test_load_from_env_only(self):
        for key, value in REQUIRED.items():
            os.environ[ConfigManager.ENV_MAPPING[key]] = value

        config = ConfigManager().load(Path(self.temp_dir.name) / "missing.yaml")

        self.assertEqual(config.base_url, "https://idp.example.com")

    def test_missing_required_values(self):
        """必須項目が欠けていれば ConfigurationError"""
        self.write("client_id: abc\n")

        with self.assertRaises(ConfigurationError) as ctx:
            ConfigManager().load(self.config_path)

        self.assertEqual(ctx.exception.code, ErrorCode.CONFIG_MISSING_VALUE.value)
        self.assertIn("base_url", ctx.exception.error.details["missing"])
        self.assertNotIn("client_id", ctx.exception.error.details["missing"])

    def test_invalid_yaml(self):
        self.write("client_id: [unclosed\n")

        with self.assertRaises(ConfigurationError) as ctx:
            ConfigManager().load(self.config_path)
        self.assertEqual(ctx.exception.code, ErrorCode.CONFIG_INVALID_VALUE.value)

    def test_non_mapping_yaml(self):
        self.write("- just\n- a list\n")

        with self.assertRaises(ConfigurationError) as ctx:
            ConfigManager().load(self.config_path)
        self.assertEqual(ctx.exception.code, ErrorCode.CONFIG_INVALID_VALUE.value)

    def test_cached_until_force_reload(self):
        self.write("\n".join(f"{key}: {value}" for key, value in REQUIRED.items()))
        manager = ConfigManager()
        first = manager.load(self.config_path)

        os.environ["OAUTHFLOW_SCOPE"] = "openid"
        self.assertIs(manager.load(self.config_path), first)
        self.assertEqual(manager.load(self.config_path, force_reload=True).scope, "openid")


class TestConfigManagerValidate(unittest.TestCase):
    """ConfigManager.validateのテスト"""

    def test_valid_config(self):
        result = ConfigManager().validate(Config(**REQUIRED))
        self.assertTrue(result.is_valid)
        self.assertEqual(result.errors, [])

    def test_relative_base_url(self):
        values = dict(REQUIRED, base_url="idp.example.com")
        result = ConfigManager().validate(Config(**values))
        self.assertFalse(result.is_valid)
        self.assertTrue(any(error.startswith("base_url") for error in result.errors))

    def test_blank_values(self):
        values = dict(REQUIRED, client_id=" ", access_token_endpoint="")
        result = ConfigManager().validate(Config(revoke_token_endpoint="", **values))
        self.assertFalse(result.is_valid)
        self.assertEqual(len(result.errors), 3)


if __name__ == "__main__":
    unittest.main()
