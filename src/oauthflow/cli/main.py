"""
OAuthCLIメインモジュール

コマンドハンドラーと OAuth2Module の統合
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
import json
import sys
from typing import Any, Callable, Dict, List, Optional

from oauthflow import __version__
from oauthflow.cli.parser import VALID_COMMANDS
from oauthflow.config.manager import Config
from oauthflow.config.settings import OAuthSettings
from oauthflow.errors import OAuthFlowException
from oauthflow.flow import OAuth2Module
from oauthflow.user_agent.base import LoadFailure, LoadFailureKind, UserAgent
from oauthflow.user_agent.loopback import BrowserUserAgent

ModuleFactory = Callable[[bool], OAuth2Module]


class _OfflineUserAgent(UserAgent):
    """認可画面を開かないコマンド用のユーザーエージェント"""

    def load(self, url: str) -> None:
        asyncio.get_running_loop().call_soon(
            self.load_failed.emit,
            LoadFailure(url, LoadFailureKind.OTHER, "interactive authorization is not available"),
        )

    def cancel(self) -> None:
        return None


class OAuthCLI:
    """oauthflow コマンドのエントリーポイント"""

    def __init__(
        self,
        config: Config,
        settings: Optional[OAuthSettings] = None,
        output_format: str = "text",
        module_factory: Optional[ModuleFactory] = None,
    ):
        """初期化

        Args:
            config: クライアント登録情報
            settings: 実行時設定
            output_format: 出力形式（text または json）
            module_factory: OAuth2Module の生成関数（引数は対話的な認可が必要かどうか）
        """
        self.config = config
        self.settings = settings or OAuthSettings()
        self.output_format = output_format
        self.module_factory = module_factory or self._default_module

    def run(self, command: str, args: List[str], options: Dict[str, Any] | None = None) -> int:
        """コマンドを実行し、Exit Codeを返す

        Args:
            command: コマンド名
            args: コマンド引数
            options: 解析済みオプション辞書

        Returns:
            int: 終了コード（0: 成功、非0: エラー）
        """
        if command == "help":
            self.show_help()
            return 0

        if command == "version":
            print(f"oauthflow {__version__}")
            return 0

        if command not in VALID_COMMANDS:
            print(
                f"Unknown command: '{command}'. "
                f"Available commands: {', '.join(sorted(VALID_COMMANDS))}",
                file=sys.stderr
            )
            return 1

        handlers = {
            "login": self._run_login,
            "status": self._run_status,
            "header": self._run_header,
            "revoke": self._run_revoke,
            "logout": self._run_logout,
        }
        try:
            return asyncio.run(handlers[command]())
        except OAuthFlowException as exc:
            print(f"Authorization error: {exc}", file=sys.stderr)
            return 1
        except ValueError as exc:
            print(f"Configuration error: {exc}", file=sys.stderr)
            return 1
        except KeyboardInterrupt:
            print("Cancelled.", file=sys.stderr)
            return 130

    async def _run_login(self) -> int:
        async with self.module_factory(True) as module:
            if self.config.user_info_endpoint:
                result = await module.login()
                claims = result.claims.to_dict() if result.claims else None
            else:
                await module.request_access()
                claims = None
            self._emit({"authorized": module.is_authorized(), "claims": claims}, "Login succeeded.")
        return 0

    async def _run_status(self) -> int:
        async with self.module_factory(False) as module:
            session = module.session.get()
            status = {
                "account_id": self.config.account_id,
                "authorized": module.is_authorized(),
                "has_refresh_token": session.refresh_token is not None,
                "access_token_expiration": _format_timestamp(session.access_token_expiration),
                "refresh_token_expiration": _format_timestamp(session.refresh_token_expiration),
            }
        self._emit(status, "\n".join(f"{key}: {value}" for key, value in status.items()))
        return 0 if status["authorized"] else 2

    async def _run_header(self) -> int:
        async with self.module_factory(False) as module:
            fields = module.authorization_fields()
        if fields is None:
            print("No access token stored. Run 'oauthflow login' first.", file=sys.stderr)
            return 2
        self._emit(fields, "\n".join(f"{name}: {value}" for name, value in fields.items()))
        return 0

    async def _run_revoke(self) -> int:
        async with self.module_factory(False) as module:
            if module.session.get().access_token is None:
                print("No access token stored.", file=sys.stderr)
                return 2
            await module.revoke_access()
        self._emit({"revoked": True}, "Access revoked.")
        return 0

    async def _run_logout(self) -> int:
        async with self.module_factory(False) as module:
            module.clear_tokens()
        self._emit({"logged_out": True}, "Tokens cleared.")
        return 0

    def _default_module(self, interactive: bool) -> OAuth2Module:
        user_agent: UserAgent
        if interactive:
            user_agent = BrowserUserAgent(self.config.redirect_url)
        else:
            user_agent = _OfflineUserAgent()
        return OAuth2Module(self.config, user_agent, settings=self.settings)

    def _emit(self, payload: Dict[str, Any], text: str) -> None:
        if self.output_format == "json":
            print(json.dumps(payload, ensure_ascii=False, indent=2))
        else:
            print(text)

    @staticmethod
    def show_help() -> None:
        """ヘルプメッセージを表示"""
        print(
            f"""oauthflow v{__version__} - OAuth2 / OpenID Connect authorization code flow client

Usage:
    oauthflow <command> [options]

Commands:
    login     ブラウザで認可を行いトークンを保存する（UserInfo があればクレームも表示）
    status    保存済みトークンの状態を表示
    header    Authorization ヘッダーを表示
    revoke    アクセストークンを失効させる
    logout    保存済みトークンを消去する
    help      このヘルプメッセージを表示
    version   バージョン情報を表示

Options:
    --config <path>    設定ファイル（YAML）のパス
    --format <format>  出力形式（text, json）
    --verbose          デバッグログを表示
"""
        )


def _format_timestamp(value: Optional[float]) -> Optional[str]:
    if value is None:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc).isoformat()
