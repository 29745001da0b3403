"""CLI - コマンドライン インターフェース"""

from oauthflow.cli.main import OAuthCLI
from oauthflow.cli.parser import ArgumentParser, ParsedCommand, ValidationResult

__all__ = ["ArgumentParser", "OAuthCLI", "ParsedCommand", "ValidationResult"]
