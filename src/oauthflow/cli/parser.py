"""
コマンドライン引数の解析

コマンド解析とバリデーション機能を提供
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional


# 有効なコマンド一覧
VALID_COMMANDS = {"login", "status", "header", "revoke", "logout", "help", "version"}
VALID_FORMATS = ("text", "json")


@dataclass
class ParsedCommand:
    """解析済みコマンド

    Attributes:
        command: コマンド名
        args: コマンド引数
        options: オプション辞書
        config_path: 設定ファイルのパス
        output_format: 出力形式（text または json）
    """

    command: str
    args: List[str]
    options: Dict[str, Any]
    config_path: Optional[Path]
    output_format: str


@dataclass
class ValidationResult:
    """バリデーション結果

    Attributes:
        is_valid: 有効かどうか
        errors: エラーメッセージのリスト
    """

    is_valid: bool
    errors: List[str]


class ArgumentParser:
    """コマンドライン引数の解析"""

    def parse(self, argv: List[str]) -> ParsedCommand:
        """引数を解析してParsedCommandを返す

        Args:
            argv: コマンドライン引数リスト

        Returns:
            ParsedCommand: 解析結果
        """
        options: Dict[str, Any] = {}
        args: List[str] = []
        command: str = ""
        config_path: Optional[Path] = None
        output_format: str = "text"

        i = 0
        while i < len(argv):
            arg = argv[i]

            if arg in ("-h", "--help"):
                options["help"] = True
                i += 1
                continue

            if arg in ("-v", "--version"):
                options["version"] = True
                i += 1
                continue

            if arg in ("--verbose", "--debug"):
                options["verbose"] = True
                i += 1
                continue

            if arg == "--config":
                if i + 1 < len(argv) and not argv[i + 1].startswith("-"):
                    config_path = Path(argv[i + 1]).expanduser()
                    i += 2
                    continue
                options["missing_value"] = "--config"
                i += 1
                continue

            if arg == "--format":
                if i + 1 < len(argv):
                    options["format"] = argv[i + 1].lower()
                    if options["format"] in VALID_FORMATS:
                        output_format = options["format"]
                    i += 2
                    continue
                options["missing_value"] = "--format"
                i += 1
                continue

            # コマンドまたは引数
            if not command and not arg.startswith("-"):
                command = arg
            elif not arg.startswith("-"):
                args.append(arg)
            else:
                options.setdefault("unknown", []).append(arg)

            i += 1

        return ParsedCommand(
            command=command,
            args=args,
            options=options,
            config_path=config_path,
            output_format=output_format,
        )

    def validate(self, parsed: ParsedCommand) -> ValidationResult:
        """解析結果の妥当性を検証

        Args:
            parsed: 解析済みコマンド

        Returns:
            ValidationResult: バリデーション結果
        """
        errors: List[str] = []

        # ヘルプ・バージョンオプションは常に有効
        if parsed.options.get("help") or parsed.options.get("version"):
            return ValidationResult(is_valid=True, errors=[])

        if parsed.options.get("missing_value"):
            errors.append(f"Option {parsed.options['missing_value']} requires a value.")

        fmt = parsed.options.get("format")
        if fmt is not None and fmt not in VALID_FORMATS:
            errors.append(f"Unknown format: '{fmt}'. Available formats: {', '.join(VALID_FORMATS)}")

        for unknown in parsed.options.get("unknown", []):
            errors.append(f"Unknown option: '{unknown}'")

        if not parsed.command:
            errors.append("Command is required. Use --help for usage information.")
        elif parsed.command not in VALID_COMMANDS:
            errors.append(
                f"Unknown command: '{parsed.command}'. "
                f"Available commands: {', '.join(sorted(VALID_COMMANDS))}"
            )

        return ValidationResult(is_valid=len(errors) == 0, errors=errors)
