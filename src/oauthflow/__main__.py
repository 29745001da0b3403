"""oauthflow のCLIエントリーポイント"""

import logging
import sys
from typing import List

from oauthflow import __version__
from oauthflow.cli.main import OAuthCLI
from oauthflow.cli.parser import ArgumentParser
from oauthflow.config.manager import ConfigManager
from oauthflow.config.settings import OAuthSettings
from oauthflow.errors import OAuthFlowException


def main(args: List[str] | None = None) -> int:
    """
    oauthflow のメインエントリーポイント

    Args:
        args: コマンドライン引数（Noneの場合はsys.argvを使用）

    Returns:
        終了コード（0: 成功、非0: エラー）
    """
    if args is None:
        args = sys.argv[1:]

    parser = ArgumentParser()
    parsed = parser.parse(args)

    if parsed.options.get("version"):
        print(f"oauthflow {__version__}")
        return 0

    if parsed.options.get("help") or (not parsed.command and not args):
        OAuthCLI.show_help()
        return 0

    validation = parser.validate(parsed)
    if not validation.is_valid:
        for error in validation.errors:
            print(error, file=sys.stderr)
        return 1

    logging.basicConfig(
        level=logging.DEBUG if parsed.options.get("verbose") else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if parsed.command == "help":
        OAuthCLI.show_help()
        return 0
    if parsed.command == "version":
        print(f"oauthflow {__version__}")
        return 0

    try:
        config_manager = ConfigManager()
        config = config_manager.load(parsed.config_path)
    except OAuthFlowException as exc:
        print(f"Configuration error: {exc.error.message}", file=sys.stderr)
        return 1

    validation = config_manager.validate(config)
    if not validation.is_valid:
        for error in validation.errors:
            print(f"Configuration error: {error}", file=sys.stderr)
        return 1

    cli = OAuthCLI(config, settings=OAuthSettings(), output_format=parsed.output_format)
    return cli.run(parsed.command, parsed.args, options=parsed.options)


if __name__ == "__main__":
    sys.exit(main())
