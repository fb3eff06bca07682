"""storyのCLIエントリーポイント"""

import json
import logging
import sys
from pathlib import Path
from typing import List

from story import __version__
from story.auth.storage import KeyringCredentialStore
from story.cli.main import HELP_TEXT, StoryCLI, build_launcher
from story.cli.parser import ArgumentParser
from story.config.manager import ConfigManager
from story.errors import StoryException


def main(args: List[str] | None = None) -> int:
    """
    storyのメインエントリーポイント

    Args:
        args: コマンドライン引数（Noneの場合はsys.argvを使用）

    Returns:
        終了コード（0: 成功、非0: エラー）
    """
    if args is None:
        args = sys.argv[1:]

    # 引数解析
    parser = ArgumentParser()
    parsed = parser.parse(args)

    # バージョン表示
    if parsed.options.get("version"):
        print(f"story {__version__}")
        return 0

    # ヘルプ表示
    if parsed.options.get("help") or (not parsed.command and not parsed.options.get("config_check")):
        print(HELP_TEXT)
        return 0

    # バリデーション
    validation = parser.validate(parsed)
    if not validation.is_valid:
        for error in validation.errors:
            print(error, file=sys.stderr)
        return 1

    logging.basicConfig(
        level=logging.DEBUG if parsed.options.get("verbose") else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # 設定読み込み
    config_path = parsed.options.get("config")
    config_manager = ConfigManager(Path(config_path) if config_path else None)
    try:
        settings = config_manager.load()
    except StoryException as exc:
        print(f"Configuration error: {exc.error.message}", file=sys.stderr)
        return 1

    if parsed.options.get("config_check"):
        print(json.dumps(settings.dump_masked(), ensure_ascii=False, indent=2))
        return 0

    store = KeyringCredentialStore(settings.keyring_service, settings.credentials_path)
    cli = StoryCLI(
        settings,
        store,
        config_manager=config_manager,
        launcher=build_launcher(parsed.options),
    )
    return cli.run(parsed.command, parsed.args, options=parsed.options)


if __name__ == "__main__":
    sys.exit(main())
