"""
storyCLIメインモジュール

コマンドハンドラーの統合
"""

from __future__ import annotations

import asyncio
import getpass
import json
import logging
import sys
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from story import __version__
from story.api.client import TistoryClient
from story.auth.browser import BrowserLauncher, NullBrowserLauncher, WebBrowserLauncher
from story.auth.flow import AuthorizationFlow
from story.auth.models import ClientIdentity, Credentials, FlowType
from story.auth.storage import CredentialStore
from story.cli.parser import VALID_COMMANDS
from story.config.manager import ConfigManager
from story.config.settings import StorySettings
from story.errors import (
    ConfigException,
    ErrorCode,
    PostException,
    StoryException,
    create_config_error,
    create_post_error,
)
from story.render.markdown import PostRenderer

logger = logging.getLogger(__name__)

HELP_TEXT = f"""story v{__version__} - ブログホスティングサービス向けCLIクライアント

Usage:
    story <command> [args] [options]

Commands:
    init                           クライアント情報を登録し、認可を行う
    auth                           登録済みのクライアント情報で再認可する
    info                           ブログ情報を表示
    show <post_id>                 投稿を表示
    post <title> <file|dir>        Markdownを変換して投稿
    edit <post_id>                 既存の投稿を更新（--title / --content）
    logout                         保存済みの資格情報を削除
    help                           このヘルプメッセージを表示
    version                        バージョン情報を表示

Options:
    -h, --help             ヘルプメッセージを表示
    -v, --version          バージョン情報を表示
    --config-check         設定内容を検証して表示
    --config <path>        設定ファイルを指定
    --blog <name>          ブログ名（{{blog}}.tistory.com の {{blog}}）
    --title <title>        edit 時に変更するタイトル
    --content <path>       edit 時に差し替える本文（Markdownファイルまたはディレクトリ）
    --client-id <id>       init 時のクライアントID
    --secret <secret>      init 時のクライアントシークレット（code フロー）
    --port <port>          リダイレクトURIのポート（既定: 18769）
    --path <path>          リダイレクトURIのパス（既定: oauth_result）
    --flow <code|implicit> 認可フロー
    -n, --dry-run          変換のみ行い、投稿しない
    --no-browser           ブラウザを起動せず、URLを表示するだけにする
    --verbose              詳細ログを出力

Examples:
    story init --secret <secret>
    story post --blog myblog "Hello" ./hello.md
    story edit --blog myblog --content ./hello.md 42
"""


class StoryCLI:
    """storyのコマンド実行"""

    def __init__(
        self,
        settings: StorySettings,
        store: CredentialStore,
        config_manager: Optional[ConfigManager] = None,
        launcher: Optional[BrowserLauncher] = None,
        client_factory: Optional[Callable[[str], TistoryClient]] = None,
        input_func: Callable[[str], str] = input,
        secret_func: Callable[[str], str] = getpass.getpass,
    ):
        """初期化

        Args:
            settings: 設定
            store: 資格情報の保存先
            config_manager: init 時に設定を書き出す ConfigManager
            launcher: ブラウザ起動機能
            client_factory: アクセストークンから APIクライアントを作る関数
            input_func: 対話入力関数
            secret_func: シークレット入力関数
        """
        self.settings = settings
        self.store = store
        self.config_manager = config_manager or ConfigManager()
        self.launcher = launcher
        self.client_factory = client_factory or self._default_client
        self.input_func = input_func
        self.secret_func = secret_func

    def run(self, command: str, args: List[str], options: Dict[str, Any] | None = None) -> int:
        """コマンドを実行し、Exit Codeを返す

        Args:
            command: コマンド名
            args: コマンド引数
            options: 解析済みオプション辞書

        Returns:
            int: 終了コード（0: 成功、非0: エラー）
        """
        if options is None:
            options = {}

        if command == "help":
            self.show_help()
            return 0

        if command == "version":
            self.show_version()
            return 0

        if command not in VALID_COMMANDS:
            print(
                f"Unknown command: '{command}'. "
                f"Available commands: {', '.join(sorted(VALID_COMMANDS))}",
                file=sys.stderr,
            )
            return 1

        handlers: Dict[str, Callable[[List[str], Dict[str, Any]], int]] = {
            "init": self._run_init_command,
            "auth": self._run_auth_command,
            "info": self._run_info_command,
            "show": self._run_show_command,
            "post": self._run_post_command,
            "edit": self._run_edit_command,
            "logout": self._run_logout_command,
        }

        try:
            return handlers[command](args, options)
        except StoryException as exc:
            logger.log(exc.log_level, "%s failed: %s", command, exc)
            print(f"Error: {exc.error.message}", file=sys.stderr)
            if exc.error.recoverable:
                print("Run the command again to retry.", file=sys.stderr)
            return 1

    def _run_init_command(self, args: List[str], options: Dict[str, Any]) -> int:
        """initコマンドの実行

        リダイレクト設定を保存し、クライアント情報を入力させて認可を行う。
        """
        overrides: Dict[str, Any] = {}
        if options.get("port") is not None:
            overrides["redirect_port"] = int(options["port"])
        if options.get("path") is not None:
            overrides["redirect_path"] = options["path"]
        if options.get("flow") is not None:
            overrides["flow"] = options["flow"]
        if options.get("blog") is not None:
            overrides["default_blog"] = options["blog"]
        if overrides:
            self.settings = self._apply_overrides(overrides)

        flow = FlowType(self.settings.flow)
        client_id = options.get("client_id") or self._prompt(self.input_func, "Client ID: ")
        secret = options.get("secret")
        if flow is FlowType.CODE and not secret:
            secret = self._prompt(self.secret_func, "Client Secret: ")

        identity = ClientIdentity(client_id=client_id, client_secret=secret or None)
        identity.require_secret_for(flow)

        saved_to = self.config_manager.save(self.settings)
        print(f"Settings saved to {saved_to}", file=sys.stderr)

        self._authorize(identity)
        return 0

    def _run_auth_command(self, args: List[str], options: Dict[str, Any]) -> int:
        """authコマンドの実行（保存済みのクライアント情報で再認可）"""
        credentials = self._load_credentials()
        self._authorize(credentials.identity)
        return 0

    def _run_info_command(self, args: List[str], options: Dict[str, Any]) -> int:
        """infoコマンドの実行"""
        with self.client_factory(self._require_token()) as client:
            info = client.info()
        print(json.dumps(info, ensure_ascii=False, indent=2))
        return 0

    def _run_show_command(self, args: List[str], options: Dict[str, Any]) -> int:
        """showコマンドの実行"""
        if not args:
            print("Usage: story show --blog <blog> <post_id>", file=sys.stderr)
            return 1
        blog = self._require_blog(options)

        with self.client_factory(self._require_token()) as client:
            post = client.read_post(blog, args[0])

        print(f"id: {post.id}")
        print(f"title: {post.title}")
        print(f"url: {post.post_url}")
        print(f"visibility: {post.visibility}")
        print(f"category: {post.category_id}")
        print(f"comments: {post.comments}")
        print(f"date: {post.date}")
        if post.tags:
            print(f"tags: {', '.join(post.tags)}")
        print()
        print(post.content)
        return 0

    def _run_post_command(self, args: List[str], options: Dict[str, Any]) -> int:
        """postコマンドの実行"""
        if len(args) < 2:
            print("Usage: story post --blog <blog> [-n] <title> <markdown file or directory>", file=sys.stderr)
            return 1
        blog = self._require_blog(options)
        title, source = args[0], Path(args[1])
        if not title.strip():
            print("Error: missing title", file=sys.stderr)
            return 1
        if not source.exists():
            print(f"Error: {source} does not exist", file=sys.stderr)
            return 1

        dry_run = bool(options.get("dry_run"))
        with self.client_factory(self._require_token()) as client:
            content = PostRenderer(client, blog, dry_run=dry_run).render_path(source)
            if dry_run:
                print(content)
                return 0
            url = client.write_post(blog, title, content)

        print(url)
        return 0

    def _run_edit_command(self, args: List[str], options: Dict[str, Any]) -> int:
        """editコマンドの実行"""
        if not args:
            print("Usage: story edit --blog <blog> [--title <title>] [--content <path>] [-n] <post_id>", file=sys.stderr)
            return 1
        blog = self._require_blog(options)
        post_id = args[0]
        new_title = options.get("title")
        content_path = options.get("content")
        if not new_title and not content_path:
            raise PostException(create_post_error(ErrorCode.POST_NOTHING_TO_DO, "nothing to do"))
        if content_path and not Path(content_path).exists():
            print(f"Error: {content_path} does not exist", file=sys.stderr)
            return 1

        dry_run = bool(options.get("dry_run"))
        with self.client_factory(self._require_token()) as client:
            post = client.read_post(blog, post_id)
            title = new_title or post.title
            content = post.content
            if content_path:
                content = PostRenderer(client, blog, dry_run=dry_run).render_path(Path(content_path))
            if dry_run:
                print(f"title: {title}")
                print(content)
                return 0
            url = client.modify_post(blog, post_id, title, content)

        print(url)
        return 0

    def _run_logout_command(self, args: List[str], options: Dict[str, Any]) -> int:
        """logoutコマンドの実行"""
        self.store.clear()
        print("Stored credentials removed.", file=sys.stderr)
        return 0

    def _authorize(self, identity: ClientIdentity) -> Credentials:
        flow = AuthorizationFlow.from_settings(
            self.settings,
            self.store,
            launcher=self.launcher or WebBrowserLauncher(),
            on_authorize_url=self._print_authorize_url,
        )
        credentials = asyncio.run(flow.authorize_async(identity))
        print("Authorization completed.", file=sys.stderr)
        return credentials

    def _print_authorize_url(self, url: str) -> None:
        print("Opening the authorization page. If no browser opens, visit:", file=sys.stderr)
        print(f"  {url}", file=sys.stderr)

    def _apply_overrides(self, overrides: Dict[str, Any]) -> StorySettings:
        from pydantic import ValidationError

        try:
            # 環境変数の解決後に適用するため、設定ソースを通さずに検証する
            return StorySettings.model_validate({**self.settings.model_dump(), **overrides})
        except ValidationError as exc:
            raise ConfigException(
                create_config_error(
                    f"設定値が不正です: {exc.errors()[0]['msg']}",
                    code=ErrorCode.CONFIG_INVALID_VALUE,
                )
            ) from exc

    def _load_credentials(self) -> Credentials:
        credentials = self.store.load()
        if credentials is None:
            raise ConfigException(
                create_config_error("failed to load credentials, try `story init` first")
            )
        return credentials

    def _require_token(self) -> str:
        credentials = self._load_credentials()
        if not credentials.access_token:
            raise ConfigException(
                create_config_error("no access token stored, try `story auth` first")
            )
        return credentials.access_token

    def _require_blog(self, options: Dict[str, Any]) -> str:
        blog = options.get("blog") or self.settings.default_blog
        if not blog:
            raise ConfigException(
                create_config_error("missing blog name (use --blog or default_blog)")
            )
        return blog

    def _default_client(self, access_token: str) -> TistoryClient:
        return TistoryClient(
            access_token,
            provider_url=self.settings.provider_url,
            timeout_seconds=self.settings.request_timeout,
        )

    @staticmethod
    def _prompt(read: Callable[[str], str], label: str) -> str:
        while True:
            try:
                value = read(label).strip()
            except EOFError as exc:
                raise ConfigException(
                    create_config_error(f"{label.rstrip(': ')} was not provided")
                ) from exc
            if value:
                return value

    def show_help(self) -> None:
        """ヘルプメッセージを表示"""
        print(HELP_TEXT)

    def show_version(self) -> None:
        """バージョン情報を表示"""
        print(f"story {__version__}")


def build_launcher(options: Dict[str, Any]) -> BrowserLauncher:
    """--no-browser 指定時はURLの表示だけにする"""
    if options.get("no_browser"):
        return NullBrowserLauncher()
    return WebBrowserLauncher()
