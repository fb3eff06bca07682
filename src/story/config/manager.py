"""
設定管理

storyの設定ファイル（YAML）の読み込み・保存を行う
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import ValidationError

from story.config.settings import StorySettings
from story.errors import ConfigException, ErrorCode, create_config_error

logger = logging.getLogger(__name__)


class ConfigManager:
    """設定の読み込みと保存

    設定ファイルと環境変数から設定を読み込む。
    環境変数（STORY_*）は設定ファイルの値を上書きする。
    """

    def __init__(self, config_path: Optional[Path] = None):
        """ConfigManagerを初期化

        Args:
            config_path: 明示的な設定ファイルのパス（省略時はデフォルトパスを検索）
        """
        self._config_path = config_path
        self._settings: Optional[StorySettings] = None

    @property
    def config_path(self) -> Optional[Path]:
        """読み込みに使用した（または使用する）設定ファイルのパス"""
        return self._config_path

    def load(self, force_reload: bool = False) -> StorySettings:
        """設定を読み込む

        Args:
            force_reload: キャッシュを無視して再読み込みするかどうか

        Returns:
            StorySettings: 読み込んだ設定

        Raises:
            ConfigException: 設定ファイルが壊れている、または値が不正な場合
        """
        if self._settings is not None and not force_reload:
            return self._settings

        file_config = self._load_from_file()
        try:
            self._settings = StorySettings(**file_config)
        except ValidationError as exc:
            raise ConfigException(
                create_config_error(
                    f"設定値が不正です: {exc.error_count()}件のエラー",
                    details={"errors": [err["msg"] for err in exc.errors()]},
                    code=ErrorCode.CONFIG_INVALID_VALUE,
                )
            ) from exc
        return self._settings

    def save(self, settings: StorySettings, path: Optional[Path] = None) -> Path:
        """設定をYAMLとして保存する

        Args:
            settings: 保存する設定
            path: 保存先（省略時は読み込み元、なければユーザー設定ディレクトリ）

        Returns:
            Path: 保存先のパス
        """
        target = path or self._config_path or self.default_save_path()
        data = settings.model_dump(mode="json", exclude_none=True)
        target.parent.mkdir(parents=True, exist_ok=True)
        with open(target, "w", encoding="utf-8") as f:
            yaml.safe_dump(data, f, allow_unicode=True, sort_keys=True)
        logger.debug("settings saved to %s", target)
        self._config_path = target
        self._settings = settings
        return target

    def _load_from_file(self) -> Dict[str, Any]:
        """設定ファイルから読み込み

        Returns:
            Dict[str, Any]: 読み込んだ設定値
        """
        config_path = self._config_path
        if config_path is None:
            for path in self._get_default_config_paths():
                if path.exists():
                    config_path = path
                    break

        if config_path is None or not config_path.exists():
            return {}

        self._config_path = config_path
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as exc:
            raise ConfigException(
                create_config_error(
                    f"設定ファイルを解析できません: {config_path}",
                    details={"reason": str(exc)},
                    code=ErrorCode.CONFIG_INVALID_VALUE,
                )
            ) from exc

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigException(
                create_config_error(
                    f"設定ファイルの形式が不正です（マッピングではありません）: {config_path}",
                    code=ErrorCode.CONFIG_INVALID_VALUE,
                )
            )
        return data

    def _get_default_config_paths(self) -> List[Path]:
        """デフォルトの設定ファイルパスを取得

        Returns:
            List[Path]: 検索する設定ファイルパスのリスト
        """
        paths = []

        # カレントディレクトリ
        paths.append(Path.cwd() / "story.yaml")
        paths.append(Path.cwd() / "story.yml")

        # ホームディレクトリ
        home = Path.home()
        paths.append(home / ".story.yaml")
        paths.append(self.default_save_path())

        return paths

    @staticmethod
    def default_save_path() -> Path:
        """設定ファイルの既定の保存先"""
        return Path.home() / ".config" / "story" / "config.yaml"
