"""設定管理 - 設定の読み込みと保存"""

from story.config.manager import ConfigManager
from story.config.settings import (
    DEFAULT_PROVIDER_URL,
    DEFAULT_REDIRECT_PATH,
    DEFAULT_REDIRECT_PORT,
    StorySettings,
    mask_secret,
)

__all__ = [
    "ConfigManager",
    "DEFAULT_PROVIDER_URL",
    "DEFAULT_REDIRECT_PATH",
    "DEFAULT_REDIRECT_PORT",
    "StorySettings",
    "mask_secret",
]
