"""Pydantic V2 ベースの統合設定モデル"""

import logging
from pathlib import Path
from typing import Any, Literal, Optional, Tuple

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

DEFAULT_PROVIDER_URL = "https://www.tistory.com"
DEFAULT_REDIRECT_PORT = 18769
DEFAULT_REDIRECT_PATH = "oauth_result"


def mask_secret(value: Optional[str]) -> str:
    """鍵やトークンをマスクしてログ出力を避ける"""
    if not value:
        return "***"
    if len(value) <= 4:
        return "*" * len(value)
    return f"***{value[-4:]}"


class StorySettings(BaseSettings):
    """story の統合設定

    資格情報（client_id / client_secret / access_token）はここに含めず、
    CredentialStore 側で保持する。
    """

    model_config = SettingsConfigDict(
        env_prefix="STORY_",
        extra="forbid",
    )

    # リダイレクト先（ループバック）設定
    redirect_port: int = Field(default=DEFAULT_REDIRECT_PORT, ge=1, le=65535)
    redirect_path: str = Field(default=DEFAULT_REDIRECT_PATH)
    flow: Literal["code", "implicit"] = "code"

    # API 設定
    provider_url: str = Field(default=DEFAULT_PROVIDER_URL)
    request_timeout: float = Field(default=30.0, gt=0)
    default_blog: Optional[str] = None

    # 資格情報の保存先
    keyring_service: str = Field(default="story")
    credentials_path: Optional[Path] = None

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ) -> Tuple[Any, ...]:
        """設定ソースの優先順位をカスタマイズ（env > init(=設定ファイル)）"""
        return (
            env_settings,
            dotenv_settings,
            init_settings,
            file_secret_settings,
        )

    @field_validator("redirect_path")
    @classmethod
    def normalize_redirect_path(cls, value: str) -> str:
        """先頭の '/' を取り除き、空のパスを拒否する"""
        normalized = value.strip().lstrip("/")
        if not normalized:
            raise ValueError("redirect_path は空にできません")
        if normalized == "success":
            # /success は implicit フローの中継先として予約されている
            raise ValueError("redirect_path に 'success' は使用できません")
        return normalized

    @field_validator("provider_url")
    @classmethod
    def normalize_provider_url(cls, value: str) -> str:
        """末尾の '/' を取り除く"""
        normalized = value.strip().rstrip("/")
        if not normalized.startswith(("http://", "https://")):
            raise ValueError(f"provider_url は http(s) URL で指定してください: {value}")
        return normalized

    def dump_masked(self) -> dict:
        """資格情報の保存先をマスクした設定を返却する"""
        data = self.model_dump(mode="json")
        data["keyring_service"] = mask_secret(data.get("keyring_service"))
        if data.get("credentials_path"):
            data["credentials_path"] = mask_secret(data["credentials_path"])
        return data
