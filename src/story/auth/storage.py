"""クライアント識別情報とアクセストークンの保存を提供する。"""

from __future__ import annotations

from abc import ABC, abstractmethod
import json
import os
from pathlib import Path
import warnings

import keyring
from keyring.errors import KeyringError, PasswordDeleteError

from story.auth.models import Credentials
from story.errors import ConfigException, ErrorCode, PersistException, create_auth_error

CREDENTIALS_KEY = "credentials"


class CredentialStore(ABC):
    """資格情報の保存先の抽象基底クラス。"""

    @abstractmethod
    def load(self) -> Credentials | None:
        """保存済みの資格情報を返す。存在しない場合はNone。"""

    @abstractmethod
    def save(self, credentials: Credentials) -> None:
        """資格情報を保存する。失敗時は PersistException を送出する。"""

    @abstractmethod
    def clear(self) -> None:
        """資格情報を削除する。"""


class MemoryCredentialStore(CredentialStore):
    """プロセス内だけで保持する資格情報ストア。"""

    def __init__(self, credentials: Credentials | None = None) -> None:
        self._credentials = credentials
        self.save_count = 0

    def load(self) -> Credentials | None:
        return self._credentials

    def save(self, credentials: Credentials) -> None:
        self._credentials = credentials
        self.save_count += 1

    def clear(self) -> None:
        self._credentials = None


class KeyringCredentialStore(CredentialStore):
    """keyring に資格情報を保存し、使えない場合はローカルファイルに切り替える。"""

    def __init__(self, keyring_service: str = "story", fallback_path: Path | None = None) -> None:
        """KeyringCredentialStoreを初期化する。

        Args:
            keyring_service: keyringに保存する際のサービス名。
            fallback_path: keyringが使えない場合の保存先。
        """

        self._keyring_service = keyring_service
        self._fallback_path = fallback_path or Path.home() / ".story" / "credentials.json"
        self._use_keyring = True

    def load(self) -> Credentials | None:
        raw: str | None = None
        if self._use_keyring:
            try:
                raw = keyring.get_password(self._keyring_service, CREDENTIALS_KEY)
            except KeyringError as exc:
                self._switch_to_fallback(exc)

        if not self._use_keyring:
            raw = self._read_fallback()

        if not raw:
            return None
        return self._decode(raw)

    def save(self, credentials: Credentials) -> None:
        raw = json.dumps(credentials.to_payload(), ensure_ascii=False)
        if self._use_keyring:
            try:
                keyring.set_password(self._keyring_service, CREDENTIALS_KEY, raw)
                return
            except KeyringError as exc:
                self._switch_to_fallback(exc)

        try:
            self._write_fallback(raw)
        except OSError as exc:
            raise PersistException(
                create_auth_error(
                    ErrorCode.AUTH_PERSIST_FAILED,
                    f"資格情報を保存できません: {exc}",
                    details={"path": str(self._fallback_path)},
                )
            ) from exc

    def clear(self) -> None:
        if self._use_keyring:
            try:
                keyring.delete_password(self._keyring_service, CREDENTIALS_KEY)
                return
            except PasswordDeleteError:
                return
            except KeyringError as exc:
                self._switch_to_fallback(exc)

        if self._fallback_path.exists():
            self._fallback_path.unlink()

    def _switch_to_fallback(self, exc: Exception) -> None:
        if self._use_keyring:
            warnings.warn(
                f"keyringが利用できないため、ローカルファイルに保存します: {exc}",
                RuntimeWarning,
                stacklevel=3,
            )
            self._use_keyring = False

    def _decode(self, raw: str) -> Credentials | None:
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError:
            warnings.warn(
                "資格情報の形式が不正です。未保存として扱います。",
                RuntimeWarning,
                stacklevel=3,
            )
            return None

        if not isinstance(payload, dict):
            return None
        try:
            return Credentials.from_payload(payload)
        except ConfigException:
            return None

    def _read_fallback(self) -> str | None:
        if not self._fallback_path.exists():
            return None

        self._ensure_fallback_permissions(self._fallback_path)
        with self._fallback_path.open("r", encoding="utf-8") as file:
            return file.read()

    def _write_fallback(self, raw: str) -> None:
        self._fallback_path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
        with self._fallback_path.open("w", encoding="utf-8") as file:
            file.write(raw)
        self._ensure_fallback_permissions(self._fallback_path)

    def _ensure_fallback_permissions(self, path: Path) -> None:
        if path.exists():
            os.chmod(path, 0o600)
