"""認証フローで扱うデータモデル。"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from story.auth.urls import build_redirect_uri
from story.errors import ConfigException, ErrorCode, create_config_error


class FlowType(Enum):
    """プロバイダ側の認可フロー種別"""

    CODE = "code"
    IMPLICIT = "implicit"

    @property
    def response_type(self) -> str:
        """authorize エンドポイントに渡す response_type"""
        if self is FlowType.CODE:
            return "code"
        return "token"


class SessionState(Enum):
    """認可セッションの状態

    IDLE → LISTENER_STARTED → BROWSER_LAUNCHED → AWAITING_CALLBACK
    → (SUCCEEDED | TIMED_OUT) → STOPPED
    """

    IDLE = "idle"
    LISTENER_STARTED = "listener_started"
    BROWSER_LAUNCHED = "browser_launched"
    AWAITING_CALLBACK = "awaiting_callback"
    SUCCEEDED = "succeeded"
    TIMED_OUT = "timed_out"
    STOPPED = "stopped"


@dataclass(frozen=True, slots=True)
class ClientIdentity:
    """プロバイダに登録したアプリケーションの識別情報。

    Attributes:
        client_id: アプリケーションID。
        client_secret: code フローでの交換に使用するシークレット。
    """

    client_id: str
    client_secret: str | None = None

    def __post_init__(self) -> None:
        if not self.client_id or not self.client_id.strip():
            raise ConfigException(
                create_config_error(
                    "client_id が未設定です。",
                    code=ErrorCode.AUTH_MISSING_IDENTITY,
                )
            )

    def require_secret_for(self, flow: FlowType) -> None:
        """code フローではシークレットを必須とする。"""
        if flow is FlowType.CODE and not self.client_secret:
            raise ConfigException(
                create_config_error(
                    "code フローには client_secret が必要です。",
                    code=ErrorCode.AUTH_MISSING_IDENTITY,
                )
            )


@dataclass(slots=True)
class Credentials:
    """CredentialStore に保存される内容。"""

    identity: ClientIdentity
    access_token: str | None = None

    def to_payload(self) -> dict[str, str | None]:
        return {
            "client_id": self.identity.client_id,
            "client_secret": self.identity.client_secret,
            "access_token": self.access_token,
        }

    @classmethod
    def from_payload(cls, payload: dict[str, object]) -> Credentials:
        client_id = payload.get("client_id")
        secret = payload.get("client_secret")
        token = payload.get("access_token")
        return cls(
            identity=ClientIdentity(
                client_id=str(client_id or ""),
                client_secret=secret if isinstance(secret, str) and secret else None,
            ),
            access_token=token if isinstance(token, str) and token else None,
        )


@dataclass(slots=True)
class AuthSession:
    """1回の認可試行に対応する一時的なセッション。永続化しない。"""

    redirect_port: int
    redirect_path: str
    identity: ClientIdentity
    flow: FlowType = FlowType.CODE
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    access_token: str | None = None
    state: SessionState = SessionState.IDLE

    @property
    def redirect_uri(self) -> str:
        return build_redirect_uri(self.redirect_port, self.redirect_path)
