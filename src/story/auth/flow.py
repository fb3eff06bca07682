"""認可フローの実行（リスナー起動・ブラウザ起動・コールバック待機・保存）。"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable

from story.auth.browser import BrowserLauncher, WebBrowserLauncher
from story.auth.exchange import HttpTokenExchanger, TokenExchanger
from story.auth.handoff import Handoff
from story.auth.listener import CallbackListener
from story.auth.models import AuthSession, ClientIdentity, Credentials, FlowType, SessionState
from story.auth.storage import CredentialStore
from story.auth.urls import build_authorize_url
from story.config.settings import DEFAULT_PROVIDER_URL, StorySettings, mask_secret
from story.errors import (
    AuthorizationTimeoutException,
    ErrorCode,
    PersistException,
    StoryException,
    create_auth_error,
)

logger = logging.getLogger(__name__)
audit_logger = logging.getLogger("story.audit.auth")

AUTHORIZE_TIMEOUT_SECONDS = 10.0

ListenerFactory = Callable[[AuthSession, "TokenExchanger | None"], CallbackListener]


class AuthorizationFlow:
    """1回分の認可を最後まで実行する。

    リスナーの起動に失敗した場合はブラウザを開かずに中断する。
    コールバックとタイムアウトのどちらか先に起きた方だけが結果になり、
    いずれの場合もリスナーは必ず停止される。
    """

    def __init__(
        self,
        redirect_port: int,
        redirect_path: str,
        store: CredentialStore,
        flow: FlowType = FlowType.CODE,
        provider_url: str = DEFAULT_PROVIDER_URL,
        launcher: BrowserLauncher | None = None,
        exchanger: TokenExchanger | None = None,
        listener_factory: ListenerFactory | None = None,
        on_authorize_url: Callable[[str], None] | None = None,
        timeout_seconds: float = AUTHORIZE_TIMEOUT_SECONDS,
        request_timeout: float = 30.0,
    ) -> None:
        """AuthorizationFlowを初期化する。

        Args:
            redirect_port: コールバックを受けるループバックのポート。
            redirect_path: コールバックのパス。
            store: 成功時に資格情報を保存する先。
            flow: code フローか implicit フローか。
            provider_url: プロバイダのベースURL。
            launcher: ブラウザ起動機能。
            exchanger: code フローのトークン交換処理。
            listener_factory: テスト用にリスナー生成を差し替える。
            on_authorize_url: authorize URL を利用者に提示するコールバック。
            timeout_seconds: コールバック待機の上限（テスト以外では既定値を使う）。
            request_timeout: 既定のトークン交換処理で使うHTTPタイムアウト。
        """

        self._redirect_port = redirect_port
        self._redirect_path = redirect_path.lstrip("/")
        self._store = store
        self._flow = flow
        self._provider_url = provider_url
        self._launcher = launcher or WebBrowserLauncher()
        self._exchanger = exchanger
        self._listener_factory = listener_factory or CallbackListener
        self._on_authorize_url = on_authorize_url
        self._timeout_seconds = timeout_seconds
        self._request_timeout = request_timeout
        self.last_session: AuthSession | None = None

    @classmethod
    def from_settings(
        cls,
        settings: StorySettings,
        store: CredentialStore,
        launcher: BrowserLauncher | None = None,
        on_authorize_url: Callable[[str], None] | None = None,
    ) -> AuthorizationFlow:
        """設定から AuthorizationFlow を組み立てる。"""

        flow = FlowType(settings.flow)
        exchanger = None
        if flow is FlowType.CODE:
            exchanger = HttpTokenExchanger(settings.provider_url, settings.request_timeout)
        return cls(
            redirect_port=settings.redirect_port,
            redirect_path=settings.redirect_path,
            store=store,
            flow=flow,
            provider_url=settings.provider_url,
            launcher=launcher,
            exchanger=exchanger,
            on_authorize_url=on_authorize_url,
            request_timeout=settings.request_timeout,
        )

    def authorize(self, identity: ClientIdentity) -> Credentials:
        """認可フローを実行し、取得したトークンを保存して返す。

        Raises:
            ListenerBindException: ポートをbindできない場合。
            AuthorizationTimeoutException: 制限時間内にコールバックが届かない場合。
            PersistException: 資格情報を保存できない場合。
        """

        session, listener, handoff = self._begin(identity)
        try:
            token = handoff.wait(self._timeout_seconds)
        finally:
            listener.stop()
        return self._finish(session, token)

    async def authorize_async(self, identity: ClientIdentity) -> Credentials:
        """authorize と同じ処理を、待機をスレッドに逃がして実行する。"""

        session, listener, handoff = await asyncio.to_thread(self._begin, identity)
        try:
            token = await asyncio.to_thread(handoff.wait, self._timeout_seconds)
        finally:
            await asyncio.to_thread(listener.stop)
        return self._finish(session, token)

    def _begin(self, identity: ClientIdentity) -> tuple[AuthSession, CallbackListener, Handoff]:
        identity.require_secret_for(self._flow)
        session = AuthSession(
            redirect_port=self._redirect_port,
            redirect_path=self._redirect_path,
            identity=identity,
            flow=self._flow,
        )
        self.last_session = session
        audit_logger.info(
            "auth.start",
            extra={
                "stage": "auth",
                "flow": self._flow.value,
                "port": self._redirect_port,
                "client_id": identity.client_id,
            },
        )

        exchanger = self._exchanger
        if exchanger is None and self._flow is FlowType.CODE:
            exchanger = HttpTokenExchanger(self._provider_url, self._request_timeout)

        listener = self._listener_factory(session, exchanger)
        try:
            handoff = listener.start()
        except StoryException as exc:
            session.state = SessionState.STOPPED
            audit_logger.error("auth.error", extra={"stage": "auth", "error": str(exc)})
            raise
        session.state = SessionState.LISTENER_STARTED

        try:
            auth_url = build_authorize_url(
                self._provider_url, self._flow, identity.client_id, session.redirect_uri
            )
            logger.info("authorize url: %s", auth_url)
            if self._on_authorize_url is not None:
                self._on_authorize_url(auth_url)
            if not self._launcher.launch(auth_url):
                logger.warning("could not open a browser, open the authorize url manually: %s", auth_url)
        except BaseException:
            listener.stop()
            session.state = SessionState.STOPPED
            raise

        session.state = SessionState.BROWSER_LAUNCHED
        session.state = SessionState.AWAITING_CALLBACK
        return session, listener, handoff

    def _finish(self, session: AuthSession, token: str | None) -> Credentials:
        duration = time.time() - session.started_at.timestamp()
        if token is None:
            session.state = SessionState.TIMED_OUT
            audit_logger.warning(
                "auth.timeout",
                extra={"stage": "auth", "duration_seconds": round(duration, 3)},
            )
            session.state = SessionState.STOPPED
            raise AuthorizationTimeoutException(
                create_auth_error(
                    ErrorCode.AUTH_TIMEOUT,
                    f"{self._timeout_seconds:g}秒以内に認可のコールバックが届きませんでした。",
                    details={"redirect_uri": session.redirect_uri},
                )
            )

        session.access_token = token
        session.state = SessionState.SUCCEEDED
        credentials = Credentials(identity=session.identity, access_token=token)
        try:
            self._store.save(credentials)
        except PersistException:
            raise
        except OSError as exc:
            raise PersistException(
                create_auth_error(ErrorCode.AUTH_PERSIST_FAILED, f"資格情報を保存できません: {exc}")
            ) from exc
        finally:
            session.state = SessionState.STOPPED

        audit_logger.info(
            "auth.completed",
            extra={
                "stage": "auth",
                "duration_seconds": round(duration, 3),
                "access_token": mask_secret(token),
            },
        )
        return credentials
