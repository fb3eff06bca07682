"""認可リダイレクトを受け取るループバック限定のHTTPリスナー。"""

from __future__ import annotations

from dataclasses import dataclass
import html
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
import logging
import re
import threading
from urllib.parse import parse_qs, urlparse

from story.auth.exchange import TokenExchanger
from story.auth.handoff import Handoff
from story.auth.models import AuthSession, FlowType
from story.auth.urls import LOOPBACK_HOST
from story.config.settings import mask_secret
from story.errors import ErrorCode, ExchangeException, ListenerBindException, create_auth_error

logger = logging.getLogger(__name__)

SUCCESS_PATH = "/success"

SUCCESS_PAGE = """<!DOCTYPE html>
<html lang="en">
<head><meta charset="UTF-8"><title>Authentication Result</title></head>
<body style="font-family: sans-serif; text-align: center; padding-top: 50px;">
    <h2>&#10004; Authentication success</h2>
    <p>You can close this window.</p>
    <script>setTimeout(function() { window.close(); }, 1000);</script>
</body>
</html>
"""

ALREADY_COMPLETED_PAGE = """<!DOCTYPE html>
<html lang="en">
<head><meta charset="UTF-8"><title>Authentication Result</title></head>
<body style="font-family: sans-serif; text-align: center; padding-top: 50px;">
    <h2>Authentication already completed</h2>
    <script>setTimeout(function() { window.close(); }, 1000);</script>
</body>
</html>
"""

FAILURE_PAGE = """<!DOCTYPE html>
<html lang="en">
<head><meta charset="UTF-8"><title>Authentication Result</title></head>
<body style="font-family: sans-serif; text-align: center; padding-top: 50px;">
    <h2>Authentication failed</h2>
    <p id="reason">{reason}</p>
    <p>Retry the authorization from the provider page.</p>
</body>
</html>
"""

# フラグメントはサーバーに送られないため、スクリプトで /success に付け替える
FRAGMENT_RELAY_PAGE = """<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>Authentication Result</title>
</head>
<body>
    <div id="result"></div>
    <script type="text/javascript">
    if (window.location.hash.length <= 1) {
        document.getElementById("result").innerHTML = "failed to initialize!";
    } else {
        window.location.replace(window.location.protocol + "//" + window.location.host
            + "/success?" + window.location.hash.substring(1));
    }
    </script>
</body>
</html>
"""

_SENSITIVE_PARAM = re.compile(r"((?:access_token|code)=)([^&\s]+)")


def redact_query(text: str) -> str:
    """ログ用にトークンと認可コードをマスクする。"""
    return _SENSITIVE_PARAM.sub(lambda m: m.group(1) + mask_secret(m.group(2)), text)


@dataclass(frozen=True)
class CallbackResponse:
    """ブラウザに返す応答。"""

    status: int
    body: str
    content_type: str = "text/html; charset=utf-8"
    token: str | None = None


class _CallbackServer(ThreadingHTTPServer):
    daemon_threads = True

    def __init__(self, server_address: tuple[str, int], listener: CallbackListener) -> None:
        super().__init__(server_address, _CallbackHandler)
        self.listener = listener


class _CallbackHandler(BaseHTTPRequestHandler):
    def do_GET(self) -> None:  # noqa: N802
        server = self.server
        if not isinstance(server, _CallbackServer):
            self.send_error(500, "Server configuration error")
            return

        parsed = urlparse(self.path)
        response = server.listener.dispatch(parsed.path, parse_qs(parsed.query))
        payload = response.body.encode("utf-8")
        try:
            self.send_response(response.status)
            self.send_header("Content-Type", response.content_type)
            self.send_header("Content-Length", str(len(payload)))
            self.send_header("Cache-Control", "no-store")
            self.end_headers()
            self.wfile.write(payload)
            self.wfile.flush()
        finally:
            # ブラウザ側が先に切断しても取得済みのトークンは渡す
            if response.token is not None:
                server.listener.relay(response.token)

    def log_message(self, format: str, *args: object) -> None:  # noqa: A003
        logger.debug("callback %s", redact_query(format % args))


class CallbackListener:
    """1つの AuthSession に紐づくコールバック受信サーバー。

    ``start()`` で受信スレッドを起動し、結果の受け取り口である Handoff を返す。
    リスナー自身が停止ハンドルとなり、``stop()`` は何度呼んでもよい。
    """

    def __init__(self, session: AuthSession, exchanger: TokenExchanger | None = None) -> None:
        """CallbackListenerを初期化する。

        Args:
            session: 対応する認可セッション。
            exchanger: code フローで使用するトークン交換処理。
        """

        if session.flow is FlowType.CODE and exchanger is None:
            raise ValueError("code フローには TokenExchanger が必要です。")
        self._session = session
        self._exchanger = exchanger
        self._handoff = Handoff()
        self._callback_path = "/" + session.redirect_path.lstrip("/")
        self._server: _CallbackServer | None = None
        self._thread: threading.Thread | None = None
        self._stop_lock = threading.Lock()
        self._stopped = False

    @property
    def handoff(self) -> Handoff:
        return self._handoff

    @property
    def port(self) -> int | None:
        if self._server is None:
            return None
        return self._server.server_address[1]

    @property
    def running(self) -> bool:
        return self._server is not None and not self._stopped

    def start(self) -> Handoff:
        """ループバックにbindして受信スレッドを開始する。

        Returns:
            Handoff: 取得したトークンが1度だけ渡される受け取り口。

        Raises:
            ListenerBindException: ポートをbindできない場合。
        """

        if self._server is not None or self._stopped:
            raise RuntimeError("CallbackListener は1回しか起動できません。")

        address = (LOOPBACK_HOST, self._session.redirect_port)
        try:
            server = _CallbackServer(address, self)
        except OSError as exc:
            raise ListenerBindException(
                create_auth_error(
                    ErrorCode.AUTH_LISTENER_BIND,
                    f"{LOOPBACK_HOST}:{self._session.redirect_port} をbindできません: {exc}",
                    details={"port": self._session.redirect_port},
                )
            ) from exc

        self._server = server
        self._thread = threading.Thread(
            target=server.serve_forever,
            name=f"story-callback-{self._session.redirect_port}",
            daemon=True,
        )
        self._thread.start()
        logger.debug("callback listener started on %s:%s", *server.server_address[:2])
        return self._handoff

    def stop(self) -> None:
        """受信ループを止めてソケットを解放する。"""

        with self._stop_lock:
            if self._stopped:
                return
            self._stopped = True
            server, thread = self._server, self._thread

        if server is None:
            return
        server.shutdown()
        server.server_close()
        if thread is not None:
            thread.join(timeout=1)
        logger.debug("callback listener stopped")

    def dispatch(self, path: str, query: dict[str, list[str]]) -> CallbackResponse:
        """リクエストパスとクエリから応答を決める。

        応答に token が含まれる場合、呼び出し側はページを書き込んだ後に
        ``relay()`` でトークンを渡す。
        """

        if path == self._callback_path:
            if self._session.flow is FlowType.CODE:
                return self._handle_code(query)
            return CallbackResponse(200, FRAGMENT_RELAY_PAGE)

        if path == SUCCESS_PATH and self._session.flow is FlowType.IMPLICIT:
            return self._handle_success(query)

        return CallbackResponse(404, "Not Found", content_type="text/plain; charset=utf-8")

    def _handle_code(self, query: dict[str, list[str]]) -> CallbackResponse:
        error = _first(query, "error")
        if error:
            description = _first(query, "error_description") or error
            logger.warning("authorization was rejected by the provider: %s", description)
            return _failure(description)

        code = _first(query, "code")
        if not code:
            return _failure("The redirect did not carry an authorization code.")

        if self._handoff.delivered:
            return CallbackResponse(200, ALREADY_COMPLETED_PAGE)

        exchanger = self._exchanger
        if exchanger is None:
            raise RuntimeError("code フローのリスナーに TokenExchanger が設定されていません。")
        try:
            token = exchanger.exchange(code, self._session.identity, self._session.redirect_uri)
        except ExchangeException as exc:
            logger.warning("token exchange failed: %s", exc.error.message)
            return _failure(exc.error.message)

        return self._accept(token)

    def _handle_success(self, query: dict[str, list[str]]) -> CallbackResponse:
        token = _first(query, "access_token")
        if not token:
            error = _first(query, "error_description") or _first(query, "error")
            return _failure(error or "The redirect did not carry an access token.")
        return self._accept(token)

    def _accept(self, token: str) -> CallbackResponse:
        if self._handoff.delivered:
            return CallbackResponse(200, ALREADY_COMPLETED_PAGE)
        return CallbackResponse(200, SUCCESS_PAGE, token=token)

    def relay(self, token: str) -> bool:
        """成功ページを返した後にトークンを待機側へ渡す。"""

        if not self._handoff.offer(token):
            logger.info("ignored a second credential for the same session")
            return False
        logger.info("access token received (%s)", mask_secret(token))
        return True


def _first(query: dict[str, list[str]], key: str) -> str | None:
    values = query.get(key)
    if not values:
        return None
    return values[0]


def _failure(reason: str) -> CallbackResponse:
    return CallbackResponse(400, FAILURE_PAGE.format(reason=html.escape(reason)))
