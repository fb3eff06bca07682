"""
CallbackListenerのユニットテスト
"""

import socket
import threading
import time
import unittest
from unittest.mock import MagicMock

import httpx

from story.auth.listener import (
    ALREADY_COMPLETED_PAGE,
    FRAGMENT_RELAY_PAGE,
    SUCCESS_PAGE,
    CallbackListener,
    redact_query,
)
from story.auth.models import AuthSession, ClientIdentity, FlowType
from story.errors import ErrorCode, ExchangeException, ListenerBindException, create_auth_error


def free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def make_session(flow=FlowType.CODE, port=18769, path="oauth_result"):
    return AuthSession(port, path, ClientIdentity("app", "secret"), flow=flow)


class FakeExchanger:
    def __init__(self, token="abc123", error=None):
        self.token = token
        self.error = error
        self.calls = []

    def exchange(self, code, identity, redirect_uri):
        self.calls.append((code, identity, redirect_uri))
        if self.error is not None:
            raise self.error
        return self.token


class GatedExchanger:
    """Event がセットされるまでトークン交換を止めておく"""

    def __init__(self, token="gated-token"):
        self.token = token
        self.entered = threading.Event()
        self.release = threading.Event()

    def exchange(self, code, identity, redirect_uri):
        self.entered.set()
        self.release.wait(10)
        return self.token


class TestDispatchCodeFlow(unittest.TestCase):
    """code フローの振り分けテスト"""

    def setUp(self):
        self.exchanger = FakeExchanger()
        self.listener = CallbackListener(make_session(), self.exchanger)

    def test_code_is_exchanged(self):
        response = self.listener.dispatch("/oauth_result", {"code": ["xyz"]})
        self.assertEqual(response.status, 200)
        self.assertEqual(response.body, SUCCESS_PAGE)
        self.assertEqual(response.token, "abc123")
        code, identity, redirect_uri = self.exchanger.calls[0]
        self.assertEqual(code, "xyz")
        self.assertEqual(identity.client_id, "app")
        self.assertEqual(redirect_uri, "http://127.0.0.1:18769/oauth_result")

    def test_dispatch_does_not_deliver(self):
        """トークンの受け渡しは relay() まで行われないこと"""
        self.listener.dispatch("/oauth_result", {"code": ["xyz"]})
        self.assertFalse(self.listener.handoff.delivered)

    def test_unknown_path(self):
        response = self.listener.dispatch("/favicon.ico", {})
        self.assertEqual(response.status, 404)
        self.assertIsNone(response.token)
        self.assertEqual(self.exchanger.calls, [])

    def test_success_path_is_not_served(self):
        response = self.listener.dispatch("/success", {"access_token": ["abc"]})
        self.assertEqual(response.status, 404)

    def test_missing_code(self):
        response = self.listener.dispatch("/oauth_result", {})
        self.assertEqual(response.status, 400)
        self.assertIsNone(response.token)

    def test_provider_error(self):
        response = self.listener.dispatch(
            "/oauth_result", {"error": ["access_denied"], "error_description": ["<denied>"]}
        )
        self.assertEqual(response.status, 400)
        self.assertIn("&lt;denied&gt;", response.body)
        self.assertEqual(self.exchanger.calls, [])

    def test_exchange_failure(self):
        self.exchanger.error = ExchangeException(
            create_auth_error(ErrorCode.AUTH_EXCHANGE_FAILED, "invalid_grant")
        )
        response = self.listener.dispatch("/oauth_result", {"code": ["xyz"]})
        self.assertEqual(response.status, 400)
        self.assertIsNone(response.token)
        self.assertIn("invalid_grant", response.body)

    def test_no_exchange_after_delivery(self):
        self.assertTrue(self.listener.relay("first"))
        response = self.listener.dispatch("/oauth_result", {"code": ["again"]})
        self.assertEqual(response.body, ALREADY_COMPLETED_PAGE)
        self.assertIsNone(response.token)
        self.assertEqual(self.exchanger.calls, [])

    def test_second_relay_is_ignored(self):
        self.assertTrue(self.listener.relay("first"))
        self.assertFalse(self.listener.relay("second"))
        self.assertEqual(self.listener.handoff.wait(0), "first")

    def test_code_flow_requires_exchanger(self):
        with self.assertRaises(ValueError):
            CallbackListener(make_session())


class TestDispatchImplicitFlow(unittest.TestCase):
    """implicit フローの振り分けテスト"""

    def setUp(self):
        self.listener = CallbackListener(make_session(FlowType.IMPLICIT))

    def test_callback_serves_relay_page(self):
        response = self.listener.dispatch("/oauth_result", {})
        self.assertEqual(response.status, 200)
        self.assertEqual(response.body, FRAGMENT_RELAY_PAGE)
        self.assertIsNone(response.token)

    def test_success_with_token(self):
        response = self.listener.dispatch("/success", {"access_token": ["tok"], "state": [""]})
        self.assertEqual(response.status, 200)
        self.assertEqual(response.token, "tok")

    def test_success_without_token(self):
        response = self.listener.dispatch("/success", {"error": ["access_denied"]})
        self.assertEqual(response.status, 400)
        self.assertIn("access_denied", response.body)

    def test_success_after_delivery(self):
        self.listener.relay("first")
        response = self.listener.dispatch("/success", {"access_token": ["second"]})
        self.assertEqual(response.body, ALREADY_COMPLETED_PAGE)
        self.assertIsNone(response.token)


class TestListenerLifecycle(unittest.TestCase):
    """実際のソケットを使ったテスト"""

    def test_serves_and_delivers_once(self):
        port = free_port()
        listener = CallbackListener(make_session(FlowType.IMPLICIT, port=port))
        handoff = listener.start()
        try:
            self.assertTrue(listener.running)
            self.assertEqual(listener.port, port)
            base = f"http://127.0.0.1:{port}"

            page = httpx.get(f"{base}/oauth_result", timeout=5)
            self.assertEqual(page.status_code, 200)
            self.assertIn("/success?", page.text)

            first = httpx.get(f"{base}/success", params={"access_token": "tok-1"}, timeout=5)
            self.assertEqual(first.status_code, 200)
            self.assertEqual(handoff.wait(5), "tok-1")

            second = httpx.get(f"{base}/success", params={"access_token": "tok-2"}, timeout=5)
            self.assertIn("already completed", second.text)
            self.assertEqual(handoff.wait(0), "tok-1")

            missing = httpx.get(f"{base}/other", timeout=5)
            self.assertEqual(missing.status_code, 404)
        finally:
            listener.stop()
        self.assertFalse(listener.running)

    def test_stop_is_idempotent(self):
        listener = CallbackListener(make_session(FlowType.IMPLICIT, port=free_port()))
        listener.start()
        listener.stop()
        listener.stop()
        self.assertFalse(listener.running)

    def test_stop_before_start(self):
        listener = CallbackListener(make_session(FlowType.IMPLICIT))
        listener.stop()
        with self.assertRaises(RuntimeError):
            listener.start()

    def test_start_twice(self):
        listener = CallbackListener(make_session(FlowType.IMPLICIT, port=free_port()))
        listener.start()
        try:
            with self.assertRaises(RuntimeError):
                listener.start()
        finally:
            listener.stop()

    def test_port_in_use(self):
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            sock.bind(("127.0.0.1", 0))
            sock.listen(1)
            port = sock.getsockname()[1]
            listener = CallbackListener(make_session(FlowType.IMPLICIT, port=port))
            with self.assertRaises(ListenerBindException) as ctx:
                listener.start()
        self.assertEqual(ctx.exception.error.code, ErrorCode.AUTH_LISTENER_BIND.value)
        self.assertFalse(listener.running)

    def test_port_is_released_after_stop(self):
        port = free_port()
        first = CallbackListener(make_session(FlowType.IMPLICIT, port=port))
        first.start()
        first.stop()

        second = CallbackListener(make_session(FlowType.IMPLICIT, port=port))
        second.start()
        second.stop()

    def test_handler_relays_after_writing(self):
        """ページ送信後にトークンが渡されること"""
        port = free_port()
        exchanger = FakeExchanger(token="from-exchange")
        listener = CallbackListener(make_session(port=port), exchanger)
        listener.relay = MagicMock(wraps=listener.relay)
        handoff = listener.start()
        try:
            response = httpx.get(f"http://127.0.0.1:{port}/oauth_result", params={"code": "c"}, timeout=5)
            self.assertEqual(response.status_code, 200)
            self.assertEqual(handoff.wait(5), "from-exchange")
            listener.relay.assert_called_once_with("from-exchange")
        finally:
            listener.stop()

    def test_serves_other_paths_during_exchange(self):
        """交換処理の実行中も /success と未知のパスに応答できること"""
        port = free_port()
        exchanger = GatedExchanger()
        listener = CallbackListener(make_session(port=port), exchanger)
        handoff = listener.start()
        base = f"http://127.0.0.1:{port}"
        results = []

        def callback():
            results.append(httpx.get(f"{base}/oauth_result", params={"code": "c"}, timeout=10))

        thread = threading.Thread(target=callback, daemon=True)
        thread.start()
        try:
            self.assertTrue(exchanger.entered.wait(5))

            start = time.monotonic()
            missing = httpx.get(f"{base}/other", timeout=2)
            success = httpx.get(f"{base}/success", params={"access_token": "x"}, timeout=2)
            self.assertLess(time.monotonic() - start, 2)
            self.assertEqual(missing.status_code, 404)
            self.assertEqual(success.status_code, 404)
            self.assertFalse(handoff.delivered)

            exchanger.release.set()
            thread.join(5)
            self.assertEqual(results[0].status_code, 200)
            self.assertEqual(handoff.wait(5), "gated-token")
        finally:
            exchanger.release.set()
            listener.stop()

    def test_stop_during_exchange_releases_port(self):
        """交換処理の実行中に停止してもポートが解放されること"""
        port = free_port()
        exchanger = GatedExchanger()
        listener = CallbackListener(make_session(port=port), exchanger)
        listener.start()

        def callback():
            try:
                httpx.get(f"http://127.0.0.1:{port}/oauth_result", params={"code": "c"}, timeout=10)
            except httpx.HTTPError:
                pass

        thread = threading.Thread(target=callback, daemon=True)
        thread.start()
        try:
            self.assertTrue(exchanger.entered.wait(5))

            start = time.monotonic()
            listener.stop()
            self.assertLess(time.monotonic() - start, 3)
            self.assertFalse(listener.running)

            second = CallbackListener(make_session(FlowType.IMPLICIT, port=port))
            second.start()
            second.stop()
        finally:
            exchanger.release.set()
            thread.join(5)

    def test_missing_exchanger_is_reported(self):
        listener = CallbackListener(make_session(), FakeExchanger())
        listener._exchanger = None
        with self.assertRaises(RuntimeError):
            listener.dispatch("/oauth_result", {"code": ["xyz"]})


class TestRedactQuery(unittest.TestCase):
    """ログのマスク処理"""

    def test_masks_token_and_code(self):
        line = '"GET /success?access_token=abcdef123456&state= HTTP/1.1" 200 -'
        redacted = redact_query(line)
        self.assertNotIn("abcdef123456", redacted)
        self.assertIn("access_token=***3456", redacted)
        self.assertEqual(redact_query("code=xyzw"), "code=****")


if __name__ == "__main__":
    unittest.main()
