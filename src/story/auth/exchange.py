"""認可コードをアクセストークンに交換する。"""

from __future__ import annotations

import logging
from typing import Protocol

import httpx

from story.auth.models import ClientIdentity
from story.auth.urls import build_exchange_url, parse_token_response
from story.errors import ErrorCode, ExchangeException, create_auth_error

logger = logging.getLogger(__name__)


class TokenExchanger(Protocol):
    """コールバックで受け取った認可コードをトークンに交換する。"""

    def exchange(self, code: str, identity: ClientIdentity, redirect_uri: str) -> str:
        ...


class HttpTokenExchanger:
    """プロバイダの access_token エンドポイントを呼び出す交換処理。"""

    def __init__(
        self,
        provider_url: str,
        timeout_seconds: float = 30.0,
        http_client: httpx.Client | None = None,
    ) -> None:
        """HttpTokenExchangerを初期化する。

        Args:
            provider_url: プロバイダのベースURL。
            timeout_seconds: 交換リクエストのタイムアウト。
            http_client: テスト用に差し替えるHTTPクライアント。
        """

        self._provider_url = provider_url
        self._timeout_seconds = timeout_seconds
        self._http_client = http_client

    def exchange(self, code: str, identity: ClientIdentity, redirect_uri: str) -> str:
        url = build_exchange_url(self._provider_url, identity, redirect_uri, code)
        try:
            if self._http_client is not None:
                response = self._http_client.get(url)
            else:
                with httpx.Client(timeout=self._timeout_seconds) as client:
                    response = client.get(url)
        except httpx.HTTPError as exc:
            raise ExchangeException(
                create_auth_error(
                    ErrorCode.AUTH_EXCHANGE_FAILED,
                    f"トークン交換リクエストに失敗しました: {exc}",
                )
            ) from exc

        if response.status_code != httpx.codes.OK:
            raise ExchangeException(
                create_auth_error(
                    ErrorCode.AUTH_EXCHANGE_FAILED,
                    f"トークン交換が拒否されました (HTTP {response.status_code}): {response.text[:200]}",
                    details={"status_code": response.status_code},
                )
            )

        return parse_token_response(response.text, response.headers.get("content-type"))
