"""認可URLの組み立てとトークン応答の解析。"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING
from urllib.parse import parse_qs

import httpx

from story.errors import ErrorCode, ExchangeException, create_auth_error

if TYPE_CHECKING:
    from story.auth.models import ClientIdentity, FlowType

LOOPBACK_HOST = "127.0.0.1"
AUTHORIZE_PATH = "/oauth/authorize"
ACCESS_TOKEN_PATH = "/oauth/access_token"


def build_redirect_uri(port: int, path: str) -> str:
    return f"http://{LOOPBACK_HOST}:{port}/{path.lstrip('/')}"


def build_authorize_url(provider_url: str, flow: FlowType, client_id: str, redirect_uri: str) -> str:
    """ブラウザで開く authorize URL を返す。"""
    params = {
        "response_type": flow.response_type,
        "client_id": client_id,
        "redirect_uri": redirect_uri,
    }
    query = httpx.QueryParams(params)
    return f"{provider_url.rstrip('/')}{AUTHORIZE_PATH}?{query}"


def build_exchange_url(provider_url: str, identity: ClientIdentity, redirect_uri: str, code: str) -> str:
    """認可コードをアクセストークンに交換するURLを返す。"""
    params = {
        "client_id": identity.client_id,
        "client_secret": identity.client_secret or "",
        "redirect_uri": redirect_uri,
        "code": code,
        "grant_type": "authorization_code",
    }
    query = httpx.QueryParams(params)
    return f"{provider_url.rstrip('/')}{ACCESS_TOKEN_PATH}?{query}"


def parse_token_response(body: str, content_type: str | None = None) -> str:
    """トークン交換レスポンスからアクセストークンを取り出す。

    プロバイダは ``access_token=<value>`` 形式で返すが、JSONで返された場合も
    ``access_token`` キーを読む。トークンが見つからない場合は本文の形に関わらず
    失敗として扱う。

    Args:
        body: レスポンス本文。
        content_type: Content-Type ヘッダ。

    Returns:
        str: アクセストークン。

    Raises:
        ExchangeException: 本文からトークンを取り出せない場合。
    """

    text = body.strip()
    token: object = None
    if (content_type and "json" in content_type.lower()) or text.startswith("{"):
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ExchangeException(
                create_auth_error(
                    ErrorCode.AUTH_EXCHANGE_FAILED,
                    "トークン応答のJSONを解析できません。",
                    details={"reason": str(exc)},
                )
            ) from exc
        if isinstance(payload, dict):
            token = payload.get("access_token")
    else:
        values = parse_qs(text, keep_blank_values=True).get("access_token")
        if values:
            token = values[0]

    if not isinstance(token, str) or not token:
        raise ExchangeException(
            create_auth_error(
                ErrorCode.AUTH_EXCHANGE_FAILED,
                "トークン応答に access_token が含まれていません。",
                details={"body": text[:200]},
            )
        )
    return token
