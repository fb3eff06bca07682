"""ブログホスティングサービスのREST APIクライアント。"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import httpx

from story.api.models import Attachment, Post
from story.config.settings import DEFAULT_PROVIDER_URL
from story.errors import ApiException, ErrorCode, create_api_error

logger = logging.getLogger(__name__)


def parse_error(response: httpx.Response) -> str:
    """エラーレスポンスを ``code <status>: <message>`` 形式の文字列にする。"""

    try:
        payload = response.json()
    except (json.JSONDecodeError, ValueError) as exc:
        return str(exc)

    body = payload.get("tistory") if isinstance(payload, dict) else None
    if not isinstance(body, dict):
        return f"code {response.status_code}: {response.text[:200]}"
    return f"code {body.get('status', response.status_code)}: {body.get('error_message', '')}"


class TistoryClient:
    """アクセストークンを使ってブログAPIを呼び出す。"""

    def __init__(
        self,
        access_token: str,
        provider_url: str = DEFAULT_PROVIDER_URL,
        timeout_seconds: float = 30.0,
        http_client: httpx.Client | None = None,
    ) -> None:
        """TistoryClientを初期化する。

        Args:
            access_token: 認可フローで取得したアクセストークン。
            provider_url: プロバイダのベースURL。
            timeout_seconds: リクエストのタイムアウト。
            http_client: テスト用に差し替えるHTTPクライアント。
        """

        self._access_token = access_token
        self._base_url = provider_url.rstrip("/")
        self._client = http_client or httpx.Client(timeout=timeout_seconds)
        self._owns_client = http_client is None

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> TistoryClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def info(self) -> dict[str, Any]:
        """ブログ情報を返す。"""
        return self._request("GET", "/apis/blog/info")

    def read_post(self, blog: str, post_id: str) -> Post:
        """投稿を1件読み込む。"""
        payload = self._request("GET", "/apis/post/read", params={"blogName": blog, "postId": post_id})
        item = payload.get("tistory", {}).get("item")
        if not isinstance(item, dict):
            raise ApiException(
                create_api_error(ErrorCode.API_ERROR, f"投稿 {post_id} の内容がレスポンスに含まれていません。")
            )
        return Post.from_item(item)

    def write_post(self, blog: str, title: str, content: str) -> str:
        """投稿を新規作成し、投稿のURLを返す。"""
        payload = self._request(
            "POST",
            "/apis/post/write",
            data={"blogName": blog, "title": title, "content": content},
        )
        url = str(payload.get("tistory", {}).get("url", ""))
        logger.info("post url: %s", url)
        return url

    def modify_post(self, blog: str, post_id: str, title: str, content: str) -> str:
        """既存の投稿を更新し、投稿のURLを返す。"""
        payload = self._request(
            "POST",
            "/apis/post/modify",
            data={"blogName": blog, "postId": post_id, "title": title, "content": content},
        )
        url = str(payload.get("tistory", {}).get("url", ""))
        logger.info("post url: %s", url)
        return url

    def attach(self, blog: str, path: Path) -> Attachment:
        """画像ファイルをアップロードする。"""
        with path.open("rb") as file:
            payload = self._request(
                "POST",
                "/apis/post/attach",
                data={"blogName": blog},
                files={"uploadedfile": (path.name, file)},
            )
        body = payload.get("tistory", {})
        attachment = Attachment(url=str(body.get("url", "")), replacer=str(body.get("replacer", "")))
        logger.info("image url is %s", attachment.url)
        return attachment

    def _request(
        self,
        method: str,
        path: str,
        params: dict[str, str] | None = None,
        data: dict[str, str] | None = None,
        files: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        common = {"access_token": self._access_token, "output": "json"}
        request_kwargs: dict[str, Any]
        if method == "GET":
            request_kwargs = {"params": {**common, **(params or {})}}
        else:
            # 本文が長くなるためフォーム（添付時はmultipart）で送る
            request_kwargs = {"data": {**common, **(data or {})}}
            if files:
                request_kwargs["files"] = files

        url = f"{self._base_url}{path}"
        try:
            response = self._client.request(method, url, **request_kwargs)
        except httpx.TimeoutException as exc:
            raise ApiException(
                create_api_error(ErrorCode.API_TIMEOUT, f"APIがタイムアウトしました: {path}")
            ) from exc
        except httpx.HTTPError as exc:
            raise ApiException(
                create_api_error(ErrorCode.API_TRANSPORT, f"APIリクエストに失敗しました: {exc}")
            ) from exc

        if response.status_code != httpx.codes.OK:
            raise ApiException(
                create_api_error(
                    ErrorCode.API_ERROR,
                    parse_error(response),
                    details={"status_code": response.status_code, "path": path},
                    recoverable=False,
                )
            )

        try:
            payload = response.json()
        except (json.JSONDecodeError, ValueError) as exc:
            raise ApiException(
                create_api_error(ErrorCode.API_ERROR, f"APIレスポンスを解析できません: {exc}")
            ) from exc
        if not isinstance(payload, dict):
            raise ApiException(create_api_error(ErrorCode.API_ERROR, "APIレスポンスの形式が不正です。"))
        return payload
