"""
ブログAPIのデータモデル

プロバイダは数値項目も文字列で返すため、読み込み時に変換する
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional


def _to_int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


@dataclass
class Post:
    """ブログの投稿

    Attributes:
        id: 投稿ID
        title: タイトル
        content: 本文（HTML）
        category_id: カテゴリID
        post_url: 投稿のURL
        visibility: 公開範囲（0: 非公開, 1: 保護, 3: 公開）
        accept_comment: コメント受付
        accept_trackback: トラックバック受付
        comments: コメント数
        trackbacks: トラックバック数
        date: 作成日時（UNIX時間の文字列）
        tags: タグ一覧
    """
    id: str
    title: str
    content: str = ""
    category_id: int = 0
    post_url: str = ""
    visibility: int = 0
    accept_comment: int = 0
    accept_trackback: int = 0
    comments: int = 0
    trackbacks: int = 0
    date: str = ""
    tags: Optional[List[str]] = None

    @classmethod
    def from_item(cls, item: Dict[str, Any]) -> "Post":
        """APIレスポンスの item から Post を作成"""
        tags = item.get("tags")
        tag_list: Optional[List[str]] = None
        if isinstance(tags, dict):
            raw = tags.get("tag")
            if isinstance(raw, list):
                tag_list = [str(tag) for tag in raw]
            elif isinstance(raw, str):
                tag_list = [raw]

        return cls(
            id=str(item.get("id", "")),
            title=str(item.get("title", "")),
            content=str(item.get("content", "")),
            category_id=_to_int(item.get("categoryId")),
            post_url=str(item.get("postUrl", "")),
            visibility=_to_int(item.get("visibility")),
            accept_comment=_to_int(item.get("acceptComment")),
            accept_trackback=_to_int(item.get("acceptTrackback")),
            comments=_to_int(item.get("comments")),
            trackbacks=_to_int(item.get("trackbacks")),
            date=str(item.get("date", "")),
            tags=tag_list,
        )


@dataclass
class Attachment:
    """アップロード済みの添付ファイル

    Attributes:
        url: 画像のURL
        replacer: 本文に埋め込む置換用マークアップ
    """
    url: str
    replacer: str
