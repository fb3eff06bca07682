"""Markdownファイルを投稿用HTMLに変換し、ローカル画像をアップロードする。"""

from __future__ import annotations

import html
import logging
from pathlib import Path
import re
from urllib.parse import unquote, urlparse

import markdown2

from story.api.client import TistoryClient
from story.errors import ApiException, ErrorCode, PostException, create_post_error

logger = logging.getLogger(__name__)

MARKDOWN_EXTRAS = [
    "fenced-code-blocks",
    "footnotes",
    "header-ids",
    "smarty-pants",
    "strike",
    "tables",
]

_IMG_TAG = re.compile(r"<img\b[^>]*>", re.IGNORECASE)
_SRC_ATTR = re.compile(r"""\bsrc\s*=\s*(?:"([^"]*)"|'([^']*)')""", re.IGNORECASE)


def is_local_link(link: str) -> bool:
    """スキームを持たない相対パスだけをローカル画像として扱う。"""
    if not link or link.startswith(("/", "\\")):
        return False
    parsed = urlparse(link)
    return not (parsed.scheme or parsed.netloc)


class PostRenderer:
    """Markdown を ``<div class="markdown">`` で囲んだ投稿本文に変換する。

    ローカル画像はアップロードし、``<img>`` をプロバイダが返す置換用
    マークアップに差し替える。アップロードに失敗した画像は元の ``<img>`` のまま残す。
    """

    def __init__(self, client: TistoryClient | None, blog: str, dry_run: bool = False) -> None:
        """PostRendererを初期化する。

        Args:
            client: 画像アップロードに使うAPIクライアント（dry_run時はNone可）。
            blog: 投稿先のブログ名。
            dry_run: Trueの場合は画像をアップロードしない。
        """

        self._client = client
        self._blog = blog
        self._dry_run = dry_run or client is None

    def render_path(self, path: Path) -> str:
        """ファイルなら1件、ディレクトリなら直下の ``*.md`` を名前順に連結して変換する。"""

        if path.is_dir():
            files = sorted(path.glob("*.md"))
            if not files:
                raise PostException(
                    create_post_error(ErrorCode.POST_NO_FILES, f".md ファイルが見つかりません: {path}")
                )
            return "".join(self.render_file(file) for file in files)
        return self.render_file(path)

    def render_file(self, path: Path) -> str:
        logger.info("reading %s", path)
        try:
            source = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise PostException(
                create_post_error(ErrorCode.POST_READ_FAILED, f"{path} を読み込めません: {exc}")
            ) from exc

        body = self.render_markdown(source, path.parent)
        return f'<div class="markdown">{body}</div>'

    def render_markdown(self, source: str, working_dir: Path) -> str:
        rendered = str(markdown2.markdown(source, extras=MARKDOWN_EXTRAS))
        return _IMG_TAG.sub(lambda match: self._replace_image(match.group(0), working_dir), rendered)

    def _replace_image(self, tag: str, working_dir: Path) -> str:
        src_match = _SRC_ATTR.search(tag)
        if src_match is None:
            return tag
        link = html.unescape(src_match.group(1) or src_match.group(2) or "")
        if not is_local_link(link):
            return tag

        image_path = working_dir / unquote(link)
        client = self._client
        if self._dry_run or client is None:
            logger.info("dry run, skip uploading %s", image_path)
            return tag

        try:
            attachment = client.attach(self._blog, image_path)
        except (OSError, ApiException) as exc:
            logger.warning("uploading image file error: %s", exc)
            logger.warning("skip uploading file %s", link)
            return tag

        if not attachment.replacer:
            logger.warning("upload of %s returned no replacer, keeping the original tag", link)
            return tag
        return attachment.replacer
