"""投稿本文のレンダリング"""

from story.render.markdown import MARKDOWN_EXTRAS, PostRenderer, is_local_link

__all__ = ["MARKDOWN_EXTRAS", "PostRenderer", "is_local_link"]
