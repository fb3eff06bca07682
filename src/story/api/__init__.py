"""ブログAPIクライアント"""

from story.api.client import TistoryClient, parse_error
from story.api.models import Attachment, Post

__all__ = ["Attachment", "Post", "TistoryClient", "parse_error"]
