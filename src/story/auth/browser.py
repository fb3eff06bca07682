"""既定のブラウザでURLを開く機能。"""

from __future__ import annotations

from abc import ABC, abstractmethod
import logging
import webbrowser

logger = logging.getLogger(__name__)


class BrowserLauncher(ABC):
    """URLを開く機能の抽象基底クラス。失敗しても例外は送出しない。"""

    @abstractmethod
    def launch(self, url: str) -> bool:
        """URLを開く。開けた場合のみ True を返す。"""


class WebBrowserLauncher(BrowserLauncher):
    """webbrowser モジュールでOSごとの既定ハンドラを起動する。"""

    def launch(self, url: str) -> bool:
        try:
            opened = webbrowser.open(url, new=2)
        except webbrowser.Error as exc:
            logger.warning("failed to launch a browser: %s", exc)
            return False
        if not opened:
            logger.warning("no runnable browser was found")
        return opened


class NullBrowserLauncher(BrowserLauncher):
    """何も起動せず、要求されたURLを記録するだけのランチャー。"""

    def __init__(self) -> None:
        self.launched: list[str] = []

    def launch(self, url: str) -> bool:
        self.launched.append(url)
        return False
