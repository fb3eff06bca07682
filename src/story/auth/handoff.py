"""リスナーと待機側の間で値を1つだけ受け渡す仕組み。"""

from __future__ import annotations

import threading


class Handoff:
    """最初に渡された値だけを保持する単一スロット。

    ``offer`` は決してブロックせず、2回目以降の呼び出しは何もしない。
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._event = threading.Event()
        self._value: str | None = None

    def offer(self, value: str) -> bool:
        """値を渡す。受理された場合のみ True を返す。"""
        with self._lock:
            if self._event.is_set():
                return False
            self._value = value
            self._event.set()
            return True

    def wait(self, timeout: float | None = None) -> str | None:
        """値が届くか timeout 秒が経過するまで待つ。"""
        if not self._event.wait(timeout):
            return None
        return self._value

    @property
    def delivered(self) -> bool:
        return self._event.is_set()
