"""
エラー定義

storyで使用されるエラーコードと例外クラス
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(Enum):
    """エラーコード

    カテゴリ別にエラーコードを定義:
    - CONFIG_xxx: 設定エラー
    - AUTH_xxx: 認証フローエラー
    - API_xxx: APIエラー
    - POST_xxx: 投稿作成エラー
    """
    # 設定エラー
    CONFIG_MISSING = "CONFIG_001"
    CONFIG_INVALID_VALUE = "CONFIG_002"

    # 認証フローエラー
    AUTH_LISTENER_BIND = "AUTH_001"
    AUTH_EXCHANGE_FAILED = "AUTH_002"
    AUTH_TIMEOUT = "AUTH_003"
    AUTH_PERSIST_FAILED = "AUTH_004"
    AUTH_MISSING_IDENTITY = "AUTH_005"

    # APIエラー
    API_TIMEOUT = "API_001"
    API_ERROR = "API_002"
    API_TRANSPORT = "API_003"

    # 投稿作成エラー
    POST_NO_FILES = "POST_001"
    POST_NOTHING_TO_DO = "POST_002"
    POST_READ_FAILED = "POST_003"


@dataclass
class StoryError:
    """storyエラー情報

    Attributes:
        code: エラーコード文字列
        message: エラーメッセージ
        details: 追加のエラー詳細情報
        recoverable: 再実行で復旧可能かどうか
    """
    code: str
    message: str
    details: Optional[Dict[str, Any]] = None
    recoverable: bool = False
    log_level: int = logging.ERROR


class StoryException(Exception):
    """story例外クラス

    StoryErrorをラップする例外クラス
    """

    def __init__(self, error: StoryError):
        """StoryExceptionを初期化

        Args:
            error: StoryErrorインスタンス
        """
        self.error = error
        self.log_level = error.log_level
        super().__init__(f"[{error.code}] {error.message}")


class ConfigException(StoryException):
    """設定・資格情報の読み込みに関する例外"""


class AuthException(StoryException):
    """認証フロー全般の例外"""


class ListenerBindException(AuthException):
    """コールバック用ポートをbindできなかった"""


class ExchangeException(AuthException):
    """認可コードとアクセストークンの交換に失敗した"""


class AuthorizationTimeoutException(AuthException):
    """制限時間内にコールバックが届かなかった"""


class PersistException(AuthException):
    """取得したトークンを保存できなかった"""


class ApiException(StoryException):
    """ブログAPI呼び出しの例外"""


class PostException(StoryException):
    """投稿本文の組み立てに関する例外"""


ERROR_CODE_LOG_LEVEL: Dict[ErrorCode, int] = {
    ErrorCode.AUTH_EXCHANGE_FAILED: logging.WARNING,
    ErrorCode.AUTH_TIMEOUT: logging.WARNING,
    ErrorCode.AUTH_LISTENER_BIND: logging.ERROR,
    ErrorCode.AUTH_PERSIST_FAILED: logging.CRITICAL,
}

_RECOVERABLE_AUTH_CODES = (
    ErrorCode.AUTH_EXCHANGE_FAILED,
    ErrorCode.AUTH_TIMEOUT,
    ErrorCode.AUTH_PERSIST_FAILED,
)


# よく使用されるエラーのファクトリ関数
def create_config_error(
    message: str,
    details: Optional[Dict[str, Any]] = None,
    code: ErrorCode = ErrorCode.CONFIG_MISSING,
) -> StoryError:
    """設定エラーを作成

    Args:
        message: エラーメッセージ
        details: 追加詳細
        code: エラーコード（既定は CONFIG_MISSING）

    Returns:
        StoryError: 設定エラー
    """
    return StoryError(
        code=code.value,
        message=message,
        details=details,
        recoverable=False,
        log_level=logging.ERROR,
    )


def create_auth_error(
    code: ErrorCode,
    message: str,
    details: Optional[Dict[str, Any]] = None,
) -> StoryError:
    """認証フローエラーを作成

    交換失敗・タイムアウト・保存失敗はフローの再実行で復旧できるため
    recoverable として扱う。

    Args:
        code: エラーコード
        message: エラーメッセージ
        details: 追加詳細

    Returns:
        StoryError: 認証フローエラー
    """
    return StoryError(
        code=code.value,
        message=message,
        details=details,
        recoverable=code in _RECOVERABLE_AUTH_CODES,
        log_level=ERROR_CODE_LOG_LEVEL.get(code, logging.ERROR),
    )


def create_api_error(
    code: ErrorCode,
    message: str,
    details: Optional[Dict[str, Any]] = None,
    recoverable: bool = True,
) -> StoryError:
    """APIエラーを作成

    Args:
        code: エラーコード
        message: エラーメッセージ
        details: 追加詳細
        recoverable: 復旧可能かどうか

    Returns:
        StoryError: APIエラー
    """
    return StoryError(
        code=code.value,
        message=message,
        details=details,
        recoverable=recoverable,
        log_level=ERROR_CODE_LOG_LEVEL.get(code, logging.ERROR),
    )


def create_post_error(code: ErrorCode, message: str) -> StoryError:
    """投稿作成エラーを作成"""
    return StoryError(code=code.value, message=message, recoverable=False)
