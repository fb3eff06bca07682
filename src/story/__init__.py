"""story - ブログホスティングサービス向けCLIクライアント"""

__version__ = "0.3.0"
