"""
テーマ抽出の例外定義
取得・解析の失敗はすべてこの階層で表現し、呼び出し側はURL単位で握りつぶすか、
オーケストレーターのフォールバックに委ねる。
"""

from __future__ import annotations


class ThemeExtractionError(Exception):
    """テーマ抽出系の基底例外"""


class SecurityError(ThemeExtractionError):
    """許可されないスキーム・ホスト名・IPアドレスへのアクセス"""


class NetworkError(ThemeExtractionError):
    """タイムアウト、接続失敗、2xx/3xx以外のステータス"""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class SizeLimitError(ThemeExtractionError):
    """レスポンス本文またはスタイルシートがサイズ上限を超えた"""

    def __init__(self, message: str, size: int | None = None, limit: int | None = None):
        super().__init__(message)
        self.size = size
        self.limit = limit


class RedirectLimitError(ThemeExtractionError):
    """リダイレクト回数が上限を超えた"""


class CSSParseError(ThemeExtractionError):
    """個別のCSSルールが解析できなかった"""


class InvalidURLError(ThemeExtractionError, ValueError):
    """URLとして解釈できない入力。外部の呼び出し元まで伝播する唯一の例外"""
