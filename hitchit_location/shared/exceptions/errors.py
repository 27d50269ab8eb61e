"""カスタム例外定義"""
from typing import Optional


class LocationServiceError(Exception):
    """位置情報サービス基底例外"""

    pass


class HTTPError(LocationServiceError):
    """HTTP関連のエラー"""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class GeocodingError(LocationServiceError):
    """ジオコーディングエラー"""

    pass


class InvalidQueryError(GeocodingError):
    """空の検索文字列など、呼び出し側の入力不正（リトライ不可）"""

    pass


class InvalidCoordinatesError(GeocodingError):
    """緯度・経度が範囲外（リトライ不可）"""

    pass


class ProviderUnavailableError(GeocodingError):
    """プロバイダーに到達できない（ネットワーク、クォータ、認証）"""

    pass


class NoResultsError(GeocodingError):
    """プロバイダーには到達したが一致する結果がない"""

    pass


class StorageError(LocationServiceError):
    """ストレージ関連のエラー"""

    pass


class DuplicateNameError(StorageError):
    """同名（大文字小文字を区別しない）のお気に入りが既に存在する"""

    pass


class ConfigurationError(LocationServiceError):
    """設定エラー"""

    pass


class ValidationError(LocationServiceError):
    """バリデーションエラー"""

    pass
