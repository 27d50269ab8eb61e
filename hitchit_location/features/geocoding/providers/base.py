"""ジオコーディングプロバイダーの共通インターフェース"""
import math
from abc import ABC, abstractmethod

from ..domain.models import Location, SearchSuggestion
from ....shared.exceptions.errors import InvalidCoordinatesError, InvalidQueryError
from ....shared.utils.text import normalize_text


def validate_query(address_text: str) -> str:
    """
    検索文字列を検証し、正規化した文字列を返す

    Raises:
        InvalidQueryError: 空文字列・空白のみの場合
    """
    query = normalize_text(address_text)
    if not query:
        raise InvalidQueryError("Address text must not be empty")
    return query


def validate_coordinates(lat: float, lng: float) -> None:
    """
    緯度・経度の範囲を検証

    Raises:
        InvalidCoordinatesError: lat∉[-90,90] または lng∉[-180,180] の場合
    """
    try:
        lat_value = float(lat)
        lng_value = float(lng)
    except (TypeError, ValueError) as e:
        raise InvalidCoordinatesError(f"Coordinates must be numeric: ({lat}, {lng})") from e

    if math.isnan(lat_value) or math.isnan(lng_value):
        raise InvalidCoordinatesError(f"Coordinates must not be NaN: ({lat}, {lng})")
    if not -90.0 <= lat_value <= 90.0:
        raise InvalidCoordinatesError(f"Latitude out of range [-90, 90]: {lat}")
    if not -180.0 <= lng_value <= 180.0:
        raise InvalidCoordinatesError(f"Longitude out of range [-180, 180]: {lng}")


class GeocodingProvider(ABC):
    """
    ジオコーディングプロバイダー

    実装クラスはバックエンド固有のリクエスト・レスポンス形式を隠蔽し、
    失敗を InvalidQueryError / InvalidCoordinatesError /
    ProviderUnavailableError / NoResultsError のいずれかに変換する。
    共有状態は変更しない。認証情報の欠如はコンストラクタで
    ConfigurationError とする。
    """

    name: str = "base"

    @abstractmethod
    async def forward_geocode(self, address_text: str) -> Location:
        """住所 → 座標"""

    @abstractmethod
    async def reverse_geocode(self, lat: float, lng: float) -> Location:
        """座標 → 住所"""

    @abstractmethod
    async def suggest(self, query: str, limit: int = 5) -> list[SearchSuggestion]:
        """入力途中の文字列に対する補完候補"""
