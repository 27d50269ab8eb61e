"""キャッシュ付きジオコーダー"""

from ..domain.models import Location, SearchSuggestion
from ....shared.logging.config import get_logger
from ....shared.utils.text import normalize_address
from .base import GeocodingProvider, validate_coordinates, validate_query

logger = get_logger(__name__)


class CacheGeocoder(GeocodingProvider):
    """
    キャッシュ付きジオコーダー

    重複する住所・座標のAPI呼び出しを削減するため、成功した結果のみを
    メモリ内にキャッシュする。失敗はキャッシュせず、そのまま送出するので
    フォールバックの判定は呼び出し側で行える
    """

    def __init__(self, geocoder: GeocodingProvider) -> None:
        """
        Args:
            geocoder: ベースとなるジオコーダー
        """
        self.geocoder = geocoder
        self.name = geocoder.name
        self.cache: dict[str, Location] = {}
        self.hit_count = 0
        self.miss_count = 0

        logger.info(f"CacheGeocoder initialized for provider: {self.name}")

    async def forward_geocode(self, address_text: str) -> Location:
        """
        住所をジオコーディング（キャッシュあり）

        Args:
            address_text: 住所文字列

        Returns:
            Location: 座標付きの地点
        """
        query = validate_query(address_text)
        cache_key = f"fwd:{normalize_address(query)}"

        if cache_key in self.cache:
            self.hit_count += 1
            logger.debug(f"Cache hit for address: {query}")
            return self.cache[cache_key]

        self.miss_count += 1
        logger.debug(f"Cache miss for address: {query}")

        location = await self.geocoder.forward_geocode(query)
        self.cache[cache_key] = location
        return location

    async def reverse_geocode(self, lat: float, lng: float) -> Location:
        """
        座標から住所を取得（逆ジオコーディング、キャッシュあり）

        座標は小数点以下6桁で丸めてキーにする
        """
        validate_coordinates(lat, lng)
        cache_key = f"rev:{lat:.6f},{lng:.6f}"

        if cache_key in self.cache:
            self.hit_count += 1
            logger.debug(f"Cache hit for coordinates: ({lat}, {lng})")
            return self.cache[cache_key]

        self.miss_count += 1
        logger.debug(f"Cache miss for coordinates: ({lat}, {lng})")

        location = await self.geocoder.reverse_geocode(lat, lng)
        self.cache[cache_key] = location
        return location

    async def suggest(self, query: str, limit: int = 5) -> list[SearchSuggestion]:
        # 補完候補のキャッシュは SuggestionCache が担当する
        return await self.geocoder.suggest(query, limit=limit)

    def clear_cache(self) -> None:
        """キャッシュをクリア"""
        cache_size = len(self.cache)
        self.cache.clear()
        self.hit_count = 0
        self.miss_count = 0
        logger.info(f"Cache cleared: {cache_size} entries removed")

    def get_cache_stats(self) -> dict[str, float]:
        """
        キャッシュ統計を取得

        Returns:
            dict[str, float]: キャッシュ統計（サイズ、ヒット数、ミス数、ヒット率）
        """
        total_requests = self.hit_count + self.miss_count
        hit_rate = (self.hit_count / total_requests * 100) if total_requests > 0 else 0.0

        return {
            "cache_size": len(self.cache),
            "hit_count": self.hit_count,
            "miss_count": self.miss_count,
            "total_requests": total_requests,
            "hit_rate_percent": round(hit_rate, 2),
        }
