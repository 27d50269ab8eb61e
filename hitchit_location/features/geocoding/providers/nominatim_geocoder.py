"""OpenStreetMap Nominatim 実装"""
import asyncio
from typing import Any, Optional

from ..domain.models import Coordinates, DetailedAddress, Location, SearchSuggestion
from ....shared.exceptions.errors import (
    ConfigurationError,
    HTTPError,
    InvalidQueryError,
    NoResultsError,
    ProviderUnavailableError,
)
from ....shared.http.client import HTTPClient
from ....shared.http.rate_limiter import RateLimiter
from ....shared.logging.config import get_logger
from .base import GeocodingProvider, validate_coordinates, validate_query

logger = get_logger(__name__)

NOMINATIM_BASE_URL = "https://nominatim.openstreetmap.org"


def parse_address_details(address: dict[str, Any]) -> DetailedAddress:
    """Nominatim の addressdetails を DetailedAddress に変換"""
    street = " ".join(
        part for part in (address.get("house_number"), address.get("road")) if part
    )
    return DetailedAddress(
        city=address.get("city") or address.get("town") or address.get("village"),
        state=address.get("state"),
        street=street or None,
        zip_code=address.get("postcode"),
    )


def parse_place(place: dict[str, Any]) -> Location:
    """検索・逆ジオコーディング結果の1件を Location に変換"""
    try:
        coordinates = Coordinates(lat=float(place["lat"]), lng=float(place["lon"]))
    except (KeyError, TypeError, ValueError) as e:
        raise NoResultsError(f"Nominatim result without coordinates: {place.get('place_id')}") from e

    if not place.get("display_name"):
        raise NoResultsError(f"Nominatim result without display_name: {place.get('place_id')}")

    osm_id = place.get("osm_id")
    return Location(
        address=place["display_name"],
        coordinates=coordinates,
        detailed_address=parse_address_details(place.get("address") or {}),
        place_id=str(osm_id) if osm_id is not None else None,
    )


class NominatimGeocoder(GeocodingProvider):
    """
    OpenStreetMap Nominatim 実装

    APIキーは不要だが、利用規約により識別可能な User-Agent が必須。
    公開インスタンスは1リクエスト/秒に制限されるため RateLimiter を通す
    """

    name = "nominatim"

    def __init__(
        self,
        user_agent: Optional[str],
        base_url: str = NOMINATIM_BASE_URL,
        country_codes: Optional[str] = None,
        timeout: float = 10.0,
        rate_limiter: Optional[RateLimiter] = None,
        http_client: Optional[HTTPClient] = None,
    ) -> None:
        """
        Args:
            user_agent: User-Agentヘッダー（必須）
            base_url: NominatimのベースURL
            country_codes: 検索対象の国コード（例: "us"）
            timeout: リクエストタイムアウト（秒）
            rate_limiter: レート制限（省略時は1リクエスト/秒）
            http_client: HTTPクライアント（省略時はリトライなしで生成）

        Raises:
            ConfigurationError: User-Agentが未設定の場合
        """
        if not user_agent:
            raise ConfigurationError("Nominatim requires an identifying User-Agent")

        self.base_url = base_url.rstrip("/")
        self.country_codes = country_codes
        self.rate_limiter = rate_limiter or RateLimiter(requests_per_second=1.0)
        self.http_client = http_client or HTTPClient(
            timeout=timeout, max_retries=0, user_agent=user_agent
        )

        logger.info(f"NominatimGeocoder initialized: base_url={self.base_url}")

    async def forward_geocode(self, address_text: str) -> Location:
        query = validate_query(address_text)
        places = await self._search(query, limit=1)
        if not places:
            raise NoResultsError(f"No geocoding results for address: {query}")
        return parse_place(places[0])

    async def reverse_geocode(self, lat: float, lng: float) -> Location:
        validate_coordinates(lat, lng)
        body = await self._get(
            "/reverse",
            {"format": "json", "lat": lat, "lon": lng, "addressdetails": 1},
        )
        if not isinstance(body, dict) or body.get("error") or not body.get("display_name"):
            raise NoResultsError(f"No reverse geocoding results for: ({lat}, {lng})")

        location = parse_place(body)
        return Location(
            address=location.address,
            coordinates=Coordinates(lat=float(lat), lng=float(lng)),
            detailed_address=location.detailed_address,
            place_id=location.place_id,
        )

    async def suggest(self, query: str, limit: int = 5) -> list[SearchSuggestion]:
        text = validate_query(query)
        places = await self._search(text, limit=limit)

        suggestions = []
        for place in places:
            try:
                location = parse_place(place)
            except NoResultsError as e:
                logger.debug(f"Skipping unusable Nominatim result: {e}")
                continue
            suggestions.append(
                SearchSuggestion(
                    address=location.address,
                    provider=self.name,
                    coordinates=location.coordinates,
                    place_id=location.place_id,
                    detailed_address=location.detailed_address,
                )
            )
        return suggestions

    async def _search(self, query: str, limit: int) -> list[dict[str, Any]]:
        params: dict[str, Any] = {
            "format": "json",
            "addressdetails": 1,
            "limit": limit,
            "q": query,
        }
        if self.country_codes:
            params["countrycodes"] = self.country_codes

        body = await self._get("/search", params)
        return list(body) if isinstance(body, list) else []

    async def _get(self, path: str, params: dict[str, Any]) -> Any:
        def request() -> Any:
            self.rate_limiter.wait()
            return self.http_client.get_json(f"{self.base_url}{path}", params=params)

        try:
            return await asyncio.to_thread(request)
        except HTTPError as e:
            if e.status_code == 400:
                raise InvalidQueryError(f"Nominatim rejected the request: {params}") from e
            raise ProviderUnavailableError(f"Nominatim error: {e}") from e
