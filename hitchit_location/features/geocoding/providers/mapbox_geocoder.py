"""Mapbox Geocoding API実装"""
import asyncio
from typing import Any, Optional
from urllib.parse import quote

from ..domain.models import Coordinates, DetailedAddress, Location, SearchSuggestion
from ....shared.exceptions.errors import (
    ConfigurationError,
    HTTPError,
    InvalidQueryError,
    NoResultsError,
    ProviderUnavailableError,
)
from ....shared.http.client import HTTPClient
from ....shared.logging.config import get_logger
from .base import GeocodingProvider, validate_coordinates, validate_query

logger = get_logger(__name__)

MAPBOX_GEOCODING_URL = "https://api.mapbox.com/geocoding/v5/mapbox.places"


def parse_feature(feature: dict[str, Any]) -> Location:
    """
    Mapbox の Feature を Location に変換

    center は [経度, 緯度] の順
    """
    center = feature.get("center") or []
    if len(center) != 2:
        raise NoResultsError(f"Mapbox feature without center: {feature.get('id')}")

    context: dict[str, dict[str, Any]] = {}
    for item in feature.get("context", []):
        prefix = str(item.get("id", "")).split(".", 1)[0]
        context.setdefault(prefix, item)

    state = None
    region = context.get("region")
    if region:
        # short_code は "US-CA" 形式
        short_code = region.get("short_code") or ""
        state = short_code.split("-", 1)[1] if "-" in short_code else region.get("text")

    street = None
    if feature.get("text") and "address" in (feature.get("place_type") or []):
        street = " ".join(part for part in (feature.get("address"), feature.get("text")) if part)

    address = feature.get("place_name") or feature.get("text")
    if not address:
        raise NoResultsError(f"Mapbox feature without place name: {feature.get('id')}")

    return Location(
        address=address,
        coordinates=Coordinates(lat=float(center[1]), lng=float(center[0])),
        detailed_address=DetailedAddress(
            city=context.get("place", {}).get("text"),
            state=state,
            street=street,
            zip_code=context.get("postcode", {}).get("text"),
        ),
        place_id=feature.get("id"),
    )


class MapboxGeocoder(GeocodingProvider):
    """Mapbox Geocoding API v5 実装"""

    name = "mapbox"

    def __init__(
        self,
        access_token: Optional[str],
        http_client: Optional[HTTPClient] = None,
        country: Optional[str] = None,
    ) -> None:
        """
        Args:
            access_token: Mapbox アクセストークン
            http_client: HTTPクライアント（リトライなしで構成すること）
            country: 検索対象の国コード（カンマ区切り）

        Raises:
            ConfigurationError: アクセストークンが未設定の場合
        """
        if not access_token:
            raise ConfigurationError("Mapbox access token is required")

        self.access_token = access_token
        self.http_client = http_client or HTTPClient(max_retries=0)
        self.country = country

        logger.info("MapboxGeocoder initialized")

    async def forward_geocode(self, address_text: str) -> Location:
        """
        住所をジオコーディング

        Raises:
            InvalidQueryError: 住所が空、またはAPIがクエリを拒否した場合
            NoResultsError: 一致する結果がない場合
            ProviderUnavailableError: APIリクエストに失敗した場合
        """
        query = validate_query(address_text)
        features = await self._fetch_features(query, limit=1, autocomplete=False)
        if not features:
            raise NoResultsError(f"No geocoding results for address: {query}")

        return parse_feature(features[0])

    async def reverse_geocode(self, lat: float, lng: float) -> Location:
        """座標から住所を取得（逆ジオコーディング）"""
        validate_coordinates(lat, lng)
        features = await self._fetch_features(f"{lng},{lat}", limit=1, types="address")
        if not features:
            raise NoResultsError(f"No reverse geocoding results for: ({lat}, {lng})")

        location = parse_feature(features[0])
        # 逆ジオコーディングでは入力座標を正とする
        return Location(
            address=location.address,
            coordinates=Coordinates(lat=float(lat), lng=float(lng)),
            detailed_address=location.detailed_address,
            place_id=location.place_id,
        )

    async def suggest(self, query: str, limit: int = 5) -> list[SearchSuggestion]:
        """autocomplete=true で補完候補を取得（座標付き）"""
        text = validate_query(query)
        features = await self._fetch_features(text, limit=limit, autocomplete=True)

        suggestions = []
        for feature in features:
            try:
                location = parse_feature(feature)
            except NoResultsError:
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

    async def _fetch_features(
        self,
        search_text: str,
        limit: int,
        autocomplete: Optional[bool] = None,
        types: Optional[str] = None,
    ) -> list[dict[str, Any]]:
        url = f"{MAPBOX_GEOCODING_URL}/{quote(search_text, safe=',')}.json"
        params: dict[str, Any] = {"access_token": self.access_token, "limit": limit}
        if autocomplete is not None:
            params["autocomplete"] = "true" if autocomplete else "false"
        if types:
            params["types"] = types
        if self.country:
            params["country"] = self.country

        try:
            body = await asyncio.to_thread(self.http_client.get_json, url, params=params)
        except HTTPError as e:
            if e.status_code in (400, 422):
                raise InvalidQueryError(f"Mapbox rejected the query: {search_text}") from e
            raise ProviderUnavailableError(f"Mapbox geocoding error: {e}") from e

        return list(body.get("features") or []) if isinstance(body, dict) else []
