"""Google Maps Geocoding API実装"""
import asyncio
from typing import Any, Callable, Optional

import googlemaps
import requests

from ..domain.models import Coordinates, DetailedAddress, Location, SearchSuggestion
from ....shared.exceptions.errors import (
    ConfigurationError,
    InvalidQueryError,
    NoResultsError,
    ProviderUnavailableError,
)
from ....shared.logging.config import get_logger
from ....shared.utils.text import redact_secrets
from .base import GeocodingProvider, validate_coordinates, validate_query

logger = get_logger(__name__)


def reject_server_errors(response: requests.Response, *args: Any, **kwargs: Any) -> None:
    """
    5xx応答を例外にするresponseフック

    SDKは5xxを retry_timeout まで再試行するため、ここで打ち切って1回の試行にする。
    メッセージにはURL（APIキーを含む）を入れない
    """
    if response.status_code >= 500:
        raise requests.HTTPError(
            f"{response.status_code} Server Error from Google Maps", response=response
        )


def parse_address_components(components: list[dict[str, Any]]) -> DetailedAddress:
    """
    Google Maps の address_components を DetailedAddress に変換

    Args:
        components: ジオコーディング結果の address_components

    Returns:
        DetailedAddress: 住所の構成要素
    """
    by_type: dict[str, dict[str, Any]] = {}
    for component in components:
        for component_type in component.get("types", []):
            by_type.setdefault(component_type, component)

    def long_name(component_type: str) -> Optional[str]:
        component = by_type.get(component_type)
        return component.get("long_name") if component else None

    street_number = long_name("street_number")
    route = long_name("route")
    street = " ".join(part for part in (street_number, route) if part) or None

    state_component = by_type.get("administrative_area_level_1")
    state = state_component.get("short_name") if state_component else None

    return DetailedAddress(
        city=long_name("locality") or long_name("postal_town") or long_name("sublocality"),
        state=state,
        street=street,
        zip_code=long_name("postal_code"),
    )


class GoogleMapsGeocoder(GeocodingProvider):
    """Google Maps Geocoding / Places Autocomplete API実装"""

    name = "google"

    def __init__(self, api_key: Optional[str], timeout: float = 10.0) -> None:
        """
        Args:
            api_key: Google Maps API キー
            timeout: リクエストタイムアウト（秒）

        Raises:
            ConfigurationError: APIキーが未設定、またはクライアント生成に失敗した場合
        """
        if not api_key:
            raise ConfigurationError("Google Maps API key is required")

        try:
            # retry_timeout は試行全体の締め切りで、0 だと送信前に Timeout になる。
            # 5xx はフックで即失敗させ、1回のみ試行する
            self.client = googlemaps.Client(
                key=api_key,
                timeout=timeout,
                retry_timeout=timeout,
                retry_over_query_limit=False,
                requests_kwargs={"hooks": {"response": reject_server_errors}},
            )
            logger.info("GoogleMapsGeocoder initialized")
        except Exception as e:
            raise ConfigurationError(f"Failed to initialize Google Maps client: {e}") from e

    async def forward_geocode(self, address_text: str) -> Location:
        """
        住所をジオコーディング

        Args:
            address_text: 住所文字列

        Returns:
            Location: 座標付きの地点（最初の結果）

        Raises:
            InvalidQueryError: 住所が空の場合
            NoResultsError: 一致する結果がない場合
            ProviderUnavailableError: APIリクエストに失敗した場合
        """
        query = validate_query(address_text)
        logger.debug(f"Geocoding address: {query}")

        results = await self._call(self.client.geocode, query)
        if not results:
            raise NoResultsError(f"No geocoding results for address: {query}")

        result = results[0]
        location = result.get("geometry", {}).get("location", {})
        lat = location.get("lat")
        lng = location.get("lng")
        if lat is None or lng is None:
            raise NoResultsError(f"Invalid geocoding result (missing lat/lng): {query}")

        geocoded = Location(
            address=result.get("formatted_address") or query,
            coordinates=Coordinates(lat=float(lat), lng=float(lng)),
            detailed_address=parse_address_components(result.get("address_components", [])),
            place_id=result.get("place_id"),
        )
        logger.debug(f"Geocoded: {query} -> {geocoded.coordinates}")
        return geocoded

    async def reverse_geocode(self, lat: float, lng: float) -> Location:
        """
        座標から住所を取得（逆ジオコーディング）

        Raises:
            InvalidCoordinatesError: 座標が範囲外の場合
            NoResultsError: 一致する結果がない場合
            ProviderUnavailableError: APIリクエストに失敗した場合
        """
        validate_coordinates(lat, lng)
        logger.debug(f"Reverse geocoding: ({lat}, {lng})")

        results = await self._call(self.client.reverse_geocode, (lat, lng))
        if not results or not results[0].get("formatted_address"):
            raise NoResultsError(f"No reverse geocoding results for: ({lat}, {lng})")

        result = results[0]
        return Location(
            address=result["formatted_address"],
            coordinates=Coordinates(lat=float(lat), lng=float(lng)),
            detailed_address=parse_address_components(result.get("address_components", [])),
            place_id=result.get("place_id"),
        )

    async def suggest(self, query: str, limit: int = 5) -> list[SearchSuggestion]:
        """
        Places Autocomplete で補完候補を取得

        候補には place_id のみが含まれ、座標は選択時に解決する
        """
        text = validate_query(query)
        predictions = await self._call(self.client.places_autocomplete, text, types="geocode")

        suggestions = []
        for prediction in (predictions or [])[:limit]:
            description = prediction.get("description")
            if not description:
                continue
            suggestions.append(
                SearchSuggestion(
                    address=description,
                    provider=self.name,
                    place_id=prediction.get("place_id"),
                )
            )
        return suggestions

    async def _call(self, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """SDKの同期呼び出しをスレッドで実行し、例外を変換する"""
        try:
            return await asyncio.to_thread(func, *args, **kwargs)
        except googlemaps.exceptions.ApiError as e:
            if e.status == "INVALID_REQUEST":
                raise InvalidQueryError(
                    f"Google Maps rejected the request: {redact_secrets(str(e))}"
                ) from e
            raise ProviderUnavailableError(f"Google Maps API error: {redact_secrets(str(e))}") from e
        except googlemaps.exceptions.TransportError as e:
            raise ProviderUnavailableError(
                f"Google Maps transport error: {redact_secrets(str(e))}"
            ) from e
        except googlemaps.exceptions.Timeout as e:
            raise ProviderUnavailableError("Google Maps request timed out") from e
        except Exception as e:
            raise ProviderUnavailableError(
                f"Unexpected Google Maps error: {redact_secrets(str(e))}"
            ) from e
