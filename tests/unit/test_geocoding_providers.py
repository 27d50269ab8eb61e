"""ジオコーディングプロバイダーのテスト（外部APIはモック）"""

import json
import logging
from unittest.mock import MagicMock, patch

import googlemaps
import pytest
import requests

from hitchit_location.features.geocoding.providers.cache_geocoder import CacheGeocoder
from hitchit_location.features.geocoding.providers.google_maps_geocoder import (
    GoogleMapsGeocoder,
    parse_address_components,
)
from hitchit_location.features.geocoding.providers.mapbox_geocoder import (
    MapboxGeocoder,
    parse_feature,
)
from hitchit_location.features.geocoding.providers.nominatim_geocoder import NominatimGeocoder
from hitchit_location.features.geocoding.services.fallback_resolver import (
    ProviderFallbackResolver,
)
from hitchit_location.shared.exceptions.errors import (
    ConfigurationError,
    HTTPError,
    InvalidCoordinatesError,
    InvalidQueryError,
    NoResultsError,
    ProviderUnavailableError,
)
from hitchit_location.shared.http.client import HTTPClient

from doubles import FakeProvider, make_location

GOOGLE_RESULT = {
    "formatted_address": "100 Main St, Springfield, IL 62701, USA",
    "place_id": "ChIJ-main",
    "geometry": {"location": {"lat": 39.78, "lng": -89.65}},
    "address_components": [
        {"long_name": "100", "short_name": "100", "types": ["street_number"]},
        {"long_name": "Main Street", "short_name": "Main St", "types": ["route"]},
        {"long_name": "Springfield", "short_name": "Springfield", "types": ["locality", "political"]},
        {
            "long_name": "Illinois",
            "short_name": "IL",
            "types": ["administrative_area_level_1", "political"],
        },
        {"long_name": "62701", "short_name": "62701", "types": ["postal_code"]},
    ],
}

MAPBOX_FEATURE = {
    "id": "address.123",
    "place_type": ["address"],
    "text": "Main St",
    "address": "100",
    "place_name": "100 Main St, Springfield, Illinois 62701, United States",
    "center": [-89.65, 39.78],
    "context": [
        {"id": "postcode.1", "text": "62701"},
        {"id": "place.2", "text": "Springfield"},
        {"id": "region.3", "text": "Illinois", "short_code": "US-IL"},
    ],
}

NOMINATIM_PLACE = {
    "osm_id": 42,
    "lat": "39.78",
    "lon": "-89.65",
    "display_name": "100, Main Street, Springfield, Illinois, 62701, United States",
    "address": {
        "house_number": "100",
        "road": "Main Street",
        "city": "Springfield",
        "state": "Illinois",
        "postcode": "62701",
    },
}


def http_response(status_code: int, body=None, url: str = "") -> requests.Response:
    response = requests.Response()
    response.status_code = status_code
    response.reason = "Service Unavailable" if status_code == 503 else "OK"
    response._content = json.dumps(body or {}).encode("utf-8")
    response.url = url
    return response


def fake_session_get(status_code: int, body=None) -> MagicMock:
    """requests.Session.get の代わり。response フックも requests と同様に呼ぶ"""

    def get(url, **kwargs):
        response = http_response(status_code, body, url=url)
        hook = kwargs.get("hooks", {}).get("response")
        if hook is not None:
            hook(response)
        return response

    return MagicMock(side_effect=get)


class TestGoogleMapsGeocoder:
    """Google Maps 実装"""

    @pytest.fixture
    def client(self):
        with patch(
            "hitchit_location.features.geocoding.providers.google_maps_geocoder.googlemaps.Client"
        ) as client_class:
            yield client_class.return_value

    def test_missing_api_key(self) -> None:
        """APIキーがなければ ConfigurationError"""
        with pytest.raises(ConfigurationError):
            GoogleMapsGeocoder(api_key=None)

    def test_parse_address_components(self) -> None:
        """住所要素の変換"""
        detailed = parse_address_components(GOOGLE_RESULT["address_components"])

        assert detailed.street == "100 Main Street"
        assert detailed.city == "Springfield"
        assert detailed.state == "IL"
        assert detailed.zip_code == "62701"

    @pytest.mark.asyncio
    async def test_forward_geocode(self, client) -> None:
        """最初の結果を座標付きの地点にする"""
        client.geocode.return_value = [GOOGLE_RESULT]

        location = await GoogleMapsGeocoder(api_key="key").forward_geocode(" 100 Main St ")

        client.geocode.assert_called_once_with("100 Main St")
        assert location.coordinates.to_tuple() == (39.78, -89.65)
        assert location.place_id == "ChIJ-main"
        assert location.is_complete

    @pytest.mark.asyncio
    async def test_forward_geocode_no_results(self, client) -> None:
        """結果なしは NoResultsError"""
        client.geocode.return_value = []

        with pytest.raises(NoResultsError):
            await GoogleMapsGeocoder(api_key="key").forward_geocode("nowhere")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error,expected",
        [
            (googlemaps.exceptions.ApiError("INVALID_REQUEST"), InvalidQueryError),
            (googlemaps.exceptions.ApiError("OVER_QUERY_LIMIT"), ProviderUnavailableError),
            (googlemaps.exceptions.TransportError("connection reset"), ProviderUnavailableError),
            (googlemaps.exceptions.Timeout(), ProviderUnavailableError),
        ],
    )
    async def test_sdk_errors_are_translated(self, client, error, expected) -> None:
        """SDKの例外を共通の例外に変換"""
        client.geocode.side_effect = error

        with pytest.raises(expected):
            await GoogleMapsGeocoder(api_key="key").forward_geocode("100 Main St")

    @pytest.mark.asyncio
    async def test_reverse_geocode_keeps_input_coordinates(self, client) -> None:
        """逆ジオコーディング"""
        client.reverse_geocode.return_value = [GOOGLE_RESULT]

        location = await GoogleMapsGeocoder(api_key="key").reverse_geocode(39.7801, -89.6502)

        client.reverse_geocode.assert_called_once_with((39.7801, -89.6502))
        assert location.address == GOOGLE_RESULT["formatted_address"]
        assert location.coordinates.to_tuple() == (39.7801, -89.6502)

    @pytest.mark.asyncio
    async def test_reverse_geocode_rejects_invalid_coordinates(self, client) -> None:
        """範囲外の座標はAPIを呼ばない"""
        with pytest.raises(InvalidCoordinatesError):
            await GoogleMapsGeocoder(api_key="key").reverse_geocode(120.0, 0.0)

        client.reverse_geocode.assert_not_called()

    @pytest.mark.asyncio
    async def test_suggest_returns_place_ids_without_coordinates(self, client) -> None:
        """Places Autocomplete の候補"""
        client.places_autocomplete.return_value = [
            {"description": "300 Main Blvd, Springfield, IL, USA", "place_id": "p1"},
            {"description": "", "place_id": "p2"},
            {"description": "301 Main Blvd, Springfield, IL, USA", "place_id": "p3"},
        ]

        suggestions = await GoogleMapsGeocoder(api_key="key").suggest("300 Main", limit=5)

        assert [item.place_id for item in suggestions] == ["p1", "p3"]
        assert all(item.coordinates is None for item in suggestions)
        assert all(item.provider == "google" for item in suggestions)

    @pytest.mark.asyncio
    async def test_repeated_requests_reach_the_api(self) -> None:
        """SDK本体を通しても、連続した呼び出しがすべてAPIまで届く"""
        geocoder = GoogleMapsGeocoder(api_key="AIzaFAKEKEY")
        geocoder.client.session.get = fake_session_get(
            200, {"status": "OK", "results": [GOOGLE_RESULT]}
        )

        for _ in range(30):
            location = await geocoder.forward_geocode("100 Main St")
            assert location.place_id == "ChIJ-main"

        assert geocoder.client.session.get.call_count == 30

    @pytest.mark.asyncio
    async def test_server_error_is_a_single_attempt(self, caplog) -> None:
        """5xx は再試行せず ProviderUnavailableError。APIキーはメッセージに出さない"""
        caplog.set_level(logging.DEBUG)
        geocoder = GoogleMapsGeocoder(api_key="AIzaFAKEKEY")
        geocoder.client.session.get = fake_session_get(503)

        with pytest.raises(ProviderUnavailableError) as exc_info:
            await geocoder.forward_geocode("100 Main St")

        assert geocoder.client.session.get.call_count == 1
        assert "503" in str(exc_info.value)
        assert "AIzaFAKEKEY" not in str(exc_info.value)
        assert "AIzaFAKEKEY" not in caplog.text


class TestMapboxGeocoder:
    """Mapbox 実装"""

    @pytest.fixture
    def http_client(self) -> MagicMock:
        return MagicMock()

    def test_missing_access_token(self) -> None:
        """トークンがなければ ConfigurationError"""
        with pytest.raises(ConfigurationError):
            MapboxGeocoder(access_token="")

    def test_parse_feature(self) -> None:
        """center は [経度, 緯度]、州は short_code から"""
        location = parse_feature(MAPBOX_FEATURE)

        assert location.coordinates.to_tuple() == (39.78, -89.65)
        assert location.detailed_address.street == "100 Main St"
        assert location.detailed_address.city == "Springfield"
        assert location.detailed_address.state == "IL"
        assert location.detailed_address.zip_code == "62701"

    def test_parse_feature_without_center(self) -> None:
        """座標のない Feature は NoResultsError"""
        with pytest.raises(NoResultsError):
            parse_feature({"id": "x", "place_name": "Somewhere"})

    @pytest.mark.asyncio
    async def test_forward_geocode(self, http_client) -> None:
        """クエリはURLに埋め込み、トークン・国コードはパラメータ"""
        http_client.get_json.return_value = {"features": [MAPBOX_FEATURE]}
        geocoder = MapboxGeocoder("token", http_client=http_client, country="us")

        location = await geocoder.forward_geocode("100 Main St")

        url = http_client.get_json.call_args.args[0]
        params = http_client.get_json.call_args.kwargs["params"]
        assert url.endswith("/100%20Main%20St.json")
        assert params["access_token"] == "token"
        assert params["country"] == "us"
        assert params["autocomplete"] == "false"
        assert location.place_id == "address.123"

    @pytest.mark.asyncio
    async def test_forward_geocode_no_features(self, http_client) -> None:
        """Feature がなければ NoResultsError"""
        http_client.get_json.return_value = {"features": []}

        with pytest.raises(NoResultsError):
            await MapboxGeocoder("token", http_client=http_client).forward_geocode("nowhere")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status_code,expected",
        [(422, InvalidQueryError), (401, ProviderUnavailableError), (None, ProviderUnavailableError)],
    )
    async def test_http_errors_are_translated(self, http_client, status_code, expected) -> None:
        """HTTPエラーを共通の例外に変換"""
        http_client.get_json.side_effect = HTTPError("failed", status_code=status_code)

        with pytest.raises(expected):
            await MapboxGeocoder("token", http_client=http_client).forward_geocode("100 Main St")

    @pytest.mark.asyncio
    async def test_reverse_geocode_uses_lng_lat_order(self, http_client) -> None:
        """逆ジオコーディングのクエリは 経度,緯度 の順"""
        http_client.get_json.return_value = {"features": [MAPBOX_FEATURE]}

        location = await MapboxGeocoder("token", http_client=http_client).reverse_geocode(
            39.7801, -89.6502
        )

        assert http_client.get_json.call_args.args[0].endswith("/-89.6502,39.7801.json")
        assert location.coordinates.to_tuple() == (39.7801, -89.6502)

    @pytest.mark.asyncio
    async def test_suggest_skips_unusable_features(self, http_client) -> None:
        """座標のない候補は除く"""
        http_client.get_json.return_value = {
            "features": [MAPBOX_FEATURE, {"id": "broken", "place_name": "No center"}]
        }

        suggestions = await MapboxGeocoder("token", http_client=http_client).suggest("100 Main")

        assert [item.place_id for item in suggestions] == ["address.123"]
        assert suggestions[0].coordinates is not None
        assert http_client.get_json.call_args.kwargs["params"]["autocomplete"] == "true"

    @pytest.mark.asyncio
    async def test_access_token_is_not_leaked_on_failure(self, caplog) -> None:
        """503 でもトークンは例外・フォールバックのエラー・ログに出ない"""
        caplog.set_level(logging.DEBUG)
        http_client = HTTPClient()
        geocoder = MapboxGeocoder("pk.SECRET_TOKEN_123", http_client=http_client)
        failed = http_response(
            503,
            url="https://api.mapbox.com/geocoding/v5/mapbox.places/x.json"
            "?access_token=pk.SECRET_TOKEN_123&limit=1",
        )

        with patch.object(http_client.session, "get", return_value=failed):
            with pytest.raises(ProviderUnavailableError) as exc_info:
                await geocoder.forward_geocode("100 Main St")
            result = await ProviderFallbackResolver([geocoder]).forward("100 Main St")

        assert "pk.SECRET_TOKEN_123" not in str(exc_info.value)
        assert not result.verified
        assert all("pk.SECRET_TOKEN_123" not in error for error in result.errors)
        assert "pk.SECRET_TOKEN_123" not in caplog.text


class TestNominatimGeocoder:
    """Nominatim 実装"""

    @pytest.fixture
    def http_client(self) -> MagicMock:
        return MagicMock()

    @pytest.fixture
    def rate_limiter(self) -> MagicMock:
        return MagicMock()

    @pytest.fixture
    def geocoder(self, http_client, rate_limiter) -> NominatimGeocoder:
        return NominatimGeocoder(
            user_agent="hitchit-tests/1.0",
            country_codes="us",
            rate_limiter=rate_limiter,
            http_client=http_client,
        )

    def test_user_agent_is_required(self) -> None:
        """User-Agent がなければ ConfigurationError"""
        with pytest.raises(ConfigurationError):
            NominatimGeocoder(user_agent=None)

    @pytest.mark.asyncio
    async def test_forward_geocode(self, geocoder, http_client, rate_limiter) -> None:
        """検索APIの最初の結果を使い、呼び出し前にレート制限を待つ"""
        http_client.get_json.return_value = [NOMINATIM_PLACE]

        location = await geocoder.forward_geocode("100 Main St")

        url = http_client.get_json.call_args.args[0]
        params = http_client.get_json.call_args.kwargs["params"]
        assert url == "https://nominatim.openstreetmap.org/search"
        assert params["q"] == "100 Main St"
        assert params["countrycodes"] == "us"
        assert params["limit"] == 1
        rate_limiter.wait.assert_called_once()
        assert location.coordinates.to_tuple() == (39.78, -89.65)
        assert location.detailed_address.street == "100 Main Street"
        assert location.place_id == "42"

    @pytest.mark.asyncio
    async def test_forward_geocode_no_results(self, geocoder, http_client) -> None:
        """空の配列は NoResultsError"""
        http_client.get_json.return_value = []

        with pytest.raises(NoResultsError):
            await geocoder.forward_geocode("nowhere")

    @pytest.mark.asyncio
    async def test_reverse_geocode_error_body(self, geocoder, http_client) -> None:
        """{"error": ...} は NoResultsError"""
        http_client.get_json.return_value = {"error": "Unable to geocode"}

        with pytest.raises(NoResultsError):
            await geocoder.reverse_geocode(0.0, 0.0)

    @pytest.mark.asyncio
    async def test_unavailable_service(self, geocoder, http_client) -> None:
        """5xx は ProviderUnavailableError"""
        http_client.get_json.side_effect = HTTPError("busy", status_code=503)

        with pytest.raises(ProviderUnavailableError):
            await geocoder.suggest("100 Main")

    @pytest.mark.asyncio
    async def test_suggest_includes_coordinates(self, geocoder, http_client) -> None:
        """候補は座標付き"""
        http_client.get_json.return_value = [NOMINATIM_PLACE, {"display_name": "no coordinates"}]

        suggestions = await geocoder.suggest("100 Main", limit=3)

        assert len(suggestions) == 1
        assert suggestions[0].coordinates.to_tuple() == (39.78, -89.65)
        assert http_client.get_json.call_args.kwargs["params"]["limit"] == 3


class TestCacheGeocoder:
    """キャッシュ付きジオコーダー"""

    @pytest.mark.asyncio
    async def test_successful_results_are_cached(self) -> None:
        """同じ住所は2回目以降キャッシュから返す"""
        provider = FakeProvider("fake", forward=make_location("100 Main St", 1.0, 2.0))
        geocoder = CacheGeocoder(provider)

        await geocoder.forward_geocode("100 Main St")
        await geocoder.forward_geocode(" 100 main st ")

        assert geocoder.name == "fake"
        assert len(provider.forward_calls) == 1
        stats = geocoder.get_cache_stats()
        assert stats["hit_count"] == 1
        assert stats["miss_count"] == 1

    @pytest.mark.asyncio
    async def test_failures_are_not_cached(self) -> None:
        """失敗はキャッシュせず、そのまま送出"""
        provider = FakeProvider("fake", forward=ProviderUnavailableError("down"))
        geocoder = CacheGeocoder(provider)

        for _ in range(2):
            with pytest.raises(ProviderUnavailableError):
                await geocoder.forward_geocode("100 Main St")

        assert len(provider.forward_calls) == 2
        assert geocoder.get_cache_stats()["cache_size"] == 0

    @pytest.mark.asyncio
    async def test_reverse_cache_key_rounds_coordinates(self) -> None:
        """座標は小数点以下6桁で丸めてキャッシュ"""
        provider = FakeProvider("fake", reverse=make_location("100 Main St", 1.0, 2.0))
        geocoder = CacheGeocoder(provider)

        await geocoder.reverse_geocode(1.0000001, 2.0)
        await geocoder.reverse_geocode(1.0, 2.0)

        assert len(provider.reverse_calls) == 1

    @pytest.mark.asyncio
    async def test_clear_cache(self) -> None:
        """クリア後は再度呼び出す"""
        provider = FakeProvider("fake", forward=make_location("100 Main St", 1.0, 2.0))
        geocoder = CacheGeocoder(provider)

        await geocoder.forward_geocode("100 Main St")
        geocoder.clear_cache()
        await geocoder.forward_geocode("100 Main St")

        assert len(provider.forward_calls) == 2
