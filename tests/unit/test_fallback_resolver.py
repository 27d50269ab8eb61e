"""プロバイダーフォールバック解決のテスト"""

import pytest

from doubles import FakeProvider, make_location

from hitchit_location.features.geocoding.services.fallback_resolver import (
    ProviderFallbackResolver,
)
from hitchit_location.shared.exceptions.errors import (
    InvalidCoordinatesError,
    InvalidQueryError,
    NoResultsError,
    ProviderUnavailableError,
)


@pytest.mark.asyncio
async def test_first_success_wins() -> None:
    """最初に成功したプロバイダーの結果を返し、以降は呼ばない"""
    primary = FakeProvider("primary", forward=make_location("100 Main St", 1.0, 2.0))
    secondary = FakeProvider("secondary", forward=make_location("other", 3.0, 4.0))
    resolver = ProviderFallbackResolver([primary, secondary])

    result = await resolver.forward("100 main st")

    assert result.verified
    assert result.provider == "primary"
    assert result.location.coordinates.to_tuple() == (1.0, 2.0)
    assert secondary.forward_calls == []


@pytest.mark.asyncio
async def test_falls_back_when_provider_is_unavailable() -> None:
    """1番目が失敗しても2番目の結果を返し、エラーは送出しない"""
    failing = FakeProvider("failing", forward=ProviderUnavailableError("timeout"))
    working = FakeProvider("working", forward=make_location("100 Main St", 1.0, 2.0))
    resolver = ProviderFallbackResolver([failing, working])

    result = await resolver.forward("100 Main St")

    assert result.verified
    assert result.provider == "working"
    assert failing.forward_calls == ["100 Main St"]
    assert result.errors == ("failing: timeout",)


@pytest.mark.asyncio
async def test_no_results_also_falls_back() -> None:
    """結果なしも次のプロバイダーへ"""
    empty = FakeProvider("empty", forward=NoResultsError("nothing"))
    working = FakeProvider("working", forward=make_location("100 Main St", 1.0, 2.0))

    result = await ProviderFallbackResolver([empty, working]).forward("100 Main St")

    assert result.provider == "working"


@pytest.mark.asyncio
async def test_each_provider_is_tried_once() -> None:
    """リトライはしない"""
    first = FakeProvider("first", forward=ProviderUnavailableError("down"))
    second = FakeProvider("second", forward=ProviderUnavailableError("down"))

    await ProviderFallbackResolver([first, second]).forward("100 Main St")

    assert len(first.forward_calls) == 1
    assert len(second.forward_calls) == 1


@pytest.mark.asyncio
async def test_all_providers_failing_degrades_to_unverified() -> None:
    """全滅したら入力住所・座標なしの verified=False"""
    resolver = ProviderFallbackResolver(
        [
            FakeProvider("first", forward=ProviderUnavailableError("down")),
            FakeProvider("second", forward=NoResultsError("nothing")),
        ]
    )

    result = await resolver.forward("  300 Main Blvd ")

    assert not result.verified
    assert result.location.address == "300 Main Blvd"
    assert result.location.coordinates is None
    assert result.provider is None
    assert len(result.errors) == 2


@pytest.mark.asyncio
async def test_no_providers_degrades() -> None:
    """プロバイダーが1つもなくても例外にしない"""
    result = await ProviderFallbackResolver([]).forward("300 Main Blvd")

    assert not result.verified


@pytest.mark.asyncio
async def test_invalid_query_aborts_chain() -> None:
    """入力不正は他のプロバイダーでも解決できないので直ちに送出"""
    rejecting = FakeProvider("rejecting", forward=InvalidQueryError("bad query"))
    untouched = FakeProvider("untouched", forward=make_location("100 Main St", 1.0, 2.0))

    with pytest.raises(InvalidQueryError):
        await ProviderFallbackResolver([rejecting, untouched]).forward("???")

    assert untouched.forward_calls == []


@pytest.mark.asyncio
async def test_empty_address_is_rejected_before_any_provider() -> None:
    """空の住所はどのプロバイダーも呼ばずに InvalidQueryError"""
    provider = FakeProvider("provider", forward=make_location("100 Main St", 1.0, 2.0))

    with pytest.raises(InvalidQueryError):
        await ProviderFallbackResolver([provider]).forward("   ")

    assert provider.forward_calls == []


@pytest.mark.asyncio
async def test_reverse_success() -> None:
    """座標 → 住所"""
    provider = FakeProvider("provider", reverse=make_location("100 Main St", 34.0522, -118.2437))

    result = await ProviderFallbackResolver([provider]).reverse(34.0522, -118.2437)

    assert result.verified
    assert result.location.address == "100 Main St"


@pytest.mark.asyncio
async def test_reverse_degrades_to_coordinate_string() -> None:
    """全滅したら "lat, lng" を住所とし、入力座標を保持"""
    provider = FakeProvider("provider", reverse=ProviderUnavailableError("down"))

    result = await ProviderFallbackResolver([provider]).reverse(34.0522, -118.2437)

    assert not result.verified
    assert result.location.address == "34.052200, -118.243700"
    assert result.location.coordinates.to_tuple() == (34.0522, -118.2437)


@pytest.mark.asyncio
@pytest.mark.parametrize("lat,lng", [(91.0, 0.0), (-91.0, 0.0), (0.0, 181.0), (0.0, -180.5)])
async def test_reverse_rejects_out_of_range_coordinates(lat: float, lng: float) -> None:
    """範囲外の座標は InvalidCoordinatesError"""
    provider = FakeProvider("provider", reverse=make_location("x", 0.0, 0.0))

    with pytest.raises(InvalidCoordinatesError):
        await ProviderFallbackResolver([provider]).reverse(lat, lng)

    assert provider.reverse_calls == []
