"""プロバイダーフォールバック解決"""

from typing import Awaitable, Callable, Optional, Sequence

from ..domain.models import (
    Coordinates,
    GeocodeResult,
    Location,
    OutcomeKind,
    ProviderOutcome,
)
from ..providers.base import GeocodingProvider, validate_coordinates, validate_query
from ....shared.exceptions.errors import (
    InvalidCoordinatesError,
    InvalidQueryError,
    NoResultsError,
    ProviderUnavailableError,
)
from ....shared.logging.config import get_logger
from ....shared.utils.text import format_coordinates

logger = get_logger(__name__)

ProviderCall = Callable[[GeocodingProvider], Awaitable[Location]]


class ProviderFallbackResolver:
    """
    優先順に並んだプロバイダーを順に試し、最初の成功を返す

    - ProviderUnavailableError / NoResultsError: 次のプロバイダーへ
    - InvalidQueryError / InvalidCoordinatesError: 直ちに中断して送出
    - 全滅した場合: 例外ではなく verified=False の縮退結果を返す

    各プロバイダーへの試行は1回のみ（リトライはしない）
    """

    def __init__(self, providers: Sequence[GeocodingProvider]) -> None:
        """
        Args:
            providers: 優先順のプロバイダーリスト（呼び出し側の設定）
        """
        self.providers = list(providers)

        logger.info(
            "ProviderFallbackResolver initialized: "
            f"providers={[provider.name for provider in self.providers]}"
        )

    async def forward(self, address_text: str) -> GeocodeResult:
        """
        住所を座標に解決

        Args:
            address_text: 住所文字列

        Returns:
            GeocodeResult: 成功時は verified=True。全プロバイダー失敗時は
            入力文字列を住所とし座標なしの verified=False

        Raises:
            InvalidQueryError: 住所が空の場合
        """
        query = validate_query(address_text)

        async def call(provider: GeocodingProvider) -> Location:
            return await provider.forward_geocode(query)

        result, errors = await self._resolve(call, description=query)
        if result is not None:
            return result

        logger.warning(f"All geocoding providers failed for address, degrading: {query}")
        return GeocodeResult(
            location=Location(address=query),
            verified=False,
            errors=tuple(errors),
        )

    async def reverse(self, lat: float, lng: float) -> GeocodeResult:
        """
        座標を住所に解決

        Returns:
            GeocodeResult: 全プロバイダー失敗時は "lat, lng" 文字列を住所とし、
            入力座標をそのまま持つ verified=False

        Raises:
            InvalidCoordinatesError: 座標が範囲外の場合
        """
        validate_coordinates(lat, lng)

        async def call(provider: GeocodingProvider) -> Location:
            return await provider.reverse_geocode(lat, lng)

        description = format_coordinates(lat, lng)
        result, errors = await self._resolve(call, description=description)
        if result is not None:
            return result

        logger.warning(f"All reverse geocoding providers failed, degrading: ({description})")
        return GeocodeResult(
            location=Location(address=description, coordinates=Coordinates(lat=lat, lng=lng)),
            verified=False,
            errors=tuple(errors),
        )

    async def _resolve(
        self, call: ProviderCall, description: str
    ) -> tuple[Optional[GeocodeResult], list[str]]:
        """プロバイダーを順に試す。全滅した場合は (None, 各プロバイダーのエラー)"""
        errors: list[str] = []

        for provider in self.providers:
            outcome = await self._attempt(provider, call)

            if outcome.kind is OutcomeKind.SUCCESS and outcome.location is not None:
                logger.debug(f"Resolved by {outcome.provider}: {description}")
                result = GeocodeResult(
                    location=outcome.location,
                    verified=True,
                    provider=outcome.provider,
                    errors=tuple(errors),
                )
                return result, errors

            if outcome.kind is OutcomeKind.FATAL and outcome.error is not None:
                raise outcome.error

            errors.append(f"{outcome.provider}: {outcome.error}")
            logger.warning(f"Provider {outcome.provider} failed for {description}: {outcome.error}")

        return None, errors

    async def _attempt(self, provider: GeocodingProvider, call: ProviderCall) -> ProviderOutcome:
        """1プロバイダーを1回呼び出し、結果をタグ付きで返す"""
        try:
            return ProviderOutcome.success(provider.name, await call(provider))
        except (InvalidQueryError, InvalidCoordinatesError) as e:
            return ProviderOutcome.fatal(provider.name, e)
        except (ProviderUnavailableError, NoResultsError) as e:
            return ProviderOutcome.recoverable(provider.name, e)
