"""依存関係の組み立て（コンポジションルート）"""

from typing import Callable, Optional

from ..features.autocomplete.services.smart_location_resolver import SmartLocationResolver
from ..features.autocomplete.services.suggestion_cache import SuggestionCache
from ..features.geocoding.providers.base import GeocodingProvider
from ..features.geocoding.providers.cache_geocoder import CacheGeocoder
from ..features.geocoding.providers.google_maps_geocoder import GoogleMapsGeocoder
from ..features.geocoding.providers.mapbox_geocoder import MapboxGeocoder
from ..features.geocoding.providers.nominatim_geocoder import NominatimGeocoder
from ..features.geocoding.services.fallback_resolver import ProviderFallbackResolver
from ..features.storage.clients.firestore_client import FirestoreClient
from ..features.storage.repositories.location_history_repository import (
    FirestoreLocationHistoryStore,
    InMemoryLocationHistoryStore,
    LocationHistoryStore,
)
from ..shared.exceptions.errors import ConfigurationError
from ..shared.http.client import HTTPClient
from ..shared.logging.config import get_logger
from .config.settings import Settings
from .gcp.secret_manager import SecretManagerClient

logger = get_logger(__name__)


class LocationServiceContainer:
    """
    位置情報サービスのコンテナ

    プロバイダー・保存先・リゾルバーを設定から生成し、依存性注入を行う。
    SDKクライアントはモジュールレベルのシングルトンではなく、
    このコンテナが生成・保持する
    """

    def __init__(
        self,
        settings: Settings,
        providers: Optional[list[GeocodingProvider]] = None,
        suggestion_source: Optional[GeocodingProvider] = None,
        history_store: Optional[LocationHistoryStore] = None,
    ) -> None:
        """
        Args:
            settings: アプリケーション設定
            providers: 優先順のプロバイダー（省略時は設定から生成）
            suggestion_source: ライブ候補のプロバイダー（省略時は設定から選択）
            history_store: 保存先（省略時は設定から生成）
        """
        self.settings = settings

        # Secret Managerクライアントを初期化（本番のみ）
        self.secret_manager: Optional[SecretManagerClient] = None
        if not settings.is_development and settings.gcp_project_id:
            self.secret_manager = SecretManagerClient(settings.gcp_project_id)

        self.providers = providers if providers is not None else self._create_providers()
        self.suggestion_source = suggestion_source or self._select_suggestion_source()
        self.fallback_resolver = ProviderFallbackResolver(self.providers)
        self.history_store = history_store or self._create_history_store()

        logger.info(
            "LocationServiceContainer initialized: "
            f"providers={[provider.name for provider in self.providers]}, "
            f"suggestions={self.suggestion_source.name if self.suggestion_source else None}"
        )

    def create_resolver(
        self,
        user_id: str,
        on_change: Optional[Callable] = None,
        on_warning: Optional[Callable[[str], None]] = None,
    ) -> SmartLocationResolver:
        """
        ユーザーの入力欄1つ分のリゾルバーを生成

        保存先は同じユーザーの全リゾルバーで共有される
        """
        return SmartLocationResolver(
            user_id=user_id,
            history_store=self.history_store,
            fallback_resolver=self.fallback_resolver,
            suggestion_source=self.suggestion_source,
            min_query_length=self.settings.search_min_length,
            debounce_seconds=self.settings.search_debounce_seconds,
            recent_display_limit=self.settings.recent_display_limit,
            suggestion_limit=self.settings.suggestion_limit,
            suggestion_cache=SuggestionCache(
                ttl_seconds=self.settings.suggestion_cache_ttl_seconds,
                max_entries=self.settings.suggestion_cache_max_entries,
            ),
            on_change=on_change,
            on_warning=on_warning,
        )

    def _create_providers(self) -> list[GeocodingProvider]:
        """設定の優先順でプロバイダーを生成。認証情報のないものはスキップ"""
        factories: dict[str, Callable[[], GeocodingProvider]] = {
            "google": self._create_google_provider,
            "mapbox": self._create_mapbox_provider,
            "nominatim": self._create_nominatim_provider,
        }

        providers: list[GeocodingProvider] = []
        for name in self.settings.get_provider_order():
            factory = factories.get(name)
            if factory is None:
                logger.warning(f"Unknown geocoding provider in configuration: {name}")
                continue

            try:
                provider = factory()
            except ConfigurationError as e:
                logger.warning(f"Geocoding provider '{name}' disabled: {e}")
                continue

            if self.settings.geocoding_cache_enabled:
                provider = CacheGeocoder(provider)
            providers.append(provider)

        if not providers:
            logger.warning("No geocoding providers configured; results will be unverified")

        return providers

    def _create_google_provider(self) -> GeocodingProvider:
        api_key = self._resolve_credential(
            self.settings.google_maps_api_key,
            self.settings.google_maps_api_key_secret_name,
        )
        return GoogleMapsGeocoder(api_key=api_key, timeout=self.settings.geocoding_timeout)

    def _create_mapbox_provider(self) -> GeocodingProvider:
        access_token = self._resolve_credential(
            self.settings.mapbox_access_token,
            self.settings.mapbox_access_token_secret_name,
        )
        return MapboxGeocoder(
            access_token=access_token,
            http_client=HTTPClient(timeout=self.settings.geocoding_timeout, max_retries=0),
            country=self.settings.geocoding_country_codes,
        )

    def _create_nominatim_provider(self) -> GeocodingProvider:
        return NominatimGeocoder(
            user_agent=self.settings.nominatim_user_agent,
            base_url=self.settings.nominatim_base_url,
            country_codes=self.settings.geocoding_country_codes,
            timeout=self.settings.geocoding_timeout,
        )

    def _select_suggestion_source(self) -> Optional[GeocodingProvider]:
        wanted = self.settings.suggestion_provider.strip().lower()
        for provider in self.providers:
            if provider.name == wanted:
                return provider

        if self.providers:
            logger.warning(
                f"Suggestion provider '{wanted}' unavailable, using '{self.providers[0].name}'"
            )
            return self.providers[0]
        return None

    def _create_history_store(self) -> LocationHistoryStore:
        if self.settings.history_backend == "firestore":
            if not self.settings.gcp_project_id:
                raise ConfigurationError("gcp_project_id is required for the Firestore backend")

            firestore_client = FirestoreClient(
                project_id=self.settings.gcp_project_id,
                database_id=self.settings.firestore_database_id,
            )
            return FirestoreLocationHistoryStore(
                firestore_client,
                users_collection=self.settings.firestore_users_collection,
                recent_collection=self.settings.firestore_recent_collection,
                favorites_collection=self.settings.firestore_favorites_collection,
                min_search_length=self.settings.search_min_length,
            )

        return InMemoryLocationHistoryStore(min_search_length=self.settings.search_min_length)

    def _resolve_credential(self, local_value: Optional[str], secret_name: str) -> Optional[str]:
        if self.secret_manager is None:
            return local_value
        return self.secret_manager.resolve_credential(local_value, secret_name)
