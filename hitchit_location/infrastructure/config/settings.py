"""アプリケーション設定（Pydantic Settings）"""
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """アプリケーション設定"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Project
    project_name: str = Field(
        default="hitchit-location",
        description="プロジェクト名",
    )
    environment: str = Field(
        default="development",
        description="環境 (development, staging, production)",
    )

    # GCP
    gcp_project_id: Optional[str] = Field(
        default=None,
        description="GCPプロジェクトID（Firestore / Secret Manager利用時に必要）",
    )

    # Firestore
    history_backend: Literal["memory", "firestore"] = Field(
        default="memory",
        description="履歴・お気に入りの保存先 (memory, firestore)",
    )
    firestore_database_id: str = Field(
        default="(default)",
        description="FirestoreデータベースID",
    )
    firestore_users_collection: str = Field(
        default="users",
        description="ユーザーコレクション名",
    )
    firestore_recent_collection: str = Field(
        default="recent_locations",
        description="最近使った場所のサブコレクション名",
    )
    firestore_favorites_collection: str = Field(
        default="favorite_locations",
        description="お気に入りのサブコレクション名",
    )

    # Geocoding providers
    geocoding_provider_order: str = Field(
        default="google,mapbox,nominatim",
        description="ジオコーディングプロバイダーの優先順（カンマ区切り）",
    )
    suggestion_provider: str = Field(
        default="nominatim",
        description="入力補完候補を取得するプロバイダー",
    )
    geocoding_timeout: float = Field(
        default=10.0,
        description="ジオコーディングAPIのタイムアウト（秒）",
    )
    geocoding_cache_enabled: bool = Field(
        default=True,
        description="ジオコーディングキャッシュを有効にするか",
    )
    google_maps_api_key: Optional[str] = Field(
        default=None,
        description="Google Maps API Key（ローカル開発用）",
    )
    google_maps_api_key_secret_name: str = Field(
        default="google-maps-api-key",
        description="Google Maps API KeyのSecret Manager名",
    )
    mapbox_access_token: Optional[str] = Field(
        default=None,
        description="Mapbox アクセストークン（ローカル開発用）",
    )
    mapbox_access_token_secret_name: str = Field(
        default="mapbox-access-token",
        description="Mapbox アクセストークンのSecret Manager名",
    )
    nominatim_user_agent: Optional[str] = Field(
        default="hitchit-location/1.0",
        description="Nominatim利用規約で必須のUser-Agent",
    )
    nominatim_base_url: str = Field(
        default="https://nominatim.openstreetmap.org",
        description="NominatimのベースURL",
    )
    geocoding_country_codes: Optional[str] = Field(
        default="us",
        description="検索対象の国コード（カンマ区切り）",
    )

    # Autocomplete
    search_min_length: int = Field(
        default=3,
        description="ライブ検索を開始する最小文字数",
    )
    search_debounce_ms: int = Field(
        default=250,
        description="入力停止後に検索を発行するまでの待機時間（ミリ秒）",
    )
    recent_display_limit: int = Field(
        default=5,
        description="履歴表示時に表示する最近使った場所の件数",
    )
    suggestion_limit: int = Field(
        default=5,
        description="ライブ検索候補の最大件数",
    )
    suggestion_cache_ttl_seconds: int = Field(
        default=300,
        description="ライブ検索候補キャッシュの有効期間（秒）",
    )
    suggestion_cache_max_entries: int = Field(
        default=100,
        description="ライブ検索候補キャッシュの最大クエリ数",
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="ログレベル (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    gcp_logging_enabled: bool = Field(
        default=False,
        description="Cloud Loggingを有効にするか",
    )

    # Cloud Run
    port: int = Field(
        default=8080,
        description="HTTPサーバーのポート番号",
    )

    def get_provider_order(self) -> list[str]:
        """ジオコーディングプロバイダー名のリストを優先順で取得"""
        return [
            name.strip().lower()
            for name in self.geocoding_provider_order.split(",")
            if name.strip()
        ]

    @property
    def search_debounce_seconds(self) -> float:
        """デバウンス時間（秒）"""
        return self.search_debounce_ms / 1000

    @property
    def is_production(self) -> bool:
        """本番環境かどうか"""
        return self.environment.lower() == "production"

    @property
    def is_development(self) -> bool:
        """開発環境かどうか"""
        return self.environment.lower() == "development"
