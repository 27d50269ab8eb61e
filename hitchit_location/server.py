"""位置情報APIサーバー（FastAPI）"""
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from .features.geocoding.domain.models import Coordinates, DetailedAddress, Location
from .features.geocoding.providers.base import validate_coordinates
from .infrastructure.config.settings import Settings
from .infrastructure.container import LocationServiceContainer
from .shared.exceptions.errors import (
    DuplicateNameError,
    InvalidCoordinatesError,
    InvalidQueryError,
    LocationServiceError,
    NoResultsError,
    StorageError,
    ValidationError,
)
from .shared.logging.config import get_logger, setup_logging

logger = get_logger(__name__)

SERVICE_NAME = "HitchIt Location Service"
SERVICE_VERSION = "1.0.0"


class LocationRequest(BaseModel):
    """POST /locations/recent のボディ"""

    model_config = ConfigDict(populate_by_name=True)

    address: str
    street_address: Optional[str] = Field(default=None, alias="streetAddress")
    city: str = ""
    state: str = ""
    zip_code: Optional[str] = Field(default=None, alias="zipCode")
    lat: Optional[float] = None
    lng: Optional[float] = None

    def to_location(self) -> Location:
        coordinates = None
        if self.lat is not None and self.lng is not None:
            validate_coordinates(self.lat, self.lng)
            coordinates = Coordinates(lat=self.lat, lng=self.lng)

        return Location(
            address=self.address,
            coordinates=coordinates,
            detailed_address=DetailedAddress(
                city=self.city or None,
                state=self.state or None,
                street=self.street_address,
                zip_code=self.zip_code,
            ),
        )


class FavoriteRequest(LocationRequest):
    """POST /locations/favorites のボディ（icon はサーバー側で名前から決定する）"""

    name: str
    icon: Optional[str] = None


def get_user_id(x_user_id: Optional[str] = Header(default=None)) -> str:
    """認証済みユーザーIDをヘッダーから取得"""
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="X-User-Id header is required")
    return x_user_id.strip()


def get_container(request: Request) -> LocationServiceContainer:
    return request.app.state.container


def error_status(exc: LocationServiceError) -> int:
    """例外をHTTPステータスコードに対応付け"""
    if isinstance(exc, DuplicateNameError):
        return 409
    if isinstance(exc, (ValidationError, InvalidQueryError, InvalidCoordinatesError)):
        return 400
    if isinstance(exc, NoResultsError):
        return 404
    if isinstance(exc, StorageError):
        return 503
    return 500


def create_app(container: Optional[LocationServiceContainer] = None) -> FastAPI:
    """
    FastAPIアプリケーションを生成

    Args:
        container: 依存関係コンテナ（省略時は環境設定から生成）

    Returns:
        FastAPI: アプリケーション
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info("Application starting up")
        logger.info(f"Environment: {app.state.container.settings.environment}")
        yield
        logger.info("Application shutting down")

    app = FastAPI(
        title=SERVICE_NAME,
        description="最近使った場所・お気に入り・ジオコーディングを提供するAPI",
        version=SERVICE_VERSION,
        lifespan=lifespan,
    )
    app.state.container = container or LocationServiceContainer(Settings())

    @app.exception_handler(LocationServiceError)
    async def location_error_handler(request: Request, exc: LocationServiceError) -> JSONResponse:
        status_code = error_status(exc)
        if status_code >= 500:
            logger.error(f"Request failed: {request.url.path} - {exc}")
        return JSONResponse(status_code=status_code, content={"message": str(exc)})

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """グローバル例外ハンドラー"""
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"message": "Internal server error", "detail": str(exc)},
        )

    @app.get("/")
    async def root() -> dict[str, Any]:
        """ルートエンドポイント"""
        return {
            "service": SERVICE_NAME,
            "version": SERVICE_VERSION,
            "status": "running",
            "environment": app.state.container.settings.environment,
        }

    @app.get("/health")
    async def health() -> dict[str, str]:
        """ヘルスチェックエンドポイント"""
        return {"status": "healthy"}

    @app.get("/locations/recent")
    async def list_recent(
        user_id: str = Depends(get_user_id),
        container: LocationServiceContainer = Depends(get_container),
    ) -> list[dict[str, Any]]:
        """最近使った場所（利用回数 → 最終利用日時の降順）"""
        entries = await container.history_store.get_recents(user_id)
        return [entry.to_api_dict() for entry in entries]

    @app.post("/locations/recent")
    async def record_recent(
        body: LocationRequest,
        user_id: str = Depends(get_user_id),
        container: LocationServiceContainer = Depends(get_container),
    ) -> dict[str, Any]:
        """最近使った場所を upsert（利用回数を1増やす）"""
        entry = await container.history_store.record_usage(user_id, body.to_location())
        return entry.to_api_dict()

    @app.get("/locations/favorites")
    async def list_favorites(
        user_id: str = Depends(get_user_id),
        container: LocationServiceContainer = Depends(get_container),
    ) -> list[dict[str, Any]]:
        """お気に入り（登録順）"""
        entries = await container.history_store.get_favorites(user_id)
        return [entry.to_api_dict() for entry in entries]

    @app.post("/locations/favorites", status_code=201)
    async def add_favorite(
        body: FavoriteRequest,
        user_id: str = Depends(get_user_id),
        container: LocationServiceContainer = Depends(get_container),
    ) -> dict[str, Any]:
        """お気に入りを追加。同名（大文字小文字無視）は 409"""
        entry = await container.history_store.add_favorite(
            user_id, body.name, body.to_location()
        )
        return entry.to_api_dict()

    @app.delete("/locations/favorites/{favorite_id}", status_code=204)
    async def delete_favorite(
        favorite_id: str,
        user_id: str = Depends(get_user_id),
        container: LocationServiceContainer = Depends(get_container),
    ) -> None:
        """お気に入りを削除"""
        deleted = await container.history_store.delete_favorite(user_id, favorite_id)
        if not deleted:
            raise HTTPException(status_code=404, detail="Favorite not found")

    @app.get("/locations/search")
    async def search_locations(
        q: str = Query(default=""),
        user_id: str = Depends(get_user_id),
        container: LocationServiceContainer = Depends(get_container),
    ) -> dict[str, Any]:
        """最近使った場所・お気に入りの検索（3文字未満は空）"""
        result = await container.history_store.search_by_text(user_id, q)
        return result.to_api_dict()

    @app.get("/geocode")
    async def geocode(
        address: str = Query(...),
        container: LocationServiceContainer = Depends(get_container),
    ) -> dict[str, Any]:
        """住所 → 座標（全プロバイダー失敗時は verified=false）"""
        result = await container.fallback_resolver.forward(address)
        return result.to_dict()

    @app.get("/geocode/reverse")
    async def reverse_geocode(
        lat: float = Query(...),
        lng: float = Query(...),
        container: LocationServiceContainer = Depends(get_container),
    ) -> dict[str, Any]:
        """座標 → 住所（全プロバイダー失敗時は "lat, lng" と verified=false）"""
        result = await container.fallback_resolver.reverse(lat, lng)
        return result.to_dict()

    return app


if __name__ == "__main__":
    import uvicorn

    settings = Settings()
    setup_logging(
        level=settings.log_level,
        enable_cloud_logging=settings.gcp_logging_enabled,
        project_id=settings.gcp_project_id,
        log_name=settings.project_name,
    )

    uvicorn.run(
        create_app(LocationServiceContainer(settings)),
        host="0.0.0.0",
        port=settings.port,
        log_level=settings.log_level.lower(),
    )
