"""最近使った場所・お気に入りのリポジトリ"""

import asyncio
import threading
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import replace
from datetime import datetime
from typing import Any, Callable, Optional

from ...geocoding.domain.models import Location
from ...locations.domain.models import (
    FavoriteLocationEntry,
    LocationSearchResult,
    RecentLocationEntry,
    icon_for_name,
    rank_recents,
)
from ....shared.exceptions.errors import DuplicateNameError, StorageError, ValidationError
from ....shared.logging.config import get_logger
from ....shared.utils.datetime_utils import now_utc
from ....shared.utils.text import address_key, matches_query, normalize_text
from ..clients.firestore_client import FirestoreClient

logger = get_logger(__name__)

# 履歴検索を行う最小文字数
MIN_SEARCH_LENGTH = 3


def merge_location(previous: Location, latest: Location) -> Location:
    """
    同じ住所の再利用時に保存内容を更新

    新しい方に座標がなければ以前の座標・住所要素を引き継ぐ
    """
    if latest.has_coordinates:
        return latest
    return replace(previous, address=latest.address)


class LocationHistoryStore(ABC):
    """
    最近使った場所・お気に入りの保存先

    すべての操作は非同期。record_usage は同一住所への同時呼び出しでも
    利用回数が失われない（アトミックな upsert）こと
    """

    def __init__(self, min_search_length: int = MIN_SEARCH_LENGTH) -> None:
        self.min_search_length = min_search_length

    @abstractmethod
    async def get_recents(
        self, user_id: str, limit: Optional[int] = None
    ) -> list[RecentLocationEntry]:
        """利用回数の降順 → 最終利用日時の降順で取得"""

    @abstractmethod
    async def record_usage(self, user_id: str, location: Location) -> RecentLocationEntry:
        """正規化住所をキーに upsert し、利用回数を1増やす"""

    @abstractmethod
    async def get_favorites(self, user_id: str) -> list[FavoriteLocationEntry]:
        """登録順で取得"""

    @abstractmethod
    async def add_favorite(
        self, user_id: str, name: str, location: Location
    ) -> FavoriteLocationEntry:
        """
        お気に入りを追加

        Raises:
            ValidationError: 名前が空の場合
            DuplicateNameError: 同名（大文字小文字無視）のお気に入りが既にある場合
        """

    @abstractmethod
    async def delete_favorite(self, user_id: str, favorite_id: str) -> bool:
        """お気に入りを削除。存在しなかった場合は False"""

    async def search_by_text(self, user_id: str, query: str) -> LocationSearchResult:
        """
        住所・名前に対する部分一致検索

        最小文字数未満のクエリは保存先にアクセスせず空の結果を返す

        Args:
            user_id: ユーザーID
            query: 検索文字列

        Returns:
            LocationSearchResult: 一致した最近使った場所（表示順）とお気に入り（登録順）
        """
        text = normalize_text(query) or ""
        if len(text) < self.min_search_length:
            return LocationSearchResult()

        recents, favorites = await asyncio.gather(
            self.get_recents(user_id),
            self.get_favorites(user_id),
        )

        return LocationSearchResult(
            recent=[
                entry
                for entry in recents
                if matches_query(
                    text,
                    entry.address,
                    entry.location.detailed_address.city,
                    entry.location.detailed_address.state,
                )
            ],
            favorite=[
                entry for entry in favorites if matches_query(text, entry.name, entry.address)
            ],
        )

    @staticmethod
    def _validate_user_id(user_id: str) -> None:
        if not user_id or not user_id.strip():
            raise ValidationError("user_id must not be empty")

    @staticmethod
    def _validate_favorite_name(name: str) -> str:
        normalized = normalize_text(name)
        if not normalized:
            raise ValidationError("Favorite name must not be empty")
        return normalized


class InMemoryLocationHistoryStore(LocationHistoryStore):
    """
    メモリ内の保存先（開発・テスト用）

    変更操作はロック内で読み取り → 更新 → 書き込みを行う
    """

    def __init__(
        self,
        clock: Callable[[], datetime] = now_utc,
        min_search_length: int = MIN_SEARCH_LENGTH,
    ) -> None:
        super().__init__(min_search_length=min_search_length)
        self.clock = clock
        self._recents: dict[str, dict[str, RecentLocationEntry]] = defaultdict(dict)
        self._favorites: dict[str, dict[str, FavoriteLocationEntry]] = defaultdict(dict)
        self._lock = threading.Lock()

        logger.info("InMemoryLocationHistoryStore initialized")

    async def get_recents(
        self, user_id: str, limit: Optional[int] = None
    ) -> list[RecentLocationEntry]:
        self._validate_user_id(user_id)
        with self._lock:
            entries = [replace(entry) for entry in self._recents[user_id].values()]
        return rank_recents(entries, limit)

    async def record_usage(self, user_id: str, location: Location) -> RecentLocationEntry:
        self._validate_user_id(user_id)
        key = address_key(location.address)

        with self._lock:
            existing = self._recents[user_id].get(key)
            if existing is None:
                entry = RecentLocationEntry(
                    id=key, location=location, usage_count=1, last_used_at=self.clock()
                )
            else:
                entry = RecentLocationEntry(
                    id=key,
                    location=merge_location(existing.location, location),
                    usage_count=existing.usage_count + 1,
                    last_used_at=self.clock(),
                )
            self._recents[user_id][key] = entry

        logger.debug(f"Recorded usage for {user_id}: {location.address} (count={entry.usage_count})")
        return replace(entry)

    async def get_favorites(self, user_id: str) -> list[FavoriteLocationEntry]:
        self._validate_user_id(user_id)
        with self._lock:
            return [replace(entry) for entry in self._favorites[user_id].values()]

    async def add_favorite(
        self, user_id: str, name: str, location: Location
    ) -> FavoriteLocationEntry:
        self._validate_user_id(user_id)
        favorite_name = self._validate_favorite_name(name)
        key = address_key(favorite_name)

        with self._lock:
            if key in self._favorites[user_id]:
                raise DuplicateNameError(f"Favorite named '{favorite_name}' already exists")

            entry = FavoriteLocationEntry(
                id=key,
                name=favorite_name,
                location=location,
                icon=icon_for_name(favorite_name),
                created_at=self.clock(),
            )
            self._favorites[user_id][key] = entry

        logger.info(f"Favorite added for {user_id}: {favorite_name}")
        return replace(entry)

    async def delete_favorite(self, user_id: str, favorite_id: str) -> bool:
        self._validate_user_id(user_id)
        with self._lock:
            removed = self._favorites[user_id].pop(favorite_id, None)
        return removed is not None


class FirestoreLocationHistoryStore(LocationHistoryStore):
    """
    Firestoreの保存先

    users/{user_id}/recent_locations/{住所キー}
    users/{user_id}/favorite_locations/{名前キー}

    同期APIはスレッドで実行する
    """

    def __init__(
        self,
        firestore_client: FirestoreClient,
        users_collection: str = "users",
        recent_collection: str = "recent_locations",
        favorites_collection: str = "favorite_locations",
        clock: Callable[[], datetime] = now_utc,
        min_search_length: int = MIN_SEARCH_LENGTH,
    ) -> None:
        """
        Args:
            firestore_client: Firestoreクライアント
            users_collection: ユーザーコレクション名
            recent_collection: 最近使った場所のサブコレクション名
            favorites_collection: お気に入りのサブコレクション名
            clock: 現在時刻を返す関数
            min_search_length: 履歴検索の最小文字数
        """
        super().__init__(min_search_length=min_search_length)
        self.client = firestore_client
        self.users_collection = users_collection
        self.recent_collection = recent_collection
        self.favorites_collection = favorites_collection
        self.clock = clock

        logger.info("FirestoreLocationHistoryStore initialized")

    async def get_recents(
        self, user_id: str, limit: Optional[int] = None
    ) -> list[RecentLocationEntry]:
        self._validate_user_id(user_id)
        collection = self._collection(user_id, self.recent_collection)
        documents = await asyncio.to_thread(self.client.stream_documents, collection)

        entries = [self._parse(RecentLocationEntry.from_firestore_dict, doc) for doc in documents]
        return rank_recents(entries, limit)

    async def record_usage(self, user_id: str, location: Location) -> RecentLocationEntry:
        self._validate_user_id(user_id)
        key = address_key(location.address)
        collection = self._collection(user_id, self.recent_collection)

        def update(current: Optional[dict[str, Any]]) -> dict[str, Any]:
            if current is None:
                entry = RecentLocationEntry(
                    id=key, location=location, usage_count=1, last_used_at=self.clock()
                )
            else:
                previous = RecentLocationEntry.from_firestore_dict(current)
                entry = RecentLocationEntry(
                    id=key,
                    location=merge_location(previous.location, location),
                    usage_count=previous.usage_count + 1,
                    last_used_at=self.clock(),
                )
            return entry.to_firestore_dict()

        data = await asyncio.to_thread(self.client.upsert_in_transaction, collection, key, update)
        entry = self._parse(RecentLocationEntry.from_firestore_dict, data)

        logger.debug(f"Recorded usage for {user_id}: {location.address} (count={entry.usage_count})")
        return entry

    async def get_favorites(self, user_id: str) -> list[FavoriteLocationEntry]:
        self._validate_user_id(user_id)
        collection = self._collection(user_id, self.favorites_collection)
        documents = await asyncio.to_thread(
            self.client.stream_documents, collection, "created_at"
        )
        return [self._parse(FavoriteLocationEntry.from_firestore_dict, doc) for doc in documents]

    async def add_favorite(
        self, user_id: str, name: str, location: Location
    ) -> FavoriteLocationEntry:
        self._validate_user_id(user_id)
        favorite_name = self._validate_favorite_name(name)
        key = address_key(favorite_name)
        collection = self._collection(user_id, self.favorites_collection)

        entry = FavoriteLocationEntry(
            id=key,
            name=favorite_name,
            location=location,
            icon=icon_for_name(favorite_name),
            created_at=self.clock(),
        )

        # ドキュメントIDが名前キーなので、同名の作成はFirestore側で拒否される
        created = await asyncio.to_thread(
            self.client.create_document, collection, key, entry.to_firestore_dict()
        )
        if not created:
            raise DuplicateNameError(f"Favorite named '{favorite_name}' already exists")

        logger.info(f"Favorite added for {user_id}: {favorite_name}")
        return entry

    async def delete_favorite(self, user_id: str, favorite_id: str) -> bool:
        self._validate_user_id(user_id)
        collection = self._collection(user_id, self.favorites_collection)
        return await asyncio.to_thread(self.client.delete_document, collection, favorite_id)

    def _collection(self, user_id: str, subcollection: str) -> Any:
        return self.client.user_collection(self.users_collection, user_id, subcollection)

    @staticmethod
    def _parse(factory: Callable[[dict[str, Any]], Any], data: dict[str, Any]) -> Any:
        try:
            return factory(data)
        except (KeyError, TypeError, ValueError, ValidationError) as e:
            raise StorageError(f"Malformed location document: {e}") from e
