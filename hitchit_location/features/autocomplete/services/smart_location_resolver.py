"""スマート位置検索（入力欄にバインドする集約コンポーネント）"""

import asyncio
from typing import Callable, Optional

from ..domain.models import ResolverState, ResultItem, SelectionResult
from ...geocoding.domain.models import GeocodeResult, Location, SearchSuggestion
from ...geocoding.providers.base import GeocodingProvider
from ...geocoding.services.fallback_resolver import ProviderFallbackResolver
from ...locations.domain.models import (
    FavoriteLocationEntry,
    LocationSearchResult,
    RecentLocationEntry,
)
from ...storage.repositories.location_history_repository import LocationHistoryStore
from ....shared.exceptions.errors import (
    GeocodingError,
    LocationServiceError,
    StorageError,
    ValidationError,
)
from ....shared.logging.config import get_logger
from ....shared.utils.text import normalize_text
from .ranking import build_history_items, merge_results
from .suggestion_cache import SuggestionCache

logger = get_logger(__name__)


class SmartLocationResolver:
    """
    お気に入り・最近使った場所・ライブ候補を1つのリストにまとめる

    状態遷移:
        IDLE → SHOWING_HISTORY（未入力または最小文字数未満）
             → SEARCHING（最小文字数以上、デバウンス後に検索）
             → SHOWING_RESULTS → SELECTED → IDLE（reset）

    検索はデバウンスされ、新しい入力があるとタイマーはリセットされる。
    応答が前後しても、最新のクエリに対する応答のみが results に反映される。
    update_query() はイベントループ上から呼び出すこと
    """

    def __init__(
        self,
        user_id: str,
        history_store: LocationHistoryStore,
        fallback_resolver: ProviderFallbackResolver,
        suggestion_source: Optional[GeocodingProvider] = None,
        min_query_length: int = 3,
        debounce_seconds: float = 0.25,
        recent_display_limit: int = 5,
        suggestion_limit: int = 5,
        suggestion_cache: Optional[SuggestionCache] = None,
        on_change: Optional[Callable[[ResolverState], None]] = None,
        on_warning: Optional[Callable[[str], None]] = None,
    ) -> None:
        """
        Args:
            user_id: ユーザーID
            history_store: 最近使った場所・お気に入りの保存先
            fallback_resolver: 座標解決に使うフォールバックリゾルバー
            suggestion_source: ライブ候補を返すプロバイダー（None の場合は履歴のみ）
            min_query_length: ライブ検索を開始する最小文字数
            debounce_seconds: 入力停止から検索発行までの待機時間
            recent_display_limit: 未入力時に表示する最近使った場所の件数
            suggestion_limit: ライブ候補の最大件数
            suggestion_cache: ライブ候補のキャッシュ
            on_change: 状態が変わるたびに呼ばれるコールバック
            on_warning: UIにトースト表示する警告のコールバック

        Raises:
            ValidationError: user_id が空の場合
        """
        if not user_id or not user_id.strip():
            raise ValidationError("user_id must not be empty")

        self.user_id = user_id
        self.history_store = history_store
        self.fallback_resolver = fallback_resolver
        self.suggestion_source = suggestion_source
        self.min_query_length = min_query_length
        self.debounce_seconds = debounce_seconds
        self.recent_display_limit = recent_display_limit
        self.suggestion_limit = suggestion_limit
        self.suggestion_cache = suggestion_cache or SuggestionCache()
        self.on_change = on_change
        self.on_warning = on_warning

        self.state = ResolverState.IDLE
        self.query = ""
        self.results: list[ResultItem] = []
        self.is_loading = False
        self.last_selection: Optional[SelectionResult] = None
        self.live_search_count = 0

        self._recents: list[RecentLocationEntry] = []
        self._favorites: list[FavoriteLocationEntry] = []
        self._sequence = 0
        self._timer: Optional[asyncio.TimerHandle] = None
        self._tasks: set[asyncio.Task] = set()

    async def open(self) -> None:
        """入力欄にフォーカスした時に呼ぶ。履歴を読み込み SHOWING_HISTORY へ"""
        try:
            await self._refresh_history()
        except StorageError as e:
            logger.error(f"Failed to load location history for {self.user_id}: {e}")
        if self._below_threshold(self.query):
            self._show_history()

    def update_query(self, text: str) -> None:
        """
        キー入力ごとに呼ぶ

        最小文字数未満なら読み込み済みの履歴を表示し、外部呼び出しはしない。
        それ以上ならデバウンスタイマーを（再）設定する
        """
        self.query = text
        self._sequence += 1
        self._cancel_timer()

        if self._below_threshold(text):
            self._show_history()
            return

        sequence = self._sequence
        query = normalize_text(text) or ""
        loop = asyncio.get_running_loop()

        self.is_loading = True
        self._set_state(ResolverState.SEARCHING)
        self._timer = loop.call_later(self.debounce_seconds, self._fire_search, sequence, query)

    async def settle(self) -> None:
        """保留中のデバウンスタイマーと実行中の検索がすべて終わるまで待つ"""
        while self._timer is not None or self._tasks:
            if self._tasks:
                await asyncio.gather(*list(self._tasks), return_exceptions=True)
            else:
                await asyncio.sleep(self.debounce_seconds / 2 or 0.001)

    async def select(self, item: ResultItem) -> SelectionResult:
        """
        候補の選択を確定

        座標がない候補はフォールバックリゾルバーで解決する。解決できなくても
        選択は止めず、verified=False の住所のみの地点として確定し警告を出す。
        選択のたびに record_usage を呼ぶ（お気に入りの選択も含む）が、
        保存失敗は選択結果に影響しない

        Args:
            item: 選択した候補

        Returns:
            SelectionResult: 確定した地点
        """
        # 選択以前に発行した検索の応答は反映しない
        self._sequence += 1
        self._cancel_timer()

        location = item.location
        verified = True
        warnings: list[str] = []

        if not location.has_coordinates:
            result = await self._resolve_coordinates(location)
            location = result.location
            verified = result.verified
            if not verified:
                message = f"Could not verify the location of '{location.address}'"
                warnings.append(message)
                self._warn(message)

        try:
            await self.history_store.record_usage(self.user_id, location)
            await self._refresh_history()
        except LocationServiceError as e:
            logger.error(f"Failed to record location usage for {self.user_id}: {e}")

        selection = SelectionResult(
            location=location,
            verified=verified,
            source=item.source,
            warnings=tuple(warnings),
        )

        self.last_selection = selection
        self.query = location.address
        self.results = []
        self.is_loading = False
        self._set_state(ResolverState.SELECTED)

        logger.info(
            f"Location selected: {location.address} "
            f"(source={item.source.value}, verified={verified})"
        )
        return selection

    def can_add_favorite(self, name: str) -> bool:
        """お気に入り追加ボタンを有効にできるか"""
        return (
            self.state is ResolverState.SELECTED
            and self.last_selection is not None
            and bool(normalize_text(name))
        )

    async def add_favorite(self, name: str) -> FavoriteLocationEntry:
        """
        直前に選択した地点をお気に入りに追加

        Raises:
            ValidationError: 未選択、または名前が空の場合
            DuplicateNameError: 同名のお気に入りが既にある場合
        """
        if self.state is not ResolverState.SELECTED or self.last_selection is None:
            raise ValidationError("Select a location before saving it as a favorite")
        if not normalize_text(name):
            raise ValidationError("Favorite name must not be empty")

        entry = await self.history_store.add_favorite(
            self.user_id, name, self.last_selection.location
        )

        try:
            await self._refresh_history()
        except StorageError as e:
            logger.warning(f"Failed to refresh favorites after add: {e}")

        return entry

    def reset(self) -> None:
        """入力をクリアして IDLE に戻す"""
        self._sequence += 1
        self._cancel_timer()
        self.query = ""
        self.results = []
        self.is_loading = False
        self._set_state(ResolverState.IDLE)

    def _below_threshold(self, text: str) -> bool:
        return len(normalize_text(text) or "") < self.min_query_length

    def _show_history(self) -> None:
        self.is_loading = False
        self.results = build_history_items(
            self._recents, self._favorites, recent_limit=self.recent_display_limit
        )
        self._set_state(ResolverState.SHOWING_HISTORY)

    def _fire_search(self, sequence: int, query: str) -> None:
        self._timer = None
        if sequence != self._sequence:
            return

        task = asyncio.get_running_loop().create_task(self._search(sequence, query))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _search(self, sequence: int, query: str) -> None:
        history, suggestions = await asyncio.gather(
            self._search_history(query),
            self._fetch_suggestions(query),
        )

        if sequence != self._sequence:
            logger.debug(f"Discarding stale search response for: {query}")
            return

        self.results = merge_results(history.favorite, history.recent, suggestions)
        self.is_loading = False
        self._set_state(ResolverState.SHOWING_RESULTS)

    async def _search_history(self, query: str) -> LocationSearchResult:
        try:
            return await self.history_store.search_by_text(self.user_id, query)
        except StorageError as e:
            logger.error(f"History search failed for {self.user_id}: {e}")
            return LocationSearchResult()

    async def _fetch_suggestions(self, query: str) -> list[SearchSuggestion]:
        if self.suggestion_source is None:
            return []

        cached = self.suggestion_cache.get(query)
        if cached is not None:
            return cached

        self.live_search_count += 1
        try:
            suggestions = await self.suggestion_source.suggest(query, limit=self.suggestion_limit)
        except GeocodingError as e:
            logger.warning(f"Live suggestions unavailable for '{query}': {e}")
            self._warn("Live search is temporarily unavailable")
            return []

        self.suggestion_cache.put(query, suggestions)
        return suggestions

    async def _resolve_coordinates(self, location: Location) -> GeocodeResult:
        try:
            result = await self.fallback_resolver.forward(location.address)
        except GeocodingError as e:
            logger.warning(f"Coordinate resolution failed for '{location.address}': {e}")
            return GeocodeResult(location=location, verified=False, errors=(str(e),))

        if not result.verified:
            # 縮退時は候補の住所をそのまま使う
            return GeocodeResult(location=location, verified=False, errors=result.errors)
        return result

    async def _refresh_history(self) -> None:
        self._recents, self._favorites = await asyncio.gather(
            self.history_store.get_recents(self.user_id),
            self.history_store.get_favorites(self.user_id),
        )

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _set_state(self, state: ResolverState) -> None:
        self.state = state
        if self.on_change:
            self.on_change(state)

    def _warn(self, message: str) -> None:
        if self.on_warning:
            self.on_warning(message)
