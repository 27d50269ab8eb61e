"""候補リストの組み立て"""

from typing import Iterable, Optional

from ..domain.models import ResultItem
from ...geocoding.domain.models import SearchSuggestion
from ...locations.domain.models import FavoriteLocationEntry, RecentLocationEntry


def build_history_items(
    recents: Iterable[RecentLocationEntry],
    favorites: Iterable[FavoriteLocationEntry],
    recent_limit: Optional[int] = 5,
) -> list[ResultItem]:
    """
    未入力時のリスト: 最近使った場所（上限あり）→ お気に入り（全件）
    """
    recent_items = [ResultItem.from_recent(entry) for entry in recents]
    if recent_limit is not None:
        recent_items = recent_items[:recent_limit]

    return recent_items + [ResultItem.from_favorite(entry) for entry in favorites]


def merge_results(
    favorites: Iterable[FavoriteLocationEntry],
    recents: Iterable[RecentLocationEntry],
    suggestions: Iterable[SearchSuggestion],
) -> list[ResultItem]:
    """
    検索結果をマージ

    お気に入り → 最近使った場所（保存先の並び順のまま）→ ライブ候補 の順。
    最近使った場所とライブ候補は、既に表示した住所（正規化後）と重複するものを除く
    """
    merged = [ResultItem.from_favorite(entry) for entry in favorites]
    seen = {item.normalized_address for item in merged}

    for entry in recents:
        item = ResultItem.from_recent(entry)
        if item.normalized_address in seen:
            continue
        seen.add(item.normalized_address)
        merged.append(item)

    for suggestion in suggestions:
        item = ResultItem.from_suggestion(suggestion)
        if item.normalized_address in seen:
            continue
        seen.add(item.normalized_address)
        merged.append(item)

    return merged
