"""入力補完機能のドメインモデル"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from ...geocoding.domain.models import Location, SearchSuggestion
from ...locations.domain.models import FavoriteLocationEntry, RecentLocationEntry


class ResolverState(str, Enum):
    """入力欄の状態"""

    IDLE = "idle"  # 未入力
    SHOWING_HISTORY = "showing_history"  # お気に入り＋最近使った場所を表示
    SEARCHING = "searching"  # 検索中
    SHOWING_RESULTS = "showing_results"  # 検索結果を表示
    SELECTED = "selected"  # 選択済み


class ResultSource(str, Enum):
    """候補の出所"""

    FAVORITE = "favorite"
    RECENT = "recent"
    SUGGESTION = "suggestion"


@dataclass(frozen=True)
class ResultItem:
    """候補リストの1行"""

    source: ResultSource
    location: Location
    label: str
    entry_id: Optional[str] = None

    @property
    def normalized_address(self) -> str:
        return self.location.normalized_address

    @classmethod
    def from_favorite(cls, entry: FavoriteLocationEntry) -> "ResultItem":
        return cls(
            source=ResultSource.FAVORITE,
            location=entry.location,
            label=entry.label,
            entry_id=entry.id,
        )

    @classmethod
    def from_recent(cls, entry: RecentLocationEntry) -> "ResultItem":
        return cls(
            source=ResultSource.RECENT,
            location=entry.location,
            label=entry.address,
            entry_id=entry.id,
        )

    @classmethod
    def from_suggestion(cls, suggestion: SearchSuggestion) -> "ResultItem":
        location = suggestion.to_location()
        return cls(
            source=ResultSource.SUGGESTION,
            location=location,
            label=location.address,
            entry_id=suggestion.place_id,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source.value,
            "label": self.label,
            "id": self.entry_id,
            **self.location.to_api_dict(),
        }


@dataclass(frozen=True)
class SelectionResult:
    """
    選択の確定結果

    verified が False の場合、座標は検証されていない（None の場合もある）。
    呼び出し側は料金計算・経路探索に使うかどうかを判断する
    """

    location: Location
    verified: bool
    source: ResultSource
    warnings: tuple[str, ...] = ()
