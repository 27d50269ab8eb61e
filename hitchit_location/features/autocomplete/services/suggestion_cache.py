"""ライブ検索候補のキャッシュ"""

import time
from collections import OrderedDict
from typing import Callable, Optional

from ...geocoding.domain.models import SearchSuggestion
from ....shared.logging.config import get_logger
from ....shared.utils.text import normalize_address

logger = get_logger(__name__)


class SuggestionCache:
    """
    正規化したクエリごとに補完候補を保持するキャッシュ

    有効期間を過ぎたエントリは返さず、上限を超えたら最も古いクエリから破棄する
    """

    def __init__(
        self,
        ttl_seconds: float = 300,
        max_entries: int = 100,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Args:
            ttl_seconds: 有効期間（秒）
            max_entries: 保持する最大クエリ数
            clock: 単調増加する現在時刻（秒）を返す関数
        """
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self.clock = clock
        self._entries: OrderedDict[str, tuple[float, list[SearchSuggestion]]] = OrderedDict()

    def get(self, query: str) -> Optional[list[SearchSuggestion]]:
        key = normalize_address(query)
        cached = self._entries.get(key)
        if cached is None:
            return None

        stored_at, suggestions = cached
        if self.clock() - stored_at > self.ttl_seconds:
            del self._entries[key]
            logger.debug(f"Suggestion cache expired: {key}")
            return None

        logger.debug(f"Suggestion cache hit: {key}")
        return list(suggestions)

    def put(self, query: str, suggestions: list[SearchSuggestion]) -> None:
        key = normalize_address(query)
        self._entries.pop(key, None)
        self._entries[key] = (self.clock(), list(suggestions))

        while len(self._entries) > self.max_entries:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug(f"Suggestion cache evicted: {evicted}")

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
