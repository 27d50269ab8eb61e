"""レート制限ユーティリティ"""

import threading
import time
from typing import Optional

from ..logging.config import get_logger

logger = get_logger(__name__)


class RateLimiter:
    """
    リクエスト間隔を保証するレート制限

    Nominatimなど、利用規約で秒間リクエスト数が制限されている
    APIの呼び出し前に wait() を呼ぶ
    """

    def __init__(self, requests_per_second: float = 1.0) -> None:
        """
        Args:
            requests_per_second: 秒あたりの最大リクエスト数
        """
        if requests_per_second <= 0:
            raise ValueError("requests_per_second must be positive")

        self.min_interval = 1.0 / requests_per_second
        self.last_request_time: Optional[float] = None
        self._lock = threading.Lock()

        logger.debug(f"RateLimiter initialized: min_interval={self.min_interval:.2f}s")

    def wait(self) -> None:
        """
        前回のリクエストから min_interval 経過するまでスリープ

        スレッドから呼ばれても間隔が守られるようロックを取得する
        """
        with self._lock:
            current_time = time.monotonic()

            if self.last_request_time is not None:
                elapsed = current_time - self.last_request_time
                if elapsed < self.min_interval:
                    sleep_duration = self.min_interval - elapsed
                    logger.debug(f"Rate limiting: sleeping for {sleep_duration:.2f}s")
                    time.sleep(sleep_duration)

            self.last_request_time = time.monotonic()

    def reset(self) -> None:
        """レート制限をリセット"""
        with self._lock:
            self.last_request_time = None
        logger.debug("RateLimiter reset")
