"""ジオコーディングAPI向けHTTPクライアント"""

from typing import Any, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ..exceptions.errors import HTTPError
from ..logging.config import get_logger
from ..utils.text import redact_secrets

logger = get_logger(__name__)

DEFAULT_USER_AGENT = "hitchit-location/1.0"


def build_session(
    max_retries: int,
    backoff_factor: float,
    status_forcelist: tuple[int, ...],
    user_agent: str,
) -> requests.Session:
    """
    リトライ設定とUser-Agentを持つセッションを作成

    フォールバックで次のプロバイダーに進むため、ジオコーディングでは max_retries=0
    """
    retry_strategy = Retry(
        total=max_retries,
        backoff_factor=backoff_factor,
        status_forcelist=status_forcelist,
        allowed_methods=["HEAD", "GET", "OPTIONS"],
        raise_on_status=False,
    )
    adapter = HTTPAdapter(max_retries=retry_strategy)

    session = requests.Session()
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    session.headers.update({"User-Agent": user_agent, "Accept": "application/json"})
    return session


class HTTPClient:
    """
    requests.Session ベースのHTTPクライアント

    失敗はすべて HTTPError に変換し、ステータスコード（取得できた場合）を持たせる。
    プロバイダー側はステータスコードで入力不正か障害かを判定する
    """

    def __init__(
        self,
        timeout: float = 10,
        max_retries: int = 0,
        backoff_factor: float = 0.5,
        status_forcelist: tuple[int, ...] = (500, 502, 503, 504),
        user_agent: Optional[str] = None,
    ):
        """
        Args:
            timeout: リクエストタイムアウト（秒）
            max_retries: 最大リトライ回数
            backoff_factor: バックオフ係数
            status_forcelist: リトライ対象のステータスコード
            user_agent: User-Agentヘッダー
        """
        self.timeout = timeout
        self.user_agent = user_agent or DEFAULT_USER_AGENT
        self.session = build_session(max_retries, backoff_factor, status_forcelist, self.user_agent)

    def get(
        self,
        url: str,
        params: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> requests.Response:
        """
        GETリクエスト

        Raises:
            HTTPError: タイムアウト・接続失敗・4xx/5xx
        """
        logger.debug(f"GET {redact_secrets(url)}")
        try:
            response = self.session.get(url, params=params, headers=headers, timeout=self.timeout)
            response.raise_for_status()
        except requests.Timeout as e:
            logger.warning(f"GET {redact_secrets(url)} timed out after {self.timeout}s")
            raise HTTPError(f"Request to {redact_secrets(url)} timed out") from e
        except requests.RequestException as e:
            # 例外文字列にはクエリ付きURL（トークンを含む）が入る
            status_code = e.response.status_code if e.response is not None else None
            reason = redact_secrets(str(e))
            logger.warning(f"GET {redact_secrets(url)} failed (status={status_code}): {reason}")
            raise HTTPError(
                f"Failed to GET {redact_secrets(url)}: {reason}", status_code=status_code
            ) from e

        return response

    def get_json(
        self,
        url: str,
        params: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> Any:
        """
        GETリクエストを送信し、JSONボディを返す

        Raises:
            HTTPError: リクエスト失敗時、またはボディがJSONでない場合
        """
        response = self.get(url, params=params, headers=headers)
        try:
            return response.json()
        except ValueError as e:
            raise HTTPError(
                f"Invalid JSON response from {redact_secrets(url)}", status_code=response.status_code
            ) from e

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> "HTTPClient":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
