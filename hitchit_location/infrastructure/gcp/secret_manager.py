"""GCP Secret Manager連携（ジオコーディングAPIの認証情報）"""
from typing import Any, Optional

from google.cloud import secretmanager

from ...shared.exceptions.errors import ConfigurationError
from ...shared.logging.config import get_logger

logger = get_logger(__name__)


class SecretManagerClient:
    """
    プロバイダーの認証情報を取得する

    取得した値はプロセス内でキャッシュし、リゾルバー生成のたびにAPIを呼ばない
    """

    def __init__(self, project_id: str, client: Optional[Any] = None):
        """
        Args:
            project_id: GCPプロジェクトID
            client: SecretManagerServiceClient（省略時は生成）
        """
        self.project_id = project_id
        self.client = client or secretmanager.SecretManagerServiceClient()
        self._cache: dict[str, str] = {}

    def get_secret(self, secret_name: str, version: str = "latest") -> str:
        """
        シークレットの値を取得

        Raises:
            ConfigurationError: シークレットが存在しない、または取得に失敗した場合
        """
        name = self.client.secret_version_path(self.project_id, secret_name, version)
        if name in self._cache:
            return self._cache[name]

        try:
            response = self.client.access_secret_version(request={"name": name})
        except Exception as e:
            logger.error(f"Failed to fetch secret {secret_name}: {e}")
            raise ConfigurationError(f"Failed to fetch secret {secret_name}: {e}") from e

        value = response.payload.data.decode("UTF-8").strip()
        self._cache[name] = value
        logger.info(f"Fetched secret: {secret_name}")
        return value

    def resolve_credential(self, local_value: Optional[str], secret_name: str) -> Optional[str]:
        """
        認証情報を解決（環境変数の値を優先し、なければSecret Managerから取得）

        どちらにもない場合は None を返し、呼び出し側でそのプロバイダーを無効にする
        """
        if local_value:
            return local_value

        try:
            return self.get_secret(secret_name)
        except ConfigurationError:
            logger.warning(f"Secret {secret_name} not available, credential left unset")
            return None
