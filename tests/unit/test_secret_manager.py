"""Secret Manager連携のテスト"""

from unittest.mock import MagicMock

import pytest

from hitchit_location.infrastructure.gcp.secret_manager import SecretManagerClient
from hitchit_location.shared.exceptions.errors import ConfigurationError


@pytest.fixture
def api() -> MagicMock:
    api = MagicMock()
    api.secret_version_path.side_effect = (
        lambda project, secret, version: f"projects/{project}/secrets/{secret}/versions/{version}"
    )
    api.access_secret_version.return_value.payload.data = b"secret-token\n"
    return api


def test_get_secret_is_cached(api) -> None:
    """同じシークレットは1回だけ取得"""
    client = SecretManagerClient("project-1", client=api)

    assert client.get_secret("mapbox-access-token") == "secret-token"
    assert client.get_secret("mapbox-access-token") == "secret-token"

    api.access_secret_version.assert_called_once_with(
        request={"name": "projects/project-1/secrets/mapbox-access-token/versions/latest"}
    )


def test_get_secret_failure(api) -> None:
    """取得失敗は ConfigurationError"""
    api.access_secret_version.side_effect = RuntimeError("permission denied")

    with pytest.raises(ConfigurationError):
        SecretManagerClient("project-1", client=api).get_secret("google-maps-api-key")


def test_resolve_credential_prefers_local_value(api) -> None:
    """環境変数の値があればSecret Managerを呼ばない"""
    client = SecretManagerClient("project-1", client=api)

    assert client.resolve_credential("local-key", "google-maps-api-key") == "local-key"
    api.access_secret_version.assert_not_called()


def test_resolve_credential_missing_secret(api) -> None:
    """どちらにもなければ None"""
    api.access_secret_version.side_effect = RuntimeError("not found")

    assert SecretManagerClient("project-1", client=api).resolve_credential(None, "x") is None
