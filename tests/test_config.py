"""
Configuration tests.
"""

import pytest
from pydantic import ValidationError

from principalsync.config import Settings


def test_defaults():
    config = Settings(_env_file=None)
    assert config.service_user == "group-provisioner"
    assert config.default_idp_name == "saml-idp"
    assert config.default_principal_name == "marketing:saml-idp"
    assert config.system_group_ids == ["everyone"]
    assert config.sync_extension_years == 10


def test_cors_no_wildcard_with_credentials():
    config = Settings(_env_file=None)
    assert config.cors_allow_credentials is True
    assert config.cors_allowed_origins != ["*"]
    assert "X-API-Key" in config.cors_allowed_headers


def test_async_database_url_upgrades_plain_postgres():
    config = Settings(_env_file=None, database_url="postgresql://u:p@db:5432/sync")
    assert config.async_database_url == "postgresql+asyncpg://u:p@db:5432/sync"

    sqlite = Settings(_env_file=None, database_url="sqlite+aiosqlite:///./dir.db")
    assert sqlite.async_database_url == "sqlite+aiosqlite:///./dir.db"


@pytest.mark.parametrize(
    "overrides",
    [
        {"database_url": "mysql://u:p@db/sync"},
        {"port": 0},
        {"default_idp_name": "saml;idp"},
        {"default_idp_name": ""},
        {"sync_extension_years": -1},
    ],
)
def test_invalid_settings_rejected(overrides):
    with pytest.raises(ValidationError):
        Settings(_env_file=None, **overrides)


def test_env_prefix(monkeypatch):
    monkeypatch.setenv("PRINCIPALSYNC_TRUSTED_CALLER_ID", "other@techacct.local")
    monkeypatch.setenv("PRINCIPALSYNC_SYNC_EXTENSION_YEARS", "3")
    config = Settings(_env_file=None)
    assert config.trusted_caller_id == "other@techacct.local"
    assert config.sync_extension_years == 3
