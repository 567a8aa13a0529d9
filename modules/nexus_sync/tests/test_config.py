"""Tests for environment configuration."""

import os

import pytest
from unittest.mock import MagicMock

from nexus_sync import config as config_module
from nexus_sync.config import SyncConfig

ENV_VARS = [
    "ELASTIC_URL",
    "ELASTICSEARCH_URL",
    "ELASTIC_USER",
    "ELASTICSEARCH_USER",
    "ELASTIC_PASSWORD",
    "ELASTICSEARCH_PASSWORD",
    "NEXUS_INDEX",
    "NEXUS_FIELD_PREFIX",
    "NEXUS_PAGE_SIZE",
    "NEXUS_RETRY_ON_CONFLICT",
    "NEXUS_REFRESH",
    "NEXUS_REQUEST_TIMEOUT",
]


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return tmp_path / "missing.env"


class TestFromEnv:
    """Tests for SyncConfig.from_env."""

    def test_defaults(self, clean_env):
        config = SyncConfig.from_env(str(clean_env))
        assert config.elastic_url == "http://localhost:9200"
        assert config.index_name == "content"
        assert config.field_prefix == "related_"
        assert config.page_size == 100
        assert config.retry_on_conflict == 3
        assert config.refresh is None

    def test_reads_environment(self, clean_env, monkeypatch):
        monkeypatch.setenv("ELASTIC_URL", "http://es:9200")
        monkeypatch.setenv("ELASTIC_USER", "elastic")
        monkeypatch.setenv("ELASTIC_PASSWORD", "secret")
        monkeypatch.setenv("NEXUS_INDEX", "posts")
        monkeypatch.setenv("NEXUS_PAGE_SIZE", "25")
        monkeypatch.setenv("NEXUS_REFRESH", "wait_for")
        config = SyncConfig.from_env(str(clean_env))
        assert config.elastic_url == "http://es:9200"
        assert (config.elastic_user, config.elastic_password) == ("elastic", "secret")
        assert config.index_name == "posts"
        assert config.page_size == 25
        assert config.refresh == "wait_for"

    def test_legacy_url_fallback(self, clean_env, monkeypatch):
        monkeypatch.setenv("ELASTICSEARCH_URL", "http://legacy:9200")
        assert SyncConfig.from_env(str(clean_env)).elastic_url == "http://legacy:9200"

    def test_bad_integer_uses_default(self, clean_env, monkeypatch):
        monkeypatch.setenv("NEXUS_PAGE_SIZE", "lots")
        assert SyncConfig.from_env(str(clean_env)).page_size == 100

    def test_reads_dotenv_file(self, clean_env, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text("NEXUS_INDEX=from-file\n")
        try:
            assert SyncConfig.from_env(str(env_file)).index_name == "from-file"
        finally:
            os.environ.pop("NEXUS_INDEX", None)


class TestValidation:
    def test_page_size_positive(self):
        with pytest.raises(ValueError):
            SyncConfig(page_size=0)

    def test_retry_on_conflict_non_negative(self):
        with pytest.raises(ValueError):
            SyncConfig(retry_on_conflict=-1)


class TestCreateClient:
    """Tests for SyncConfig.create_client."""

    def test_basic_auth(self, monkeypatch):
        client_cls = MagicMock()
        monkeypatch.setattr(config_module, "Elasticsearch", client_cls)
        SyncConfig(elastic_url="http://es:9200", elastic_user="u", elastic_password="p").create_client()
        client_cls.assert_called_once_with("http://es:9200", basic_auth=("u", "p"), request_timeout=30)

    def test_no_auth_without_password(self, monkeypatch):
        client_cls = MagicMock()
        monkeypatch.setattr(config_module, "Elasticsearch", client_cls)
        SyncConfig(elastic_user="u").create_client()
        assert client_cls.call_args.kwargs["basic_auth"] is None
