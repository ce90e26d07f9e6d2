import pytest

from config.config import Config
from models.search import SourceId
from orchestrator.source_registry import SourceRegistry


def _config(tmp_path):
    return Config(env_file=tmp_path / "missing.env")


def test_defaults(tmp_path):
    config = _config(tmp_path)

    assert config.LAW_API_KEY is None
    assert config.REQUEST_TIMEOUT_S == 10.0
    assert config.DISPATCH_TIMEOUT_S == 30.0
    assert config.MAX_RETRIES == 3
    assert config.RETRY_BASE_DELAY_S == 0.1
    assert config.MAX_CONCURRENT is None
    assert config.CACHE_ENABLED
    assert config.CACHE_TTL_S == 86400.0
    assert config.CACHE_DB_PATH is None


def test_shared_key_applies_to_every_source(mock_env, tmp_path):
    config = _config(tmp_path)

    assert all(config.api_key_for(s) == "test-oc-key" for s in SourceId)
    assert config.missing_keys() == []
    assert config.validate()


def test_per_source_key_wins(monkeypatch, tmp_path):
    monkeypatch.setenv("LAW_API_KEY", "shared")
    monkeypatch.setenv("LAW_PRECEDENT_API_KEY", "prec-only")
    config = _config(tmp_path)

    assert config.api_key_for(SourceId.PRECEDENT) == "prec-only"
    assert config.api_key_for(SourceId.STATUTE) == "shared"


def test_missing_keys_reported(monkeypatch, tmp_path, capsys):
    monkeypatch.setenv("LAW_STATUTE_API_KEY", "only-statute")
    config = _config(tmp_path)

    assert SourceId.STATUTE not in config.missing_keys()
    assert len(config.missing_keys()) == 4
    assert not config.validate()
    assert "precedent" in capsys.readouterr().err


def test_per_source_overrides(mock_env, monkeypatch, tmp_path):
    monkeypatch.setenv("LAW_ORDINANCE_TIMEOUT_S", "2.5")
    monkeypatch.setenv("LAW_ORDINANCE_MAX_RETRIES", "0")
    config = _config(tmp_path)

    assert config.timeout_for(SourceId.ORDINANCE) == 2.5
    assert config.timeout_for(SourceId.STATUTE) == 5.0
    assert config.max_retries_for(SourceId.ORDINANCE) == 0
    assert config.max_retries_for(SourceId.STATUTE) == 3


def test_cache_ttl_precedence(mock_env, tmp_path):
    config = _config(tmp_path)

    # env override > registry value > global default
    assert config.cache_ttl_for(SourceId.PRECEDENT, registry_ttl=604800.0) == 60.0
    assert config.cache_ttl_for(SourceId.STATUTE, registry_ttl=3600.0) == 3600.0
    assert config.cache_ttl_for(SourceId.STATUTE) == 86400.0


def test_cache_disabled(monkeypatch, tmp_path):
    monkeypatch.setenv("LAW_CACHE_ENABLED", "false")
    assert not _config(tmp_path).CACHE_ENABLED


def test_bad_number_rejected(monkeypatch, tmp_path):
    monkeypatch.setenv("LAW_DISPATCH_TIMEOUT_S", "soon")
    with pytest.raises(ValueError):
        _config(tmp_path)


def test_env_file_is_loaded(tmp_path):
    env_file = tmp_path / ".env"
    env_file.write_text("LAW_API_KEY=from-file\nLAW_MAX_CONCURRENT=4\n", encoding="utf-8")

    config = Config(env_file=env_file)

    assert config.LAW_API_KEY == "from-file"
    assert config.MAX_CONCURRENT == 4


class TestSourceRegistry:
    """Tests for SourceRegistry.from_yaml()."""

    def test_bundled_registry(self, registry):
        assert [e.source for e in registry.list_sources()] == list(SourceId)
        assert registry.get(SourceId.STATUTE).target == "law"
        assert registry.get(SourceId.INTERPRETATION).target == "expc"
        assert registry.get(SourceId.PRECEDENT).cache_ttl_s == 604800.0
        assert registry.get(SourceId.STATUTE).cache_ttl_s is None
        assert registry.get(SourceId.ORDINANCE).display_name == "자치법규정보시스템"

    def test_missing_source_rejected(self, tmp_path):
        path = tmp_path / "registry.yaml"
        path.write_text(
            "sources:\n"
            "  statute:\n"
            "    display_name: x\n"
            "    search_url: http://x\n"
            "    detail_url: http://x\n"
            "    target: law\n",
            encoding="utf-8",
        )
        with pytest.raises(ValueError, match="missing"):
            SourceRegistry.from_yaml(str(path))

    def test_unknown_source_rejected(self, tmp_path):
        path = tmp_path / "registry.yaml"
        path.write_text("sources:\n  blog:\n    display_name: x\n", encoding="utf-8")
        with pytest.raises(ValueError, match="Unknown source"):
            SourceRegistry.from_yaml(str(path))

    def test_missing_file(self, tmp_path):
        with pytest.raises(ValueError):
            SourceRegistry.from_yaml(str(tmp_path / "nope.yaml"))
