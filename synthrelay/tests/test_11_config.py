import pytest

from synthrelay.api.config.config_handler import ConfigHandler
from synthrelay.api.models.config_model import Config


@pytest.fixture
def config_handler(tmp_path, monkeypatch):
    for name in [name for name in Config.__annotations__ if name.isupper()]:
        monkeypatch.delenv(f"SYNTHRELAY_{name}", raising=False)
    return ConfigHandler(root_state_dir=tmp_path)


def test_defaults_without_config_file(config_handler):
    config = config_handler.build_config()

    assert config_handler.check_config() is False
    assert config.API_PORT == 7676
    assert config.STORE_PROVIDER == "memory"
    assert config.MESSAGE_TTL_SECONDS == 300


def test_environment_overrides_defaults(config_handler, monkeypatch):
    monkeypatch.setenv("SYNTHRELAY_API_PORT", "9000")
    monkeypatch.setenv("SYNTHRELAY_DEV_MODE", "true")
    monkeypatch.setenv("SYNTHRELAY_ALLOWED_ORIGINS", "https://a.example, https://b.example")
    monkeypatch.setenv("SYNTHRELAY_KICK_HOLD_SECONDS", "2.5")

    config = config_handler.build_config()

    assert config.API_PORT == 9000
    assert config.DEV_MODE is True
    assert config.ALLOWED_ORIGINS == ["https://a.example", "https://b.example"]
    assert config.KICK_HOLD_SECONDS == 2.5


def test_config_file_wins_over_environment(config_handler, monkeypatch):
    monkeypatch.setenv("SYNTHRELAY_API_PORT", "9000")
    monkeypatch.setenv("SYNTHRELAY_WORKERS", "4")
    config_handler.config_toml_path.write_text("[server]\napi_port = 8000\n", encoding="utf-8")

    config = config_handler.build_config()

    assert config.API_PORT == 8000
    # Keys missing from the file keep the environment value
    assert config.WORKERS == 4


def test_unparsable_number_keeps_default(config_handler, monkeypatch):
    monkeypatch.setenv("SYNTHRELAY_API_PORT", "not-a-port")

    assert config_handler.build_config().API_PORT == 7676


def test_timeout_must_exceed_ping_interval(config_handler):
    config_handler.config_toml_path.write_text(
        "[peer]\nping_interval_ms = 2000\nconnection_timeout_ms = 2000\n",
        encoding="utf-8",
    )

    with pytest.raises(ValueError):
        config_handler.build_config()


def test_unknown_store_provider(config_handler, monkeypatch):
    monkeypatch.setenv("SYNTHRELAY_STORE_PROVIDER", "postgres")

    with pytest.raises(ValueError):
        config_handler.build_config()


def test_written_config_is_loaded_back(config_handler):
    config = Config()
    config.STORE_PROVIDER = "redis"
    config.REDIS_URL = "redis://cache:6379/2"
    config.ALLOWED_ORIGINS = ["https://synth.example"]

    config_handler.write_config_toml(config)
    loaded = config_handler.build_config()

    assert config_handler.check_config() is True
    assert loaded.STORE_PROVIDER == "redis"
    assert loaded.REDIS_URL == "redis://cache:6379/2"
    assert loaded.ALLOWED_ORIGINS == ["https://synth.example"]
    assert oct(config_handler.config_toml_path.stat().st_mode & 0o777) == "0o600"
