import pytest

import poll_controller as m


def _clear_env(monkeypatch: pytest.MonkeyPatch, name: str):
    # setenv first so monkeypatch restores "unset" even if load_dotenv writes it
    monkeypatch.setenv(name, "")
    monkeypatch.delenv(name)


def test_defaults():
    config = m.PollConfig()

    assert config.initial_value is None
    assert config.interval_ms == m.DEFAULT_INTERVAL_MS == 5000
    assert config.should_refresh_if("anything") is True
    assert config.on_change is None


@pytest.mark.asyncio
async def test_default_producer_is_async_identity():
    config = m.PollConfig()
    assert await config.refresh_value("same") == "same"


@pytest.mark.parametrize("interval", [0, -1, 1.5, "1000", True, None])
def test_invalid_interval_rejected(interval):
    with pytest.raises(m.ConfigError):
        m.PollConfig(interval_ms=interval)


def test_config_error_is_value_error():
    with pytest.raises(ValueError):
        m.PollConfig(interval_ms=-5)


@pytest.mark.parametrize("field", ["refresh_value", "should_refresh_if", "on_change"])
def test_non_callable_rejected(field):
    with pytest.raises(m.ConfigError, match=field):
        m.PollConfig(**{field: 42})


def test_settings_default_when_env_missing(monkeypatch: pytest.MonkeyPatch, tmp_path):
    _clear_env(monkeypatch, "TESTPOLL_INTERVAL_MS")

    settings = m.PollSettings.from_env(prefix="TESTPOLL_", dotenv_path=tmp_path / "none.env")

    assert settings.interval_ms == m.DEFAULT_INTERVAL_MS


def test_settings_read_from_environment(monkeypatch: pytest.MonkeyPatch, tmp_path):
    monkeypatch.setenv("TESTPOLL_INTERVAL_MS", " 2500 ")

    settings = m.PollSettings.from_env(prefix="TESTPOLL_", dotenv_path=tmp_path / "none.env")

    assert settings.interval_ms == 2500


def test_settings_read_from_dotenv_file(monkeypatch: pytest.MonkeyPatch, tmp_path):
    _clear_env(monkeypatch, "DOTPOLL_INTERVAL_MS")
    env_file = tmp_path / ".env"
    env_file.write_text("DOTPOLL_INTERVAL_MS=750\n")

    settings = m.PollSettings.from_env(prefix="DOTPOLL_", dotenv_path=env_file)

    assert settings.interval_ms == 750


def test_environment_wins_over_dotenv(monkeypatch: pytest.MonkeyPatch, tmp_path):
    monkeypatch.setenv("WINPOLL_INTERVAL_MS", "100")
    env_file = tmp_path / ".env"
    env_file.write_text("WINPOLL_INTERVAL_MS=900\n")

    settings = m.PollSettings.from_env(prefix="WINPOLL_", dotenv_path=env_file)

    assert settings.interval_ms == 100


@pytest.mark.parametrize("raw", ["soon", "0", "-10", "1.5"])
def test_settings_reject_bad_values(monkeypatch: pytest.MonkeyPatch, tmp_path, raw):
    monkeypatch.setenv("BADPOLL_INTERVAL_MS", raw)

    with pytest.raises(m.ConfigError):
        m.PollSettings.from_env(prefix="BADPOLL_", dotenv_path=tmp_path / "none.env")


def test_settings_to_config():
    def predicate(value):
        return value is None

    config = m.PollSettings(interval_ms=1234).to_config(
        initial_value=3, should_refresh_if=predicate
    )

    assert isinstance(config, m.PollConfig)
    assert config.interval_ms == 1234
    assert config.initial_value == 3
    assert config.should_refresh_if is predicate


def test_settings_to_config_explicit_interval_wins():
    config = m.PollSettings(interval_ms=1234).to_config(interval_ms=10)
    assert config.interval_ms == 10
