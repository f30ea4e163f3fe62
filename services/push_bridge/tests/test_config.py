import pytest

from services.push_bridge.src.config import DEFAULT_URL, load_settings
from services.push_bridge.src.exceptions import ConfigurationError


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch, tmp_path):
    # Keep a developer's .env or PUSH_BRIDGE_* vars out of these tests
    monkeypatch.chdir(tmp_path)
    for var in ("PUSH_BRIDGE_PROJECT", "PUSH_BRIDGE_SUBSCRIPTION", "PUSH_BRIDGE_URL"):
        monkeypatch.delenv(var, raising=False)


def test_flags_parsed_with_default_url():
    settings = load_settings(["--project", "p", "--subscription", "s"])
    assert settings.project == "p"
    assert settings.subscription == "s"
    assert settings.url == DEFAULT_URL == "http://localhost:8080"
    assert not hasattr(settings, "delivery_timeout_s")


def test_url_override():
    settings = load_settings(["--project", "p", "--subscription", "s", "--url", "http://x/y"])
    assert settings.url == "http://x/y"


def test_missing_project_is_configuration_error():
    with pytest.raises(ConfigurationError, match="missing required argument: --project"):
        load_settings(["--subscription", "s"])


def test_missing_subscription_is_configuration_error():
    with pytest.raises(ConfigurationError, match="missing required argument: --subscription"):
        load_settings(["--project", "p"])


def test_empty_project_is_configuration_error():
    with pytest.raises(ConfigurationError, match="--project"):
        load_settings(["--project", "", "--subscription", "s"])


def test_invalid_concurrency_is_configuration_error():
    with pytest.raises(ConfigurationError, match="invalid value for --concurrency"):
        load_settings(["--project", "p", "--subscription", "s", "--concurrency", "0"])


def test_malformed_url_is_not_rejected_at_startup():
    settings = load_settings(["--project", "p", "--subscription", "s", "--url", "localhost:8080"])
    assert settings.url == "localhost:8080"


def test_env_fallback(monkeypatch):
    monkeypatch.setenv("PUSH_BRIDGE_PROJECT", "env-project")
    monkeypatch.setenv("PUSH_BRIDGE_SUBSCRIPTION", "env-sub")
    settings = load_settings(["--subscription", "flag-sub"])
    assert settings.project == "env-project"
    assert settings.subscription == "flag-sub"


def test_settings_are_immutable():
    settings = load_settings(["--project", "p", "--subscription", "s"])
    with pytest.raises(Exception):
        settings.url = "http://elsewhere"
