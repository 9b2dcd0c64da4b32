import pytest

from geo_multisearch.settings import EngineSettings, get_settings, parse_bool, reset_settings_cache


def test_defaults():
    s = get_settings()
    assert s.history_cap == 6
    assert s.signature_precision == 5
    assert s.address_cooldown_s == 5.0
    assert s.result_limit == 500
    assert s.provider == "dev"
    assert s.provider_url == "http://localhost:3001/api"
    assert s.provider_timeout_s == 10.0
    assert s.combine_default is True


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("GMS_HISTORY_CAP", "3")
    monkeypatch.setenv("GMS_SIGNATURE_PRECISION", "3")
    monkeypatch.setenv("GMS_ADDRESS_COOLDOWN_SECONDS", "0")
    monkeypatch.setenv("GMS_PROVIDER", " HTTP ")
    monkeypatch.setenv("GMS_COMBINE_DEFAULT", "off")

    s = EngineSettings.from_env()

    assert s.history_cap == 3
    assert s.signature_precision == 3
    assert s.address_cooldown_s == 0.0
    assert s.provider == "http"
    assert s.combine_default is False


def test_bad_values_fall_back_to_defaults(monkeypatch):
    monkeypatch.setenv("GMS_HISTORY_CAP", "0")
    monkeypatch.setenv("GMS_RESULT_LIMIT", "many")
    monkeypatch.setenv("GMS_ADDRESS_COOLDOWN_SECONDS", "-1")
    monkeypatch.setenv("GMS_PROVIDER_TIMEOUT_SECONDS", "nan")
    monkeypatch.setenv("GMS_COMBINE_DEFAULT", "maybe")

    s = EngineSettings.from_env()

    assert s.history_cap == 6
    assert s.result_limit == 500
    assert s.address_cooldown_s == 5.0
    assert s.provider_timeout_s == 10.0
    assert s.combine_default is True


def test_settings_are_cached_until_reset(monkeypatch):
    first = get_settings()
    monkeypatch.setenv("GMS_HISTORY_CAP", "2")
    assert get_settings() is first

    reset_settings_cache()
    assert get_settings().history_cap == 2


def test_combine_default_seeds_engine(monkeypatch, fake_provider):
    from geo_multisearch.engine import SearchEngine

    monkeypatch.setenv("GMS_COMBINE_DEFAULT", "0")
    reset_settings_cache()

    assert SearchEngine(fake_provider).combine is False


@pytest.mark.parametrize(
    "raw,expected",
    [
        (True, True),
        (False, False),
        ("false", False),
        ("No", False),
        (0, False),
        ("1", True),
        ("on", True),
        ("maybe", None),
        (None, None),
    ],
)
def test_parse_bool(raw, expected):
    assert parse_bool(raw, None) is expected
