from bundle_pricing.config.settings import Settings, get_data_dir


def test_defaults_point_at_packaged_data():
    settings = Settings.load()
    assert settings.rules_file == get_data_dir() / "rules.json"
    assert settings.api_port == 8000
    assert settings.provider_preference == ("MAYA", "ESIM_GO")


def test_environment_overrides(monkeypatch, tmp_path):
    monkeypatch.setenv("BUNDLE_PRICING_PORT", "9100")
    monkeypatch.setenv("BUNDLE_PRICING_HOST", "127.0.0.1")
    monkeypatch.setenv("BUNDLE_PRICING_RULES_FILE", str(tmp_path / "rules.json"))
    monkeypatch.setenv("BUNDLE_PRICING_PROVIDER_PREFERENCE", "esim_go, maya")
    monkeypatch.setenv("BUNDLE_PRICING_LOG_LEVEL", "debug")

    settings = Settings.load()

    assert settings.api_port == 9100
    assert settings.api_host == "127.0.0.1"
    assert settings.rules_file == tmp_path / "rules.json"
    assert settings.provider_preference == ("ESIM_GO", "MAYA")
    assert settings.log_level == "DEBUG"


def test_blank_override_falls_back_to_default(monkeypatch):
    monkeypatch.setenv("BUNDLE_PRICING_PORT", "  ")
    assert Settings.load().api_port == 8000
