"""
Centralized settings and path configuration for the pricing engine.
"""
import os
from pathlib import Path
from dataclasses import dataclass
from typing import Optional


ENV_PREFIX = "BUNDLE_PRICING_"


def get_data_dir() -> Path:
    """Get the packaged data directory (sample rules, bundles, markups, fees)."""
    return Path(__file__).resolve().parent.parent / 'data'


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    value = os.environ.get(f"{ENV_PREFIX}{name}")
    if value is None or value.strip() == '':
        return default
    return value.strip()


def _env_path(name: str, default: Path) -> Path:
    value = _env(name)
    return Path(value) if value else default


@dataclass
class Settings:
    """Application settings with sensible defaults."""

    # Input files
    rules_file: Path
    bundles_csv: Path
    markups_csv: Path
    fees_csv: Path

    # Rule cache
    rules_cache_ttl_seconds: float = 60.0

    # Pricing defaults
    currency: str = "USD"
    default_group: str = "Standard Unlimited Essential"
    default_payment_method: str = "ISRAELI_CARD"
    provider_preference: tuple = ('MAYA', 'ESIM_GO')

    log_level: str = "INFO"

    # API server
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    @classmethod
    def load(cls, data_dir: Optional[Path] = None) -> 'Settings':
        """Load settings from the data directory, with environment overrides."""
        root = data_dir or get_data_dir()

        preference = _env('PROVIDER_PREFERENCE')
        if preference:
            provider_preference = tuple(p.strip().upper() for p in preference.split(',') if p.strip())
        else:
            provider_preference = ('MAYA', 'ESIM_GO')

        return cls(
            rules_file=_env_path('RULES_FILE', root / 'rules.json'),
            bundles_csv=_env_path('BUNDLES_CSV', root / 'bundles.csv'),
            markups_csv=_env_path('MARKUPS_CSV', root / 'markups.csv'),
            fees_csv=_env_path('FEES_CSV', root / 'fees.csv'),
            rules_cache_ttl_seconds=float(_env('RULES_CACHE_TTL', '60')),
            currency=_env('CURRENCY', 'USD'),
            default_group=_env('DEFAULT_GROUP', 'Standard Unlimited Essential'),
            default_payment_method=_env('DEFAULT_PAYMENT_METHOD', 'ISRAELI_CARD').upper(),
            provider_preference=provider_preference,
            log_level=_env('LOG_LEVEL', 'INFO').upper(),
            api_host=_env('HOST', '0.0.0.0'),
            api_port=int(_env('PORT', '8000')),
        )


# Default settings instance
_settings: Optional[Settings] = None


def _reset_settings() -> None:
    """Reset cached settings - for testing only."""
    global _settings
    _settings = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings.load()
    return _settings
