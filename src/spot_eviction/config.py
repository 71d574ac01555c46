"""Centralized configuration management for the spot eviction tool."""

import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

from .errors import ConfigError


class RetrySettings(BaseModel):
    """Per-key retry policy for single-SKU scoring requests."""
    max_retries: int = Field(4, ge=0, description="Retries after the first attempt")
    direct_fallback_after: int = Field(
        2,
        ge=1,
        description="Failed attempts before trying the direct REST fallback once"
    )
    backoff_base: float = Field(2.0, ge=0, description="Base delay (seconds), doubled per attempt")
    jitter_max: float = Field(3.0, ge=0, description="Upper bound of random jitter added to backoff")


class EnrichmentSettings(BaseModel):
    """Tiered eviction enrichment behaviour."""
    skip_enrichment: bool = Field(False, description="Skip scoring entirely and emit N/A")
    use_static_fallback: bool = Field(
        True,
        description="Estimate from core count when every live tier fails"
    )
    desired_count: int = Field(1, ge=1, description="VM count hint sent with each request")
    batch_limit: int = Field(5, ge=1, description="Largest group scored in a single request")
    concurrency_limit: int = Field(2, ge=1, description="Parallel single-SKU requests")
    stagger_max: float = Field(0.8, ge=0, description="Random start delay per worker (seconds)")
    group_timeout: float = Field(45.0, gt=0, description="Wait per worker group (seconds)")
    inter_group_pause: float = Field(2.0, ge=0, description="Pause between worker groups")
    final_sweep_max_keys: int = Field(8, ge=0, description="Sweep only when this few keys failed")
    final_sweep_attempts: int = Field(2, ge=0)
    final_sweep_pause: float = Field(5.0, ge=0)
    retry: RetrySettings = Field(default_factory=RetrySettings)


class DirectProtocolSettings(BaseModel):
    """Raw REST fallback against the Compute resource provider."""
    enabled: bool = True
    subscription_id: Optional[str] = Field(
        None,
        description="Defaults to the AZURE_SUBSCRIPTION_ID environment variable"
    )
    endpoint: str = "https://management.azure.com"
    scope: str = "https://management.azure.com/.default"
    api_versions: list[str] = Field(default_factory=lambda: [
        '2025-06-05',
        '2024-06-01-preview',
    ])
    timeout: float = Field(30.0, gt=0)

    def resolve_subscription_id(self) -> Optional[str]:
        return self.subscription_id or os.environ.get('AZURE_SUBSCRIPTION_ID')


class PricingSettings(BaseModel):
    """Azure Retail Prices API retrieval."""
    api_url: str = "https://prices.azure.com/api/retail/prices"
    currency_code: str = "USD"
    service_name: str = "Virtual Machines"
    max_pages: int = Field(50, ge=1)
    timeout: float = Field(30.0, gt=0)


class SpotConfig(BaseModel):
    """Complete spot eviction configuration."""
    enrichment: EnrichmentSettings = Field(default_factory=EnrichmentSettings)
    direct: DirectProtocolSettings = Field(default_factory=DirectProtocolSettings)
    pricing: PricingSettings = Field(default_factory=PricingSettings)


# Global config instance
_config: Optional[SpotConfig] = None


def get_config() -> SpotConfig:
    """Get the current configuration (loads default if not set)."""
    global _config
    if _config is None:
        _config = SpotConfig()
    return _config


def load_config(config_path: Path) -> SpotConfig:
    """Load configuration from a YAML file."""
    global _config

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}
        _config = SpotConfig.model_validate(data)
    except (OSError, yaml.YAMLError, ValidationError) as e:
        raise ConfigError(f"Could not load config {config_path}: {e}") from e

    return _config


def reset_config() -> None:
    """Reset to default configuration."""
    global _config
    _config = None


def save_default_config(output_path: Path) -> None:
    """Save the default configuration to a YAML file."""
    data = SpotConfig().model_dump()

    with open(output_path, 'w', encoding='utf-8') as f:
        yaml.dump(data, f, default_flow_style=False, sort_keys=False, allow_unicode=True)


def find_config_file() -> Optional[Path]:
    """Find a config file in standard locations."""
    search_paths = [
        Path.cwd() / 'spot-eviction.yaml',
        Path.cwd() / 'spot-eviction.yml',
        Path.home() / '.config' / 'spot-eviction' / 'config.yaml',
    ]

    env_config = os.environ.get('SPOT_EVICTION_CONFIG')
    if env_config:
        search_paths.insert(0, Path(env_config))

    for path in search_paths:
        if path.exists():
            return path

    return None
