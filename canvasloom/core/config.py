"""Pipeline settings.

Settings are read once per process from an optional YAML file and then
overridden by ``CANVASLOOM_*`` environment variables:

    CANVASLOOM_CONFIG=/etc/canvasloom.yaml      # file location
    CANVASLOOM_CACHE_MAX_ENTRIES=50             # any field, upper-cased

Every field has a default so the pipeline starts without configuration.
"""

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import BaseModel, Field

from . import constants

logger = logging.getLogger(__name__)

ENV_PREFIX = "CANVASLOOM_"
DEFAULT_CONFIG_PATH = Path("config") / "canvasloom.yaml"


class PipelineSettings(BaseModel):
    """Tunables for the compile pipeline, cache, loader and sources."""

    compiler_version: str = Field(constants.COMPILER_VERSION, description="Version tag for compiled artifacts")

    # Module resolution
    shim_base_url: str = Field(constants.DEFAULT_SHIM_BASE_URL, description="Origin serving the framework shims")
    mirror_host: str = Field(constants.DEFAULT_MIRROR_HOST, description="Content-delivery mirror for bare specifiers")
    framework_name: str = constants.FRAMEWORK_NAME
    framework_dom_name: str = constants.FRAMEWORK_DOM_NAME

    # Cache
    cache_max_entries: int = Field(100, ge=1)
    cache_prune_fraction: float = Field(0.25, gt=0.0, le=1.0)
    cache_storage_key: str = constants.CACHE_STORAGE_KEY
    store_url: Optional[str] = Field(None, description="SQLAlchemy URL for the durable cache store")
    store_max_value_bytes: int = Field(5 * 1024 * 1024, ge=1)

    # Loader
    default_timeout_ms: int = Field(5000, ge=1)
    node_binary: str = "node"
    loader_hard_timeout_s: float = Field(30.0, gt=0.0)

    # Sources
    fetch_timeout_s: float = Field(10.0, gt=0.0)
    trusted_domains: List[str] = Field(default_factory=lambda: list(constants.TRUSTED_DOMAINS))
    library_base_url: str = constants.DEFAULT_SHIM_BASE_URL
    library_manifest_path: Optional[str] = None

    # Diagnostics
    debug_ttl_seconds: float = Field(300.0, gt=0.0)
    debug_max_entries: int = Field(20, ge=1)
    metrics_window: int = Field(100, ge=1)


def get_config_path() -> Path:
    """Return the YAML config location (may not exist)."""
    return Path(os.getenv(f"{ENV_PREFIX}CONFIG", str(DEFAULT_CONFIG_PATH)))


def _env_overrides() -> dict:
    """Collect ``CANVASLOOM_<FIELD>`` overrides for known fields."""
    overrides = {}
    for name in PipelineSettings.model_fields:
        raw = os.getenv(f"{ENV_PREFIX}{name.upper()}")
        if raw is None:
            continue
        if name == "trusted_domains":
            overrides[name] = [d.strip() for d in raw.split(",") if d.strip()]
        else:
            overrides[name] = raw
    return overrides


def load_settings(config_path: Optional[Path] = None) -> PipelineSettings:
    """Build settings from YAML (if present) plus environment overrides.

    Args:
        config_path: Explicit YAML path; defaults to :func:`get_config_path`

    Returns:
        Validated PipelineSettings
    """
    path = config_path or get_config_path()
    data = {}
    if path.exists():
        try:
            with open(path, "r") as f:
                data = yaml.safe_load(f) or {}
            logger.info(f"Loaded pipeline settings from {path}")
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Error loading {path}: {e}")
            data = {}
    else:
        logger.debug(f"No config file at {path}, using defaults")

    data.update(_env_overrides())
    return PipelineSettings(**data)


@lru_cache(maxsize=1)
def get_settings() -> PipelineSettings:
    """Process-wide settings, loaded on first use."""
    return load_settings()
