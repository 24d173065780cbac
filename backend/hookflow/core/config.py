# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Hookflow Configuration - Single source of truth.
YAML is king. Env vars ONLY for secrets.

- ALL configuration in plain text (YAML)
- NO hidden state - everything inspectable via `cat`, `grep`
"""

import os
import yaml
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


DEFAULT_CONFIG_PATH = str(Path(__file__).resolve().parents[3] / "configs" / "hookflow.yaml")


# =============================================================================
# CONFIGURATION DATACLASS
# =============================================================================

@dataclass(frozen=True)
class Config:
    """
    Immutable application configuration.
    All values from YAML. No hidden state.
    """

    # -- Server --
    service_host: str = "0.0.0.0"
    service_port: int = 8000

    # -- Paths --
    workflows_path: str = "./data/workflows"
    executions_path: str = "./data/executions"

    # -- Storage --
    store_backend: str = "memory"
    executions_list_limit: int = 50

    # -- HTTP --
    http_timeout: float = 30.0

    # -- Email --
    email_api_base_url: str = "https://inbound.new/api/v2"
    email_timeout: float = 10.0

    # -- Logging --
    log_level: str = "INFO"
    log_format: str = "json"
    log_file: Optional[str] = None

    def get_inbound_api_key(self) -> Optional[str]:
        """Get email provider API key from environment"""
        return get_inbound_api_key()

    def get_inbound_from_email(self) -> Optional[str]:
        """Get verified sender address from environment"""
        return get_inbound_from_email()


# =============================================================================
# SECRETS - The ONLY thing from environment variables
# =============================================================================

def get_inbound_api_key() -> Optional[str]:
    """API keys cannot be in version control."""
    return os.getenv("INBOUND_API_KEY")


def get_inbound_from_email() -> Optional[str]:
    """Verified sender address lives next to the key it is bound to."""
    return os.getenv("INBOUND_FROM_EMAIL")


# =============================================================================
# LOADER
# =============================================================================

def load_config(path: str = DEFAULT_CONFIG_PATH) -> Config:
    """
    Load configuration from YAML.
    Returns defaults if file doesn't exist.
    """
    if not Path(path).exists():
        return Config()

    with open(path) as f:
        y = yaml.safe_load(f) or {}

    # Helper to safely navigate nested dicts
    def get(d: dict, *keys, default=None):
        for k in keys:
            if not isinstance(d, dict):
                return default
            d = d.get(k, {})
        return d if d != {} else default

    defaults = Config()
    return Config(
        # Server
        service_host=get(y, "server", "host") or defaults.service_host,
        service_port=int(os.getenv("HOOKFLOW_PORT", get(y, "server", "port") or defaults.service_port)),

        # Paths
        workflows_path=get(y, "paths", "workflows") or defaults.workflows_path,
        executions_path=get(y, "paths", "executions") or defaults.executions_path,

        # Storage
        store_backend=get(y, "store", "backend") or defaults.store_backend,
        executions_list_limit=get(y, "executions", "list_limit") or defaults.executions_list_limit,

        # HTTP
        http_timeout=get(y, "http", "timeout") or defaults.http_timeout,

        # Email
        email_api_base_url=get(y, "email", "api_base_url") or defaults.email_api_base_url,
        email_timeout=get(y, "email", "timeout") or defaults.email_timeout,

        # Logging
        log_level=os.getenv("LOG_LEVEL", get(y, "logging", "level") or defaults.log_level),
        log_format=get(y, "logging", "format") or defaults.log_format,
        log_file=get(y, "logging", "file") or defaults.log_file,
    )


# =============================================================================
# GLOBAL INSTANCE
# =============================================================================

_config: Optional[Config] = None


def get_config() -> Config:
    """Get or create global config instance."""
    global _config
    if _config is None:
        config_path = os.getenv("HOOKFLOW_CONFIG_PATH", DEFAULT_CONFIG_PATH)
        _config = load_config(config_path)
    return _config


def reload_config() -> Config:
    """Force reload configuration."""
    global _config
    _config = None
    return get_config()
