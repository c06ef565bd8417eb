"""
infraphase configuration.

Provides:
- Pydantic-based settings (environment variables, .env files)
- YAML plan file discovery and loading
"""

from infraphase.config.loader import (
    build_providers,
    get_plan_path,
    load_plan_file,
    parse_secret_store_config,
)
from infraphase.config.settings import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
    "build_providers",
    "get_plan_path",
    "load_plan_file",
    "parse_secret_store_config",
]
