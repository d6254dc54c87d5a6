"""
Campaign Stream Core Components

Provides shared infrastructure for the server and the preview client:
- Environment-driven configuration
"""

from .config import Config, get_config, reload_config

__all__ = ["Config", "get_config", "reload_config"]
