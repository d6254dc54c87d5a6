"""
Configuration management for Campaign Stream.

Centralizes all configuration including:
- SSE server binding
- Chunk generation cadence
- Typing animation timing
- Client endpoint and export location
"""

import os
from dataclasses import dataclass, field
from typing import Optional


@dataclass
class ServerConfig:
    """SSE server configuration."""
    host: str = field(default_factory=lambda: os.getenv("CAMPAIGN_STREAM_HOST", "0.0.0.0"))
    port: int = field(default_factory=lambda: int(os.getenv("CAMPAIGN_STREAM_PORT", "4000")))
    cors_origin: str = field(default_factory=lambda: os.getenv("CAMPAIGN_STREAM_CORS_ORIGIN", "*"))


@dataclass
class GeneratorConfig:
    """Incremental campaign generation settings."""
    chunk_count: int = field(default_factory=lambda: int(os.getenv("CAMPAIGN_STREAM_CHUNKS", "3")))
    interval_seconds: float = field(
        default_factory=lambda: float(os.getenv("CAMPAIGN_STREAM_INTERVAL", "0.8"))
    )
    campaign_id_space: int = 10000  # CMP-0 .. CMP-9999


@dataclass
class TypingConfig:
    """Typing animation timing (seconds)."""
    start_delay_max: float = 0.8
    cadence_min: float = 0.02
    cadence_max: float = 0.06


@dataclass
class ClientConfig:
    """Preview client configuration."""
    server_url: str = field(
        default_factory=lambda: os.getenv("CAMPAIGN_STREAM_URL", "http://localhost:4000")
    )
    connect_timeout: float = 10.0
    export_dir: str = field(default_factory=lambda: os.getenv("CAMPAIGN_EXPORT_DIR", "."))


@dataclass
class Config:
    """Main configuration class."""

    server: ServerConfig = field(default_factory=ServerConfig)
    generator: GeneratorConfig = field(default_factory=GeneratorConfig)
    typing: TypingConfig = field(default_factory=TypingConfig)
    client: ClientConfig = field(default_factory=ClientConfig)

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables."""
        return cls()

    def validate(self) -> list[str]:
        """Validate configuration and return list of issues."""
        issues = []

        if not 0 < self.server.port < 65536:
            issues.append(f"CAMPAIGN_STREAM_PORT out of range: {self.server.port}")

        if self.generator.chunk_count < 1:
            issues.append("CAMPAIGN_STREAM_CHUNKS must be at least 1")

        if self.generator.interval_seconds < 0:
            issues.append("CAMPAIGN_STREAM_INTERVAL must not be negative")

        if self.typing.cadence_min <= 0 or self.typing.cadence_max < self.typing.cadence_min:
            issues.append("Typing cadence range is invalid")

        if self.typing.start_delay_max < 0:
            issues.append("Typing start delay must not be negative")

        return issues


# Global config instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config.from_env()
    return _config


def reload_config():
    """Reload configuration from environment."""
    global _config
    _config = Config.from_env()
