"""Configuration module for the IndieWeb feed indexer."""

import os
from pydantic import BaseModel, Field


class Settings(BaseModel):
    """Application settings with environment variable support."""

    # Firehose Configuration
    service_name: str = Field(default="indieweb-indexer")
    subscription_endpoint: str = Field(default="wss://bsky.network")
    subscription_reconnect_delay: float = Field(default=3.0)
    cursor_save_interval: int = Field(default=20)

    # Storage
    sqlite_location: str = Field(default="data/indexer.sqlite")

    # Handle -> domain mappings
    mappings_path: str = Field(default="data/indieweb-mappings.csv")
    mappings_reload_interval: float = Field(default=300.0)  # 5 minutes

    # Keyword feed
    keyword_marker: str = Field(default="alf")

    # Identity resolution
    plc_url: str = Field(default="https://plc.directory")
    did_cache_ttl: float = Field(default=3600.0)
    did_cache_size: int = Field(default=10000)
    resolver_timeout: float = Field(default=10.0)

    # Health Check Configuration
    health_check_port: int = Field(default=8080)
    metrics_enabled: bool = Field(default=True)
    stats_interval: float = Field(default=20.0)

    # Logging
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="console")

    def __init__(self, **kwargs):
        # Load from environment variables
        env_values = {}

        env_mapping = {
            "SERVICE_NAME": "service_name",
            "SUBSCRIPTION_ENDPOINT": "subscription_endpoint",
            "SUBSCRIPTION_RECONNECT_DELAY": "subscription_reconnect_delay",
            "CURSOR_SAVE_INTERVAL": "cursor_save_interval",
            "SQLITE_LOCATION": "sqlite_location",
            "MAPPINGS_PATH": "mappings_path",
            "MAPPINGS_RELOAD_INTERVAL": "mappings_reload_interval",
            "KEYWORD_MARKER": "keyword_marker",
            "PLC_URL": "plc_url",
            "DID_CACHE_TTL": "did_cache_ttl",
            "DID_CACHE_SIZE": "did_cache_size",
            "RESOLVER_TIMEOUT": "resolver_timeout",
            "HEALTH_CHECK_PORT": "health_check_port",
            "METRICS_ENABLED": "metrics_enabled",
            "STATS_INTERVAL": "stats_interval",
            "LOG_LEVEL": "log_level",
            "LOG_FORMAT": "log_format",
        }

        for env_var, field_name in env_mapping.items():
            if env_var in os.environ:
                value = os.environ[env_var]

                # Convert types
                if field_name in ["cursor_save_interval", "health_check_port", "did_cache_size"]:
                    try:
                        value = int(value)
                    except ValueError:
                        pass
                elif field_name in ["subscription_reconnect_delay", "mappings_reload_interval",
                                    "did_cache_ttl", "resolver_timeout", "stats_interval"]:
                    try:
                        value = float(value)
                    except ValueError:
                        pass
                elif field_name == "metrics_enabled":
                    value = value.lower() in ("true", "1", "yes", "on")

                env_values[field_name] = value

        # Merge kwargs with env values (kwargs take precedence)
        final_values = {**env_values, **kwargs}
        super().__init__(**final_values)


# Global settings instance
settings = Settings()
