"""Loader settings using pydantic-settings."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Loader configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="CACHELOADER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application settings
    app_name: str = "Cache Coalescing Loader"
    debug: bool = False
    environment: str = "local"  # local, development, production

    # Cache store settings
    cache_enabled: bool = True
    cache_max_entries: int = 500
    # Hard expiry inside the memory store. 0 keeps entries until evicted or invalidated;
    # staleness is evaluated by the loader independently of this.
    cache_ttl_seconds: int = 0

    # Loader defaults (applied when a namespace has no override)
    loader_max_age_seconds: float = 600.0
    loader_max_retries: int = 3
    loader_retry_base_seconds: float = 1.0
    loader_retry_max_delay_seconds: float = 30.0
    loader_retry_auth_errors: bool = False

    # Per-namespace freshness thresholds (seconds).
    # Format: {namespace: max_age_seconds}
    namespace_max_age_seconds: dict[str, float] = {
        "default": 600.0,
        "profile": 300.0,
        "user_profile": 86400.0,
        "payment_profile": 600.0,
        "videos": 3600.0,
        "video_metadata": 7200.0,
        "ads": 1800.0,
    }

    # HTTP fetch adapter
    http_request_timeout_seconds: float = 30.0

    def get_max_age(self, namespace: str) -> float:
        """Get the freshness threshold for a namespace."""
        return float(self.namespace_max_age_seconds.get(namespace, self.loader_max_age_seconds))

    def default_load_options(self, namespace: str = "default"):
        """Build the default LoadOptions for a namespace."""
        from cacheloader.core.cache.types import LoadOptions

        return LoadOptions(
            max_age=self.get_max_age(namespace),
            max_retries=max(0, self.loader_max_retries),
            base_delay=max(0.0, self.loader_retry_base_seconds),
            max_delay=self.loader_retry_max_delay_seconds or None,
            retry_auth_errors=self.loader_retry_auth_errors,
        )


settings = Settings()
