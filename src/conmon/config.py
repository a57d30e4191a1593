"""Application configuration via environment variables."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Logging
    log_level: str = "info"
    json_logs: bool = False

    # Caches
    resource_cache_ttl_seconds: int = 300
    policy_cache_ttl_seconds: int = 300

    # Remediation
    enable_automated_remediation: bool = True
    batch_max_concurrency: int = 3

    # Governance
    approval_ttl_hours: int = 24

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_prefix": "CONMON_",
    }


settings = Settings()
