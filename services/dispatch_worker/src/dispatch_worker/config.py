from pydantic_settings import BaseSettings, SettingsConfigDict


class DispatchConfig(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="DISPATCH_")

    log_level: str = "INFO"
    provider_timeout_seconds: float = 30.0
    default_country_code: str = "33"
    campaign_chunk_size: int = 10
    campaign_max_workers: int = 10
    sweep_chunk_size: int = 100
    sweep_interval_seconds: int = 3600
