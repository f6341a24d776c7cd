from pydantic_settings import BaseSettings, SettingsConfigDict


class ClientSettings(BaseSettings):
    api_base_url: str = "http://localhost:3000/api"
    timeout_seconds: float = 10.0
    token_store_path: str = "~/.yamo/session.json"

    model_config = SettingsConfigDict(
        env_prefix="YAMO_",
        env_file=".env",
        extra="ignore",
    )
