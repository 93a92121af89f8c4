from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import AnyHttpUrl, SecretStr


class Settings(BaseSettings):
    elasticsearch_url: AnyHttpUrl = "http://localhost:9200"
    elasticsearch_username: Optional[str] = None
    elasticsearch_password: Optional[SecretStr] = None

    # One index per content type: "{index_prefix}-{type name}"
    index_prefix: str = "content"
    http_timeout: float = 15.0
    bulk_size: int = 500

    database_url: str = "sqlite:///./content.db"

    # "package.module:Base" of the declarative base holding the content models
    content_base: Optional[str] = None

    published_field: str = "SS_Published"
    relation_separator: str = "_"

    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore"
    )

settings = Settings()
