"""Configuration for the Swagger adapter."""

from __future__ import annotations

from functools import lru_cache
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="", case_sensitive=False)

    service_name: str = Field(default="swagger-adapter")

    swagger_url: str = Field(default="https://api.coredatastore.com/swagger/v1/swagger.json")
    api_base_url: str = Field(default="https://api.coredatastore.com")
    upstream_timeout_seconds: float = Field(default=30)

    adapter_transport: str = Field(default="http")
    adapter_host: str = Field(default="0.0.0.0")
    adapter_port: int = Field(default=3500)
    adapter_log_level: str = Field(default="INFO")

    cache_enabled: bool = Field(default=True)
    cache_default_ttl_seconds: float = Field(default=300)
    spec_cache_seconds: float = Field(default=3600)

    query_array_encoding: str = Field(default="repeat")
    strict_tool_names: bool = Field(default=False)
    validate_arguments: bool = Field(default=True)
    adapter_max_concurrency: int = Field(default=20)

    cors_origins: str = Field(default="*")

    def cors_origin_list(self) -> List[str]:
        return [item.strip() for item in self.cors_origins.split(",") if item.strip()]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
