"""
PostgreSQL settings for the bridge registry.
"""

from typing import Optional
from urllib.parse import quote

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseConfig(BaseSettings):
    """Registry database connection and pool sizing."""

    model_config = SettingsConfigDict(
        env_prefix="BRIDGE_DB_",
        env_file=".env",
        extra="ignore",
    )

    enabled: bool = Field(default=True, description="Persist users, devices and links in PostgreSQL")
    url: Optional[str] = Field(
        default=None,
        description="Full postgresql:// DSN; overrides the individual connection fields",
    )
    host: str = Field(default="localhost")
    port: int = Field(default=5432)
    database: str = Field(default="smarthome")
    user: str = Field(default="smarthome")
    password: str = Field(default="")
    min_pool_size: int = Field(default=2, ge=1)
    max_pool_size: int = Field(default=10, ge=1)
    connect_timeout: float = Field(default=10.0, description="Seconds to wait for a connection")
    command_timeout: float = Field(default=30.0, description="Seconds before a statement is cancelled")

    @property
    def dsn(self) -> str:
        if self.url:
            return self.url
        user = quote(self.user, safe="")
        password = quote(self.password, safe="")
        return f"postgresql://{user}:{password}@{self.host}:{self.port}/{quote(self.database, safe='')}"


db_settings = DatabaseConfig()
