"""
Centralized configuration management using Pydantic Settings.

Configuration is loaded from environment variables with sensible defaults.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ThingsBoardConfig(BaseSettings):
    """Device-management platform (ThingsBoard) configuration."""

    model_config = SettingsConfigDict(env_prefix="BRIDGE_TB_")

    url: str = Field(default="http://localhost:8080", description="ThingsBoard base URL")
    admin_username: Optional[str] = Field(default=None, description="Tenant admin username")
    admin_password: Optional[str] = Field(default=None, description="Tenant admin password")
    request_timeout: float = Field(
        default=5.0,
        description="Timeout in seconds for every REST call",
    )
    rpc_timeout_ms: int = Field(
        default=5000,
        description="RPC timeout in milliseconds passed to the platform",
    )
    token_ttl_fallback: int = Field(
        default=3600,
        description="Admin token lifetime in seconds when the token carries no exp claim",
    )
    token_refresh_margin: int = Field(
        default=60,
        description="Seconds before expiry at which the admin token is refreshed",
    )
    mqtt_port: int = Field(default=1883, description="MQTT port handed to provisioned devices")


class AuthConfig(BaseSettings):
    """Signing keys and lifetimes for issued credentials."""

    model_config = SettingsConfigDict(env_prefix="BRIDGE_AUTH_")

    jwt_secret: str = Field(
        default="change-this-secret-in-production",
        description="HMAC secret for every token the bridge issues",
    )
    jwt_algorithm: str = Field(default="HS256", description="JWT signing algorithm")
    session_token_ttl: int = Field(default=7 * 86400, description="Backend session token lifetime (s)")
    auth_code_ttl: int = Field(default=600, description="OAuth authorization code lifetime (s)")
    access_token_ttl: int = Field(default=30 * 86400, description="OAuth access token lifetime (s)")
    refresh_token_ttl: int = Field(default=90 * 86400, description="OAuth refresh token lifetime (s)")


class OAuthConfig(BaseSettings):
    """Assistant platform OAuth client registration."""

    model_config = SettingsConfigDict(env_prefix="BRIDGE_OAUTH_")

    client_id: Optional[str] = Field(default=None, description="Client id issued to the assistant platform")
    client_secret: Optional[str] = Field(default=None, description="Client secret issued to the assistant platform")


class FulfillmentConfig(BaseSettings):
    """Smart home fulfillment behaviour."""

    model_config = SettingsConfigDict(env_prefix="BRIDGE_FULFILLMENT_")

    manufacturer: str = Field(default="Smart Home Panel", description="deviceInfo.manufacturer in SYNC")
    hw_version: str = Field(default="1.0", description="deviceInfo.hwVersion in SYNC")
    sw_version: str = Field(default="1.0", description="deviceInfo.swVersion in SYNC")
    state_keys: list[str] = Field(
        default=["device1_state", "device2_state", "device3_state", "device4_state"],
        description="Per-subdevice telemetry keys OR-ed into the on/off flag",
    )
    fan_speed_key: str = Field(default="fan_speed", description="Telemetry key holding the fan speed")
    attribute_scope: str = Field(default="SERVER_SCOPE", description="Attribute scope read on QUERY")
    default_sub_device: str = Field(
        default="device1",
        description="Sub-device targeted by OnOff when the device config names none",
    )


class Settings(BaseSettings):
    """Application-wide settings."""

    model_config = SettingsConfigDict(
        env_prefix="BRIDGE_",
        env_file=".env",
        env_nested_delimiter="__",
        extra="ignore",
    )

    # General
    environment: str = Field(default="development", description="development or production")
    log_level: str = Field(default="INFO", description="Logging level")
    host: str = Field(default="0.0.0.0", description="Bind address")
    port: int = Field(default=3000, description="Bind port")

    # Nested configs
    thingsboard: ThingsBoardConfig = Field(default_factory=ThingsBoardConfig)
    auth: AuthConfig = Field(default_factory=AuthConfig)
    oauth: OAuthConfig = Field(default_factory=OAuthConfig)
    fulfillment: FulfillmentConfig = Field(default_factory=FulfillmentConfig)

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"


# Singleton settings instance
settings = Settings()
