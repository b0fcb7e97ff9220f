"""
Configuration settings for the Drone Relay Service.
"""
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_LOCATION_CANDIDATES = [
    "/api/drone-location",
    "/drone-location",
    "/api/location-update",
    "/location-update",
    "/api/tracking/update",
    "/tracking/update",
]

DEFAULT_ORDER_CANDIDATES = [
    "/api/orders/pending",
    "/orders/pending",
    "/api/orders",
    "/orders",
    "/api/drone-orders",
    "/pending-orders",
]


class Settings(BaseSettings):
    """
    Relay service configuration loaded from environment variables.

    Defaults are tuned for running the demo locally. An explicitly configured
    upstream endpoint always replaces the candidate list.
    """
    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Service settings
    service_name: str = "drone-relay-service"
    service_port: int = 3001
    debug: bool = False
    cors_origins: List[str] = ["*"]

    # Fan-out settings
    subscriber_queue_size: int = 100
    status_interval_seconds: float = 30.0
    stream_heartbeat_interval: float = 15.0

    # Last-value caches
    location_cache_maxsize: int = 10000
    location_cache_ttl_seconds: float = 3600.0
    simulation_cache_maxsize: int = 1000
    simulation_cache_ttl_seconds: float = 86400.0

    # Location semantics
    low_battery_threshold: float = 20.0
    active_threshold_seconds: float = 30.0

    # Upstream forwarding
    upstream_base_url: str = "https://drone-flux-system-server.vercel.app"
    upstream_location_endpoint: Optional[str] = None
    upstream_location_candidates: List[str] = DEFAULT_LOCATION_CANDIDATES
    upstream_timeout_seconds: float = 3.0
    forwarding_enabled: bool = True
    forward_queue_size: int = 1000

    # Upstream order polling
    order_poll_enabled: bool = False
    order_poll_interval_seconds: float = 10.0
    upstream_orders_endpoint: Optional[str] = None
    upstream_orders_candidates: List[str] = DEFAULT_ORDER_CANDIDATES
    order_poll_timeout_seconds: float = 5.0


# Global settings instance
settings = Settings()
