from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Supabase
    supabase_url: str = ""
    supabase_secret_key: str = ""

    # Apple Developer
    apple_team_id: str = ""
    apple_pass_type_id: str = ""

    # Certificates
    cert_path: str = "certs/signerCert.pem"
    key_path: str = "certs/signerKey.pem"
    wwdr_path: str = "certs/wwdr.pem"
    cert_password: str | None = None

    # Server
    base_url: str = "http://localhost:8000"

    # Business defaults (used when an offer has no card design)
    organization_name: str = "Coffee Shop"
    default_icon_id: str = "coffee"
    default_background_color: str = "rgb(139, 90, 43)"  # Coffee brown
    default_foreground_color: str = "rgb(255, 255, 255)"
    default_label_color: str = "rgb(255, 255, 255)"

    # APNs
    apns_use_sandbox: bool = False
    apns_cert_path: str = "certs/combined.pem"

    # Redis (rendered stamp visuals)
    redis_url: str = "redis://localhost:6379/0"
    render_cache_enabled: bool = True
    render_cache_ttl: int = 3600

    # Stamp artwork
    icons_path: str = str(Path(__file__).parent.parent / "assets" / "icons")
    icon_cache_size: int = 64
    segmented_threshold: int = 6  # thumbnail switches to a progress bar above this

    # Business images (backgrounds, logos)
    image_fetch_timeout: float = 5.0
    image_fetch_max_bytes: int = 3 * 1024 * 1024

    # Pass lifecycle
    pass_grace_days: int = 30
    pass_retention_days: int = 90
    notification_daily_limit: int = 3

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
