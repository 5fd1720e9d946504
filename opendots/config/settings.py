from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional, List


class Settings(BaseSettings):
    # Supabase (primary store + auth)
    supabase_url: str = ""
    supabase_key: str = ""
    supabase_service_role_key: Optional[str] = None  # Bypasses RLS for profile reads/writes

    # Cloudflare account
    cloudflare_account_id: Optional[str] = None
    cloudflare_api_token: Optional[str] = None

    # Cloudflare D1 (secondary store). Off unless explicitly enabled.
    d1_enabled: bool = False
    d1_database_id: Optional[str] = None
    d1_timeout_seconds: float = 20.0

    # Cloudflare R2 (S3-compatible API)
    r2_access_key_id: Optional[str] = None
    r2_secret_access_key: Optional[str] = None
    r2_bucket_name: str = "profile-images"

    # App
    app_name: str = "opendots"
    public_app_url: str = "https://opendots-alphav1.pages.dev"
    debug: bool = False
    environment: str = "development"  # development | staging | production
    log_level: str = "INFO"
    cors_origins: str = "http://localhost:3000,http://localhost:5173,http://127.0.0.1:3000,http://127.0.0.1:5173"
    rate_limit: str = "100/minute"  # slowapi format, e.g. "100/minute"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def d1_configured(self) -> bool:
        return bool(
            self.d1_enabled
            and self.cloudflare_account_id
            and self.cloudflare_api_token
            and self.d1_database_id
        )

    @property
    def r2_configured(self) -> bool:
        return bool(self.cloudflare_account_id and self.r2_access_key_id and self.r2_secret_access_key)

    def get_cors_origins_list(self) -> List[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        env_prefix="",
        extra="ignore"
    )


settings = Settings()
