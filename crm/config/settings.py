from pathlib import Path
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional, List

DEFAULT_SCHEMA_PATH = str(Path(__file__).resolve().parent.parent / "sql" / "schema_init.sql")


class Settings(BaseSettings):
    # Supabase (runtime instance, written by the installer on deploy)
    supabase_url: str = ""
    supabase_key: str = ""
    supabase_service_role_key: Optional[str] = None  # Required for public API and api key lookups

    # Installer gates
    installer_enabled: str = "true"  # literal "false" disables the gated installer routes
    installer_token: Optional[str] = None
    installer_allowed_origins: str = ""

    # External platforms
    supabase_management_api_url: str = "https://api.supabase.com"
    vercel_api_url: str = "https://api.vercel.com"
    http_timeout_seconds: float = 30.0

    # Schema migration
    schema_path: str = DEFAULT_SCHEMA_PATH
    functions_dir: str = "supabase/functions"
    db_connect_max_attempts: int = 5
    db_connect_initial_delay_seconds: float = 3.0
    storage_ready_timeout_seconds: float = 210.0
    storage_ready_poll_seconds: float = 4.0

    # Redeploy wait
    deploy_ready_timeout_seconds: float = 240.0
    deploy_ready_poll_seconds: float = 2.5

    # Public API
    public_api_default_page_size: int = 50
    public_api_max_page_size: int = 250
    default_phone_country_code: str = "55"

    # App
    app_name: str = "crm-backend"
    debug: bool = False
    environment: str = "development"  # development | staging | production
    log_level: str = "INFO"
    cors_origins: str = "http://localhost:3000,http://localhost:5173,http://127.0.0.1:3000,http://127.0.0.1:5173"
    rate_limit: str = "100/minute"  # slowapi format, e.g. "100/minute"
    allow_ui_mocks_route: bool = False

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def installer_disabled(self) -> bool:
        return self.installer_enabled.strip().lower() == "false"

    @property
    def ui_mocks_enabled(self) -> bool:
        return self.environment == "development" and self.allow_ui_mocks_route

    def get_cors_origins_list(self) -> List[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    def get_installer_allowed_origins(self) -> List[str]:
        return [o.strip().rstrip("/") for o in self.installer_allowed_origins.split(",") if o.strip()]

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        env_prefix="",  # No prefix needed
        extra="ignore"
    )


settings = Settings()
