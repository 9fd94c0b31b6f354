from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "filedrop"
    app_env: str = "dev"
    log_level: str = "INFO"

    storage_region: str = "auto"
    storage_access_key_id: str = ""
    storage_secret_access_key: str = ""
    storage_account_id: str = ""
    storage_endpoint_url: str | None = None
    public_bucket_name: str = "filedrop-public"
    private_bucket_name: str = "filedrop-private"
    public_base_url: str | None = None

    api_key: str = ""
    session_secret: str = "change-me-in-production"
    admin_username: str = "admin"
    admin_password: str = ""

    resend_api_key: str = ""
    resend_api_url: str = "https://api.resend.com"
    email_from: str = "Filedrop <noreply@filedrop.local>"

    max_upload_size_bytes: int = 100 * 1024 * 1024
    min_expiry_seconds: int = 30
    max_expiry_seconds: int = 7 * 24 * 60 * 60
    max_recipients: int = 10
    list_page_size: int = 1000
    rollback_failed_uploads: bool = False

    model_config = SettingsConfigDict(env_file=".env", env_prefix="FILEDROP_")

    @property
    def endpoint_url(self) -> str | None:
        if self.storage_endpoint_url:
            return self.storage_endpoint_url.rstrip("/")
        if self.storage_account_id:
            return f"https://{self.storage_account_id}.r2.cloudflarestorage.com"
        return None


@lru_cache
def get_settings() -> Settings:
    return Settings()
