# config.py
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Settings for the application
    """

    model_config = SettingsConfigDict(
        env_file=".env", extra="ignore", case_sensitive=False
    )

    environment: str = "development"

    database_url: str = "postgresql://postgres:root@db:5432/club-docs"

    secret_key: str = "change-me"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 30

    upload_dir: str = "uploads"
    max_file_size: int = 5 * 1024 * 1024
    allowed_content_types: str = "application/pdf,image/jpeg,image/jpg,image/png"

    # Employee codes that register as privileged members
    admin_employee_codes: str = "0001,0002,0003,0004"

    cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000,http://localhost:5173"

    log_level: str = "INFO"
    log_json: bool = False

    @property
    def content_types(self) -> List[str]:
        return [t.strip() for t in self.allowed_content_types.split(",") if t.strip()]

    @property
    def admin_codes(self) -> List[str]:
        return [c.strip() for c in self.admin_employee_codes.split(",") if c.strip()]

    @property
    def allowed_origins(self) -> List[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


settings = Settings()
