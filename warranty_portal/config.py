"""
Warranty Portal - Configuration
Environment-driven settings shared by the API and the SFTP front-end
"""
import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import List, Optional


DEFAULT_CORS_ORIGINS = [
    "http://localhost:5000",
    "http://localhost:5173",
]


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str, default: List[str]) -> List[str]:
    value = os.getenv(name)
    if not value:
        return list(default)
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass
class Settings:
    """Process-wide configuration. Built once from the environment."""
    # Database
    database_url: str = "sqlite:///./portal.db"

    # Auth
    jwt_secret_key: str = "warranty-portal-secret-key-change-in-production"
    jwt_algorithm: str = "HS256"
    jwt_expire_hours: int = 24 * 7

    # HTTP
    port: int = 3001
    cors_origins: List[str] = field(default_factory=lambda: list(DEFAULT_CORS_ORIGINS))

    # Uploads
    upload_dir: str = "./uploads"
    max_file_size: int = 100 * 1024 * 1024
    asset_threshold: int = 6

    # Invoicing
    tax_rate: float = 0.08

    # SFTP
    sftp_host: str = "0.0.0.0"
    sftp_port: int = 2222
    sftp_host_key: str = "./server_key"
    sftp_dir_cache_size: int = 256

    # Mail (no server configured -> log-only mode)
    mail_server: Optional[str] = None
    mail_port: int = 587
    mail_use_tls: bool = True
    mail_username: Optional[str] = None
    mail_password: Optional[str] = None
    notification_from_email: str = "noreply@abtwarranty.com"
    notification_from_name: str = "ABT Warranty Portal"
    app_url: str = "http://localhost:5173"

    log_level: str = "INFO"

    @property
    def job_files_dir(self) -> str:
        """Root of the web content store. Kept apart from the SFTP homes."""
        return os.path.join(self.upload_dir, "jobs")

    @property
    def sftp_home_dir(self) -> str:
        return os.path.join(self.upload_dir, "sftp")

    @classmethod
    def from_env(cls) -> "Settings":
        """Read every setting from environment variables, falling back to defaults."""
        defaults = cls()
        return cls(
            database_url=os.getenv("DATABASE_URL", defaults.database_url),
            jwt_secret_key=os.getenv("JWT_SECRET_KEY", defaults.jwt_secret_key),
            jwt_expire_hours=int(os.getenv("JWT_EXPIRE_HOURS", str(defaults.jwt_expire_hours))),
            port=int(os.getenv("PORT", str(defaults.port))),
            cors_origins=_env_list("CORS_ORIGIN", DEFAULT_CORS_ORIGINS),
            upload_dir=os.getenv("UPLOAD_DIR", defaults.upload_dir),
            max_file_size=int(os.getenv("MAX_FILE_SIZE", str(defaults.max_file_size))),
            asset_threshold=int(os.getenv("ASSET_THRESHOLD", str(defaults.asset_threshold))),
            tax_rate=float(os.getenv("TAX_RATE", str(defaults.tax_rate))),
            sftp_host=os.getenv("SFTP_HOST", defaults.sftp_host),
            sftp_port=int(os.getenv("SFTP_PORT", str(defaults.sftp_port))),
            sftp_host_key=os.getenv("SFTP_HOST_KEY", defaults.sftp_host_key),
            sftp_dir_cache_size=int(os.getenv("SFTP_DIR_CACHE_SIZE", str(defaults.sftp_dir_cache_size))),
            mail_server=os.getenv("MAIL_SERVER") or None,
            mail_port=int(os.getenv("MAIL_PORT", str(defaults.mail_port))),
            mail_use_tls=_env_bool("MAIL_USE_TLS", defaults.mail_use_tls),
            mail_username=os.getenv("MAIL_USERNAME") or None,
            mail_password=os.getenv("MAIL_PASSWORD") or None,
            notification_from_email=os.getenv("NOTIFICATION_FROM_EMAIL", defaults.notification_from_email),
            notification_from_name=os.getenv("NOTIFICATION_FROM_NAME", defaults.notification_from_name),
            app_url=os.getenv("APP_URL", defaults.app_url),
            log_level=os.getenv("LOG_LEVEL", defaults.log_level),
        )


@lru_cache
def get_settings() -> Settings:
    """Dependency for FastAPI - cached process settings."""
    return Settings.from_env()
