import os
from dataclasses import dataclass
from dotenv import load_dotenv

load_dotenv()

@dataclass
class Settings:
    # API settings
    api_host: str = os.getenv("API_HOST", "127.0.0.1")
    api_port: int = int(os.getenv("API_PORT", "8000"))

    # Database settings
    database_file: str = os.getenv("LIBRARY_DB_FILE", "library.db")
    db_busy_timeout: float = float(os.getenv("DB_BUSY_TIMEOUT", "10"))

    # Lending rules
    default_loan_days: int = int(os.getenv("DEFAULT_LOAN_DAYS", "14"))

    # Privilege thresholds (1 = member, 2 = staff, 3 = admin)
    lending_min_privilege: int = int(os.getenv("LENDING_MIN_PRIVILEGE", "3"))
    catalog_min_privilege: int = int(os.getenv("CATALOG_MIN_PRIVILEGE", "2"))
    admin_privilege_level: int = int(os.getenv("ADMIN_PRIVILEGE_LEVEL", "3"))

    # Auth tokens
    token_ttl_minutes: int = int(os.getenv("TOKEN_TTL_MINUTES", "10080"))  # 7 days
    auth_cookie_name: str = os.getenv("AUTH_COOKIE_NAME", "auth_token")

    # Application settings
    app_name: str = os.getenv("APP_NAME", "Library Lending Service")
    app_version: str = os.getenv("APP_VERSION", "1.0.0")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    debug: bool = os.getenv("DEBUG", "False").lower() in ("true", "1", "yes")


settings = Settings()
