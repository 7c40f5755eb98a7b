from pydantic_settings import BaseSettings
from typing import Optional
from pathlib import Path

# Get the backend directory (parent of circulation package)
BACKEND_DIR = Path(__file__).parent.parent
ENV_FILE = BACKEND_DIR / ".env"

class Settings(BaseSettings):
    # Server settings
    host: str = "0.0.0.0"
    port: int = 3000

    # Database settings - database_url wins when set (e.g. sqlite for tests)
    database_url: Optional[str] = None
    db_host: str = "localhost"
    db_port: int = 5432
    db_name: str = "library"
    db_user: str = "library"
    db_password: str = ""
    db_ssl_mode: str = "prefer"  # Options: disable, allow, prefer, require, verify-ca, verify-full

    # JWT settings
    jwt_secret_key: str  # Required from .env (confidential - no default)
    jwt_algorithm: str = "HS256"
    jwt_access_token_expire_minutes: int = 1440

    # MQTT settings for borrow/return event notifications
    mqtt_enabled: bool = True
    mqtt_broker: str = "localhost"
    mqtt_port: int = 1883
    mqtt_username: Optional[str] = None
    mqtt_password: Optional[str] = None
    mqtt_use_tls: bool = False
    mqtt_tls_insecure: bool = False
    mqtt_ca_cert: Optional[str] = None
    mqtt_event_topic_format: str = "library/cards/{library_card_id}/events"

    # Local calendar used to decide "today" for due dates and fines
    library_timezone: str = "Asia/Ho_Chi_Minh"

    # Circulation defaults, used when system_setting rows are missing or unparsable
    default_fine_rate_percent: int = 5
    default_max_borrow_days: int = 14
    default_max_books_per_user: int = 5
    default_min_deposit_amount: int = 200000

    class Config:
        env_file = str(ENV_FILE) if ENV_FILE.exists() else ".env"
        case_sensitive = False

settings = Settings()
