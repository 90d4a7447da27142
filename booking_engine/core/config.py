from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    PROJECT_NAME: str = "Marketplace Booking Engine"
    API_V1_STR: str = "/api"

    # Server
    PORT: int = 8000
    ENVIRONMENT: str = "development"

    # Security
    SECRET_KEY: str = ""

    # Supabase
    SUPABASE_URL: str = ""
    SUPABASE_KEY: str = ""

    # Stripe
    STRIPE_API_KEY: str = ""

    # Scheduling
    BOOKING_TIMEZONE: str = "UTC"
    SLOT_GRANULARITY_MINUTES: int = 30
    DEFAULT_DURATION_MINUTES: int = 60
    DEFAULT_AVAILABILITY_START: str = "09:00"
    DEFAULT_AVAILABILITY_END: str = "18:00"
    BOOKING_BUFFER_MINUTES: int = 0

    # Alternative slot search
    ALTERNATIVE_SEARCH_DAYS: int = 7
    MAX_ALTERNATIVES: int = 5
    ALTERNATIVE_TIME_BUDGET_SECONDS: float = 5.0

    # Logging
    LOG_LEVEL: str = "INFO"
    ERROR_LOG_PATH: str = "logs/errors.log"

    # Notifications
    SMTP_SERVER: str = "smtp.gmail.com"
    SMTP_PORT: int = 587
    SMTP_USERNAME: str = ""
    SMTP_PASSWORD: str = ""

    MARKETPLACE_CONFIG_PATH: str = ""

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"

settings = Settings()
