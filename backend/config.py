from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


class Settings(BaseSettings):
    # App
    APP_ENV: str = "development"
    DEBUG: bool = True
    APP_NAME: str = "ON TIME"

    # MongoDB
    MONGO_URL: str = "mongodb://localhost:27017"
    DB_NAME: str = "OnTime"
    MONGO_TRANSACTIONS: bool = False      # nécessite un replica set
    STORE_TIMEOUT_SECONDS: float = 8.0

    # JWT
    JWT_SECRET: str = "changeme_minimum_32_chars_here_please"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 120

    # Tarification (EUR)
    PRICE_PER_KM:             float = 2.5
    PRICE_PER_MINUTE:         float = 0.5
    MIN_PRICE:                float = 15.0
    CURRENCY:                 str   = "EUR"
    AVERAGE_SPEED_KM_PER_MIN: float = 0.5   # 30 km/h en ville
    QUOTE_RATE_LIMIT:         str   = "30/minute"

    # Codes anonymes
    CODE_LENGTH:              int = 5
    CONFIRMATION_CODE_LENGTH: int = 6
    CODE_MAX_ATTEMPTS:        int = 10

    # Journal d'audit : "rolling32" (checksum historique) ou "hmac-sha256"
    AUDIT_CHECKSUM:    str           = "rolling32"
    AUDIT_HMAC_SECRET: Optional[str] = None   # JWT_SECRET si absent

    model_config = SettingsConfigDict(
        env_file=[".env", "../.env"],  # cherche dans backend/ puis dans la racine
        case_sensitive=True,
        extra="ignore",
    )


settings = Settings()
