from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    """
    Конфигурация приложения.
    Значения читаются из переменных окружения и файла .env (имена без учета регистра),
    у всех полей есть значения для локальной разработки.
    """
    database_url: str = "sqlite:///./moderation.db"

    app_title: str = "Marketplace Moderation API"
    app_version: str = "1.0.0"

    # JWT
    secret_key: str = "change-me"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60

    log_level: str = "INFO"

    # Самая длинная срочная блокировка; дольше только бессрочная
    max_block_days: int = 3650

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

settings = Settings()
