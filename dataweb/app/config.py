from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    SECRET_KEY: str = Field(validation_alias=AliasChoices("SECRET_KEY", "JWT_SECRET"))
    DATABASE_URL: str = "sqlite:///./dataweb.db"
    AUTO_CREATE_TABLES: bool = True
    ACCESS_TOKEN_EXPIRE_HOURS: int = 24
    BCRYPT_ROUNDS: int = 10

    UPLOAD_DIR: str = "uploads"
    MAX_UPLOAD_SIZE: int = 10 * 1024 * 1024  # 10 MB

    ANALYSIS_SERVICE_URL: str = Field(
        default="http://localhost:5000",
        validation_alias=AliasChoices("ANALYSIS_SERVICE_URL", "PYTHON_SERVICE_URL"),
    )
    ANALYSIS_TIMEOUT_SECONDS: float = 10.0
    HEALTH_PROBE_TIMEOUT_SECONDS: float = 3.0

    MAX_QUESTION_LENGTH: int = 500
    HISTORY_LIMIT: int = 5

    AUTH_RATE_LIMIT: int = 5
    CHAT_RATE_LIMIT: int = 10
    RATE_LIMIT_WINDOW_SECONDS: int = 60

    CORS_ORIGINS: list[str] = ["http://localhost:3000"]
    LOG_LEVEL: str = "INFO"

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @field_validator("SECRET_KEY")
    @classmethod
    def _secret_must_be_set(cls, value: str) -> str:
        # Blank secret aborts startup
        if not value or not value.strip():
            raise ValueError("SECRET_KEY (or JWT_SECRET) must be set")
        return value


settings = Settings()
