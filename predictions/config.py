from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # ================= MongoDB =================
    MONGO_URI: str
    MONGO_DB: str | None = None
    MONGO_COLLECTION: str = "predictions"
    MONGO_TIMEOUT_MS: int = 5000

    # ================= App host/port =================
    HOST: str = "0.0.0.0"
    PORT: int = 4000

    # ================= HTTP edge =================
    CORS_ORIGIN: str = "*"
    ADMIN_KEY: str | None = None
    RATE_LIMIT_MAX: int = 120
    RATE_LIMIT_WINDOW_SECONDS: int = 60
    MAX_BODY_BYTES: int = 10 * 1024

    # ================= Logging =================
    LOG_LEVEL: str = "INFO"

    @property
    def cors_origins(self) -> list[str]:
        origins = [o.strip() for o in self.CORS_ORIGIN.split(",") if o.strip()]
        return origins or ["*"]

    @property
    def admin_key(self) -> str | None:
        return self.ADMIN_KEY or None

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )


def get_settings(env_file: str = ".env") -> Settings:
    env_path = Path(env_file)
    if env_path.exists():
        return Settings(_env_file=env_path)
    return Settings(_env_file=None)
