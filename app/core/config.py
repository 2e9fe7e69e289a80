import json

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    DATABASE_URL: str

    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    BACKEND_CORS_ORIGINS: str = '["http://localhost:5173","http://localhost:3000"]'

    PROJECT_NAME: str = "FindIt API"
    DEBUG: bool = False

    # Chat limits
    MESSAGE_MAX_LENGTH: int = 2000
    NOTIFICATION_PAGE_DEFAULT: int = 20
    NOTIFICATION_PAGE_MAX: int = 100

    # Fixed service-account token (automation bots); never expires
    BOT_ACCESS_TOKEN: str = ""
    BOT_USER_ID: str = ""
    BOT_ROLE: str = "admin"

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"

    @property
    def cors_origins(self) -> list[str]:
        if isinstance(self.BACKEND_CORS_ORIGINS, str):
            try:
                parsed: list[str] = json.loads(self.BACKEND_CORS_ORIGINS)
                return parsed
            except json.JSONDecodeError:
                return ["http://localhost:5173"]
        return self.BACKEND_CORS_ORIGINS


settings = Settings()
