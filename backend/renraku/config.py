from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    DATABASE_URL: str
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    SESSION_EXPIRE_HOURS: int = 24
    CORS_ORIGINS: list[str] = ["http://localhost:3000"]
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Messages: the composer caps input at the same length client-side
    MESSAGE_MAX_LENGTH: int = 1000
    MESSAGE_PAGE_DEFAULT: int = 50
    MESSAGE_PAGE_MAX: int = 100

    # Re-creating an individual room for the same pair of users:
    #   "create": always make a new room
    #   "reuse" : return the existing live room
    INDIVIDUAL_ROOM_POLICY: str = "create"

    # Realtime channel: seconds a fresh socket has to send its auth frame
    WS_AUTH_TIMEOUT_SECONDS: float = 10.0

    # Enrollment codes issued from the admin API
    ENROLLMENT_CODE_TTL_HOURS: int = 72

    # Web Push (VAPID): delivery happens elsewhere; we only hand out the key
    VAPID_PUBLIC_KEY: str = ""

    # First admin account, created at startup when both are set
    BOOTSTRAP_ADMIN_USERNAME: str = ""
    BOOTSTRAP_ADMIN_PASSWORD: str = ""

    model_config = {"env_file": ".env"}


settings = Settings()
