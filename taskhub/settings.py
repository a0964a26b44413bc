import enum
from pathlib import Path
from tempfile import gettempdir
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict
from yarl import URL

TEMP_DIR = Path(gettempdir())


class LogLevel(str, enum.Enum):
    """Possible log levels."""

    NOTSET = "NOTSET"
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    FATAL = "FATAL"


class Settings(BaseSettings):
    """
    Application settings.

    These parameters can be configured
    with environment variables.
    """

    host: str = "127.0.0.1"
    port: int = 8000
    # quantity of workers for uvicorn
    workers_count: int = 1
    # Enable uvicorn reloading
    reload: bool = False

    # Current environment
    environment: str = "dev"

    log_level: LogLevel = LogLevel.INFO

    # Feature apps whose models.py is registered on the metadata
    app_names: List[str] = [
        "accounts",
        "admin",
        "buckets",
        "notifications",
        "task_manager",
    ]

    # Variables for the database
    db_host: str = "localhost"
    db_port: int = 5432
    db_user: str = "taskhub"
    db_pass: str = "taskhub"
    db_base: str = "taskhub"
    db_echo: bool = False

    # Variables for Redis
    redis_host: str = "taskhub-redis"
    redis_port: int = 6379
    redis_user: Optional[str] = None
    redis_pass: Optional[str] = None
    redis_base: Optional[int] = None
    # Pub/sub channel that carries real-time events between processes
    realtime_channel: str = "taskhub:realtime"

    # Variables for RabbitMQ
    rabbit_host: str = "taskhub-rmq"
    rabbit_port: int = 5672
    rabbit_user: str = "guest"
    rabbit_pass: str = "guest"
    rabbit_vhost: str = "/"

    # Sessions
    jwt_secret_key: str = "change-me-in-production"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 7 * 24 * 60
    impersonation_token_expire_minutes: int = 24 * 60
    cookie_name: str = "token"
    cookie_secure: bool = True
    cookie_samesite: str = "none"

    # Platform owner account, created by runners/init_super_admin.py
    super_admin_email: str = "superadmin@taskhub.io"
    super_admin_password: Optional[str] = None
    super_admin_name: str = "Super Admin"

    # Path to the Firebase service account json. Push is disabled without it.
    firebase_credentials_file: Optional[Path] = None

    upload_dir: Path = TEMP_DIR / "taskhub-uploads"
    max_attachment_bytes: int = 10 * 1024 * 1024

    overdue_sweep_cron: str = "0 * * * *"

    cors_origins: List[str] = ["http://localhost:5173"]

    # Grpc endpoint for opentelemetry.
    # E.G. http://localhost:4317
    opentelemetry_endpoint: Optional[str] = None

    @property
    def db_url(self) -> URL:
        """
        Assemble database URL from settings.

        :return: database URL.
        """
        return URL.build(
            scheme="postgresql+asyncpg",
            host=self.db_host,
            port=self.db_port,
            user=self.db_user,
            password=self.db_pass,
            path=f"/{self.db_base}",
        )

    @property
    def redis_url(self) -> URL:
        """
        Assemble REDIS URL from settings.

        :return: redis URL.
        """
        path = ""
        if self.redis_base is not None:
            path = f"/{self.redis_base}"
        return URL.build(
            scheme="redis",
            host=self.redis_host,
            port=self.redis_port,
            user=self.redis_user,
            password=self.redis_pass,
            path=path,
        )

    @property
    def rabbit_url(self) -> URL:
        """
        Assemble RabbitMQ URL from settings.

        :return: rabbit URL.
        """
        return URL.build(
            scheme="amqp",
            host=self.rabbit_host,
            port=self.rabbit_port,
            user=self.rabbit_user,
            password=self.rabbit_pass,
            path=self.rabbit_vhost,
        )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="TASKHUB_",
        env_file_encoding="utf-8",
    )


settings = Settings()
