from dataclasses import dataclass
import os

from dotenv import load_dotenv

from imgbed.db.models import StorageType
from imgbed.errors import ConfigurationError


@dataclass(frozen=True)
class Settings:
    telegram_bot_token: str
    domain: str
    chat_ids: tuple[str, ...]
    storage_chat_id: str
    default_storage: StorageType = StorageType.OBJECT
    max_size_mb: int = 20
    db_path: str = "data/imgbed.db"
    s3_bucket: str | None = None
    s3_endpoint_url: str | None = None
    s3_access_key_id: str | None = None
    s3_secret_access_key: str | None = None
    s3_region: str | None = None
    host: str = "0.0.0.0"
    port: int = 8080
    webhook_path: str = "/webhook"
    set_webhook: bool = True

    @property
    def web_chat_id(self) -> str:
        """Uploads from the web form are attributed to the first configured chat."""
        return self.chat_ids[0]

    @property
    def max_size_bytes(self) -> int:
        return self.max_size_mb * 1024 * 1024

    @property
    def webhook_url(self) -> str:
        return f"https://{self.domain}{self.webhook_path}"

    def public_url(self, key: str) -> str:
        return f"https://{self.domain}/{key}"


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from None


def get_settings() -> Settings:
    load_dotenv()

    token = os.getenv("TELEGRAM_BOT_TOKEN")
    domain = os.getenv("DOMAIN")
    chat_ids = tuple(c.strip() for c in os.getenv("TG_CHAT_ID", "").split(",") if c.strip())
    if not token:
        raise ConfigurationError("TELEGRAM_BOT_TOKEN is not set in .env")
    if not domain:
        raise ConfigurationError("DOMAIN is not set in .env")
    if not chat_ids:
        raise ConfigurationError("TG_CHAT_ID is not set in .env")

    raw_storage = os.getenv("DEFAULT_STORAGE", StorageType.OBJECT.value)
    try:
        default_storage = StorageType.parse(raw_storage)
    except ValueError:
        raise ConfigurationError(f"DEFAULT_STORAGE must be 'object' or 'relay', got {raw_storage!r}") from None

    bucket = os.getenv("S3_BUCKET") or None
    if default_storage is StorageType.OBJECT and not bucket:
        raise ConfigurationError("DEFAULT_STORAGE=object requires S3_BUCKET")

    return Settings(
        telegram_bot_token=token,
        domain=domain.strip().rstrip("/"),
        chat_ids=chat_ids,
        storage_chat_id=os.getenv("TG_STORAGE_CHAT_ID") or chat_ids[0],
        default_storage=default_storage,
        max_size_mb=_int_env("MAX_SIZE_MB", 20),
        db_path=os.getenv("DB_PATH", "data/imgbed.db"),
        s3_bucket=bucket,
        s3_endpoint_url=os.getenv("S3_ENDPOINT_URL") or None,
        s3_access_key_id=os.getenv("S3_ACCESS_KEY_ID") or None,
        s3_secret_access_key=os.getenv("S3_SECRET_ACCESS_KEY") or None,
        s3_region=os.getenv("S3_REGION") or None,
        host=os.getenv("HOST", "0.0.0.0"),
        port=_int_env("PORT", 8080),
        set_webhook=os.getenv("SET_WEBHOOK", "true").lower() == "true",
    )
