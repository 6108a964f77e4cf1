import os
from dataclasses import dataclass

MIN_ALLOWED_GROUP_SIZE = 2


def _default_database_url() -> str:
    if os.getenv("VERCEL") == "1":
        # Vercel filesystem is ephemeral; /tmp is writable during invocation lifecycle.
        return "sqlite:////tmp/powerlunch.db"
    return "sqlite:///./powerlunch.db"


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() == "true"


@dataclass(frozen=True)
class Settings:
    database_url: str
    admin_api_key: str = ""
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-20250514"
    oracle_max_tokens: int = 4096
    oracle_timeout_seconds: float = 120.0
    fcm_project_id: str = ""
    fcm_access_token: str = ""
    fcm_service_account_file: str = ""
    fcm_base_url: str = "https://fcm.googleapis.com"
    push_timeout_seconds: float = 10.0
    min_group_size: int = 3
    max_group_size: int = 6
    app_env: str = "development"
    allowed_hosts: tuple[str, ...] = ("*",)
    force_https: bool = False
    log_level: str = "INFO"

    @property
    def is_production(self) -> bool:
        return self.app_env in {"prod", "production"}


def load_settings() -> Settings:
    allowed_hosts = tuple(h.strip() for h in os.getenv("ALLOWED_HOSTS", "*").split(",") if h.strip())
    return Settings(
        database_url=os.getenv("DATABASE_URL", _default_database_url()),
        admin_api_key=os.getenv("ADMIN_API_KEY", "").strip(),
        anthropic_api_key=os.getenv("ANTHROPIC_API_KEY", "").strip(),
        anthropic_model=os.getenv("ANTHROPIC_MODEL", "claude-sonnet-4-20250514"),
        oracle_max_tokens=int(os.getenv("ORACLE_MAX_TOKENS", "4096")),
        oracle_timeout_seconds=float(os.getenv("ORACLE_TIMEOUT_SECONDS", "120")),
        fcm_project_id=os.getenv("FCM_PROJECT_ID", "").strip(),
        fcm_access_token=os.getenv("FCM_ACCESS_TOKEN", "").strip(),
        fcm_service_account_file=os.getenv(
            "FCM_SERVICE_ACCOUNT_FILE", os.getenv("GOOGLE_APPLICATION_CREDENTIALS", "")
        ).strip(),
        fcm_base_url=os.getenv("FCM_BASE_URL", "https://fcm.googleapis.com").rstrip("/"),
        push_timeout_seconds=float(os.getenv("PUSH_TIMEOUT_SECONDS", "10")),
        min_group_size=int(os.getenv("MIN_GROUP_SIZE", "3")),
        max_group_size=int(os.getenv("MAX_GROUP_SIZE", "6")),
        app_env=os.getenv("APP_ENV", "development").lower(),
        allowed_hosts=allowed_hosts or ("*",),
        force_https=_env_bool("FORCE_HTTPS"),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )


def check_group_sizes(settings: Settings):
    if min(settings.min_group_size, settings.max_group_size) < MIN_ALLOWED_GROUP_SIZE:
        raise RuntimeError(
            f"MIN_GROUP_SIZE and MAX_GROUP_SIZE must be at least {MIN_ALLOWED_GROUP_SIZE}"
        )
    if settings.min_group_size > settings.max_group_size:
        raise RuntimeError(
            f"MIN_GROUP_SIZE ({settings.min_group_size}) must not exceed MAX_GROUP_SIZE ({settings.max_group_size})"
        )
