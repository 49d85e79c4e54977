"""Central configuration loaded from environment variables."""
import os

from dotenv import load_dotenv

from provisioning.credentials import PasswordPolicy
from provisioning.secret_store import app_secret_name, db_secret_name

load_dotenv()

VALID_ENVIRONMENTS = ("staging", "production")

_TRUTHY = {"1", "true", "yes", "on"}


def _bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in _TRUTHY


def _int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def _list(name: str) -> list[str]:
    return [item.strip() for item in os.getenv(name, "").split(",") if item.strip()]


class Config:
    """Snapshot of the environment taken when the object is created."""

    def __init__(self) -> None:
        # Deployment target
        self.APP_ENV: str = os.getenv("APP_ENV", "staging").strip().lower()
        self.PROJECT_NAME: str = os.getenv("PROJECT_NAME", "diese")
        self.AWS_ACCOUNT: str | None = os.getenv("CDK_DEFAULT_ACCOUNT", os.getenv("AWS_ACCOUNT_ID"))
        self.AWS_REGION: str = os.getenv(
            "CDK_DEFAULT_REGION", os.getenv("AWS_DEFAULT_REGION", "ca-central-1")
        )
        self.AWS_ENDPOINT_URL: str | None = os.getenv("AWS_ENDPOINT_URL", "") or None  # None = real AWS

        # Database
        self.MAIN_DB_RESOURCE_NAME: str = os.getenv("MAIN_DB_RESOURCE_NAME", "diesedb")
        self.MAIN_DB_USERNAME: str = os.getenv("MAIN_DB_USERNAME", "diese_admin")
        self.DB_PORT: int = _int("DB_PORT", 5432)
        self.ROTATE_DB_CREDENTIALS: bool = _bool("ROTATE_DB_CREDENTIALS")
        self.DB_PASSWORD_LENGTH: int = _int("DB_PASSWORD_LENGTH", 64)

        # ECS service sizing
        self.ECS_CPU: int = _int("ECS_CPU", 256)
        self.ECS_MEMORY: int = _int("ECS_MEMORY", 512)
        self.ECS_CPU_TARGET: int = _int("ECS_CPU_TARGET", 204)          # ~80% of task CPU
        self.ECS_MEMORY_TARGET: int = _int("ECS_MEMORY_TARGET", 409)    # ~80% of task memory
        self.ECS_MIN_CONTAINERS: int = _int("ECS_MIN_CONTAINERS", 1)
        self.ECS_MAX_CONTAINERS: int = _int("ECS_MAX_CONTAINERS", 4)
        self.ECS_SCALE_IN_COOLDOWN: int = _int("ECS_SCALE_IN_COOLDOWN", 300)
        self.ECS_SCALE_OUT_COOLDOWN: int = _int("ECS_SCALE_OUT_COOLDOWN", 60)
        self.AUTHORIZED_DOMAINS: list[str] = _list("AUTHORIZED_DOMAINS")
        self.IMAGE_TAG: str = os.getenv("CDK_IMAGE_TAG", "latest")

        self.LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

    # ── Derived values ────────────────────────────────────────────────────────

    @property
    def is_production(self) -> bool:
        return self.APP_ENV == "production"

    @property
    def resource_prefix(self) -> str:
        return f"{self.PROJECT_NAME.capitalize()}-{self.APP_ENV.capitalize()}"

    @property
    def db_secret_name(self) -> str:
        return db_secret_name(self.APP_ENV, self.MAIN_DB_RESOURCE_NAME)

    @property
    def app_secret_name(self) -> str:
        return app_secret_name(self.APP_ENV)

    @property
    def password_policy(self) -> PasswordPolicy:
        return PasswordPolicy(length=self.DB_PASSWORD_LENGTH)

    def validate(self) -> None:
        if self.APP_ENV not in VALID_ENVIRONMENTS:
            raise ValueError(
                f"Invalid environment: {self.APP_ENV!r}. "
                f"Set APP_ENV to one of: {', '.join(VALID_ENVIRONMENTS)}."
            )
        if not self.MAIN_DB_RESOURCE_NAME or not self.MAIN_DB_USERNAME:
            raise ValueError("MAIN_DB_RESOURCE_NAME and MAIN_DB_USERNAME are required.")

        for name in ("DB_PORT", "DB_PASSWORD_LENGTH", "ECS_CPU", "ECS_MEMORY",
                     "ECS_CPU_TARGET", "ECS_MEMORY_TARGET", "ECS_MAX_CONTAINERS"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)}")

        if self.ECS_MIN_CONTAINERS < 0 or self.ECS_MIN_CONTAINERS > self.ECS_MAX_CONTAINERS:
            raise ValueError(
                f"ECS_MIN_CONTAINERS ({self.ECS_MIN_CONTAINERS}) must be between 0 "
                f"and ECS_MAX_CONTAINERS ({self.ECS_MAX_CONTAINERS})."
            )


config = Config()
