import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

load_dotenv()

PACKAGE_DIR = os.path.dirname(os.path.abspath(__file__))
PROJECT_DIR = os.path.dirname(PACKAGE_DIR)


def _split_csv(value: str) -> tuple[str, ...]:
    return tuple(part.strip() for part in value.split(",") if part.strip())


@dataclass(frozen=True)
class Settings:
    database_url: str = os.getenv("TUTOR_DATABASE_URL", f"sqlite:///{os.path.join(PROJECT_DIR, 'tutor_center.db')}")
    jwt_secret: str = os.getenv("TUTOR_JWT_SECRET", os.getenv("JWT_SECRET", "change-me-in-production"))
    jwt_algorithm: str = os.getenv("TUTOR_JWT_ALGORITHM", "HS256")
    jwt_exp_minutes: int = int(os.getenv("TUTOR_JWT_EXP_MINUTES", "60"))
    bcrypt_rounds: int = int(os.getenv("TUTOR_BCRYPT_ROUNDS", "12"))
    upload_dir: str = os.getenv("TUTOR_UPLOAD_DIR", os.path.join(PROJECT_DIR, "storage"))
    log_level: str = os.getenv("TUTOR_LOG_LEVEL", "INFO").upper()
    cors_origins: tuple[str, ...] = field(
        default_factory=lambda: _split_csv(os.getenv("TUTOR_CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000"))
    )
    super_admin_email: str = os.getenv("SUPER_ADMIN_EMAIL", "")
    super_admin_password: str = os.getenv("SUPER_ADMIN_PASSWORD", "")
    host: str = os.getenv("BACKEND_HOST", "127.0.0.1")
    port: int = int(os.getenv("BACKEND_PORT", "8000"))
    reload: bool = os.getenv("BACKEND_RELOAD", "false").lower() == "true"


settings = Settings()
