"""HomePair Server Configuration."""

import secrets
from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Server
    server_name: str = "HomePair"
    host: str = "0.0.0.0"
    port: int = 8099
    debug: bool = False
    log_level: str = "INFO"

    # Paths
    data_dir: Path = Path.home() / "homepair" / "data"

    # Database
    db_path: Path = Path.home() / "homepair" / "data" / "homepair.db"

    # JWT
    jwt_secret: str = ""
    jwt_algorithm: str = "HS256"
    jwt_issuer: str = "homepair-backend"
    jwt_audience: str = "homepair-client"
    admin_token_expire_minutes: int = 1440  # 24 hours
    client_token_expire_days: int = 3650  # 10 years

    # Admin account
    admin_username: str = "admin"
    admin_password: str = ""

    # Pairing
    pin_expire_seconds: int = 300  # 5 minutes
    pairing_verified_expire_seconds: int = 600  # admin must approve within 10 minutes
    pairing_retention_seconds: int = 86400  # keep terminal sessions for a day
    pin_max_attempts: int = 5
    pin_attempt_window_seconds: int = 600

    # Background sweep
    sweep_interval_seconds: int = 300

    # Realtime notifications
    notify_send_timeout_seconds: float = 2.0
    disconnect_grace_seconds: float = 0.5
    recently_used_window_seconds: int = 86400

    model_config = {"env_prefix": "HOMEPAIR_"}

    def ensure_dirs(self) -> None:
        """Create all required directories."""
        for d in [self.data_dir, self.db_path.parent]:
            d.mkdir(parents=True, exist_ok=True)

    def ensure_secrets(self) -> None:
        """Generate secrets if not set, persist to file so they survive restarts."""
        secrets_file = self.data_dir / ".secrets"
        saved = {}
        if secrets_file.exists():
            for line in secrets_file.read_text().strip().splitlines():
                if "=" in line:
                    k, v = line.split("=", 1)
                    saved[k.strip()] = v.strip()

        if not self.jwt_secret:
            self.jwt_secret = saved.get("jwt_secret", "") or secrets.token_urlsafe(32)
        if not self.admin_password:
            self.admin_password = saved.get("admin_password", "") or secrets.token_urlsafe(12)

        # Persist for next restart
        secrets_file.write_text(
            f"jwt_secret={self.jwt_secret}\nadmin_password={self.admin_password}\n"
        )
        secrets_file.chmod(0o600)


settings = Settings()
settings.ensure_dirs()
settings.ensure_secrets()
