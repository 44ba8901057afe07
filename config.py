import os
from dataclasses import dataclass
from pathlib import Path


# Discord snowflakes are unsigned 64-bit
U64_MAX = 2**64 - 1


class ConfigError(RuntimeError):
    pass


@dataclass(frozen=True)
class Settings:
    discord_token:   str
    application_id:  int
    guild_id:        int
    s3_access_key:   str
    s3_secret_key:   str
    s3_region:       str
    s3_endpoint:     str
    s3_bucket_name:  str
    db_dir:          Path  = Path("db")
    backup_dir:      Path  = Path(".")
    backup_interval: float = 4.0
    log_level:       str   = "INFO"


# ─── Helpers ──────────────────────────────────────────────────────────────────

def _required(env, name: str, label: str) -> str:
    value = (env.get(name) or "").strip()
    if not value:
        raise ConfigError(f"{label} was not set in the environment ({name})")
    return value


def _unsigned(env, name: str, label: str) -> int:
    raw = _required(env, name, label)
    if not raw.isascii() or not raw.isdigit():
        raise ConfigError(f"{label} was not a valid unsigned integer ({name}={raw!r})")
    value = int(raw)
    if value > U64_MAX:
        raise ConfigError(f"{label} does not fit in 64 bits ({name}={raw!r})")
    return value


def _hours(env, name: str, default: float) -> float:
    raw = (env.get(name) or "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number of hours, got {raw!r}") from None
    if value <= 0:
        raise ConfigError(f"{name} must be positive, got {raw!r}")
    return value


def load_settings(env=None) -> Settings:
    env = os.environ if env is None else env

    token = _required(env, "DISCORD_TOKEN", "discord token")
    # People paste "Bot <token>" from the developer portal
    if token.lower().startswith("bot "):
        token = token.split(" ", 1)[1].strip()

    return Settings(
        discord_token   = token,
        application_id  = _unsigned(env, "APPLICATION_ID", "application id"),
        guild_id        = _unsigned(env, "GUILD_ID", "guild id"),
        s3_access_key   = _required(env, "S3_ACCESS_KEY", "s3 access key"),
        s3_secret_key   = _required(env, "S3_SECRET_KEY", "s3 secret key"),
        s3_region       = _required(env, "S3_REGION", "s3 region"),
        s3_endpoint     = _required(env, "S3_ENDPOINT", "s3 endpoint"),
        s3_bucket_name  = _required(env, "S3_BUCKET_NAME", "s3 bucket name"),
        db_dir          = Path(env.get("DB_DIR") or "db"),
        backup_dir      = Path(env.get("BACKUP_DIR") or "."),
        backup_interval = _hours(env, "BACKUP_INTERVAL_HOURS", 4.0),
        log_level       = (env.get("LOG_LEVEL") or "INFO").strip().upper(),
    )
