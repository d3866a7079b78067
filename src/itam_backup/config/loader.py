"""Configuration loading: TOML file sections plus environment credentials.

Usage:
    from itam_backup.config.loader import load_config

    config = load_config()                       # ./itam-backup.toml or defaults
    config = load_config("ops/itam-backup.toml", env_prefix="ITAM_")
"""

import os
import tomllib
from pathlib import Path

from pydantic import ValidationError

from itam_backup.config.models import BackupConfig, Credentials

DEFAULT_CONFIG_FILE = "itam-backup.toml"
CONFIG_PATH_ENV = "ITAM_BACKUP_CONFIG"

# Credential field -> environment variable names, first match wins.
CREDENTIAL_ENV_VARS: dict[str, tuple[str, ...]] = {
    "supabase_url": ("SUPABASE_URL",),
    "supabase_key": ("SUPABASE_SERVICE_ROLE_KEY", "SUPABASE_KEY"),
    "database_url": ("DATABASE_URL",),
    "sendgrid_api_key": ("SENDGRID_API_KEY",),
    "sender_email": ("SENDER_EMAIL",),
    "sender_name": ("SENDER_NAME",),
}


def load_credentials(env_prefix: str = "") -> Credentials:
    """Read credentials from ``os.environ``.

    Args:
        env_prefix: Prepended to every variable name (``"ITAM_"`` reads
            ``ITAM_SUPABASE_URL``).
    """
    values: dict[str, str] = {}
    for field, names in CREDENTIAL_ENV_VARS.items():
        for name in names:
            value = os.environ.get(f"{env_prefix}{name}")
            if value:
                values[field] = value
                break
    return Credentials(**values)


def load_config(config_path: str | Path | None = None, env_prefix: str = "") -> BackupConfig:
    """Load configuration from TOML and the environment.

    Resolution of the file: ``config_path`` argument, then the
    ``ITAM_BACKUP_CONFIG`` variable, then ``./itam-backup.toml``.  When no
    file was requested explicitly and the default file does not exist,
    built-in defaults are used.

    Raises:
        FileNotFoundError: An explicitly requested file does not exist.
        ValueError: The file is not valid TOML or has invalid values.
    """
    explicit = config_path or os.environ.get(f"{env_prefix}{CONFIG_PATH_ENV}")
    path = Path(explicit) if explicit else Path.cwd() / DEFAULT_CONFIG_FILE

    data: dict = {}
    if path.exists():
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ValueError(f"Invalid config file {path}: {e}") from e
    elif explicit:
        raise FileNotFoundError(
            f"Backup config not found: {path}\n"
            f"Copy itam-backup.toml.example to {DEFAULT_CONFIG_FILE} and adjust it."
        )

    try:
        config = BackupConfig.model_validate(data)
    except ValidationError as e:
        raise ValueError(f"Invalid config file {path}: {e}") from e

    return config.model_copy(update={"credentials": load_credentials(env_prefix)})
