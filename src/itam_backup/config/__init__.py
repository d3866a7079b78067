"""Configuration management: TOML sections, environment credentials.

Usage:
    >>> from itam_backup.config import load_config, BackupConfig
"""

from itam_backup.config.loader import load_config, load_credentials
from itam_backup.config.models import BackupConfig, Credentials

__all__ = ["load_config", "load_credentials", "BackupConfig", "Credentials"]
