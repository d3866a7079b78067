"""Pydantic models for the backup service configuration."""

from typing import Literal

from pydantic import BaseModel, Field


# ============================================================================
# File sections (itam-backup.toml)
# ============================================================================


class StorageConfig(BaseModel):
    """Where the tracked tables live."""

    provider: Literal["supabase", "postgres"] = "supabase"


class CatalogConfig(BaseModel):
    """Where backup documents are stored."""

    provider: Literal["local", "supabase"] = "local"
    directory: str = "backups"  # local only


class EmailConfig(BaseModel):
    """Backup email delivery."""

    enabled: bool = False
    sender_name: str = "IT Asset Management"


class SchedulerConfig(BaseModel):
    """Periodic sweep settings."""

    poll_interval: float = Field(default=60.0, gt=0)
    timezone: str = "UTC"
    schedules_file: str = "schedules.json"


class TimeoutConfig(BaseModel):
    """Per-step deadlines in seconds."""

    read: float = Field(default=60.0, gt=0)
    write: float = Field(default=120.0, gt=0)
    delivery: float = Field(default=60.0, gt=0)


# ============================================================================
# Environment
# ============================================================================


class Credentials(BaseModel):
    """Secrets injected through the environment, never read from the file."""

    supabase_url: str | None = None
    supabase_key: str | None = None
    database_url: str | None = None
    sendgrid_api_key: str | None = None
    sender_email: str | None = None
    sender_name: str | None = None


class BackupConfig(BaseModel):
    """Complete configuration: file sections plus environment credentials."""

    storage: StorageConfig = Field(default_factory=StorageConfig)
    catalog: CatalogConfig = Field(default_factory=CatalogConfig)
    email: EmailConfig = Field(default_factory=EmailConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    timeouts: TimeoutConfig = Field(default_factory=TimeoutConfig)
    credentials: Credentials = Field(default_factory=Credentials, exclude=True, repr=False)
