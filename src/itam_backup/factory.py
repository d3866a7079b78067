"""Service factory.

Builds the data access adapter, catalog, delivery and schedule store
from a ``BackupConfig`` and wires them into a ``BackupService``.
"""

from pathlib import Path

from itam_backup.adapters.base import DataAccess
from itam_backup.adapters.postgres import AsyncPostgresAdapter
from itam_backup.catalog.base import BackupCatalog
from itam_backup.catalog.local import LocalCatalog
from itam_backup.config.models import BackupConfig
from itam_backup.delivery.delivery import BackupDelivery
from itam_backup.delivery.mailer import SendGridMailer
from itam_backup.schedule.store import FileScheduleStore
from itam_backup.service import BackupService


class ConfigurationError(Exception):
    """Raised when required credentials or settings are missing."""

    pass


def get_adapter(config: BackupConfig) -> DataAccess:
    """Create the data access adapter for ``config.storage.provider``.

    Raises:
        ConfigurationError: If the provider's credentials are not set.
    """
    creds = config.credentials

    if config.storage.provider == "postgres":
        if not creds.database_url:
            raise ConfigurationError("DATABASE_URL is required for the postgres provider")
        return AsyncPostgresAdapter(creds.database_url)

    if not creds.supabase_url or not creds.supabase_key:
        raise ConfigurationError(
            "SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY are required for the supabase provider"
        )
    try:
        from itam_backup.adapters.supabase import AsyncSupabaseAdapter
    except ImportError as e:
        raise ConfigurationError(
            "Supabase provider requires the 'supabase' extra: pip install itam-backup[supabase]"
        ) from e
    return AsyncSupabaseAdapter(url=creds.supabase_url, key=creds.supabase_key)


def get_catalog(config: BackupConfig, adapter: DataAccess) -> BackupCatalog:
    """Create the backup catalog.

    The Supabase catalog shares the Supabase adapter's client, so it
    requires ``storage.provider = "supabase"``.
    """
    if config.catalog.provider == "local":
        return LocalCatalog(Path(config.catalog.directory))

    try:
        from itam_backup.adapters.supabase import AsyncSupabaseAdapter
        from itam_backup.catalog.supabase import SupabaseCatalog
    except ImportError as e:
        raise ConfigurationError(
            "Supabase catalog requires the 'supabase' extra: pip install itam-backup[supabase]"
        ) from e
    if not isinstance(adapter, AsyncSupabaseAdapter):
        raise ConfigurationError('catalog.provider = "supabase" requires storage.provider = "supabase"')
    return SupabaseCatalog(adapter)


def get_delivery(config: BackupConfig) -> BackupDelivery | None:
    """Create email delivery, or ``None`` when disabled."""
    if not config.email.enabled:
        return None

    creds = config.credentials
    if not creds.sendgrid_api_key or not creds.sender_email:
        raise ConfigurationError("SENDGRID_API_KEY and SENDER_EMAIL are required when email is enabled")
    mailer = SendGridMailer(
        creds.sendgrid_api_key,
        sender_email=creds.sender_email,
        sender_name=creds.sender_name or config.email.sender_name,
        timeout=config.timeouts.delivery,
    )
    return BackupDelivery(mailer, timeout=config.timeouts.delivery)


def build_service(config: BackupConfig) -> BackupService:
    """Wire a ``BackupService`` from configuration.

    Example:
        >>> service = build_service(load_config())
        >>> records = await service.list_backups()
    """
    adapter = get_adapter(config)
    return BackupService(
        adapter,
        catalog=get_catalog(config, adapter),
        schedule_store=FileScheduleStore(Path(config.scheduler.schedules_file)),
        delivery=get_delivery(config),
        read_timeout=config.timeouts.read,
        write_timeout=config.timeouts.write,
        timezone_name=config.scheduler.timezone,
    )
