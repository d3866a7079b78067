"""Best-effort email delivery of stored backups.

Delivery runs after the backup is already in the catalog.  Each
recipient is attempted independently; failures are logged and returned
as ``DeliveryFailure`` values, never raised, so a bad mail server can
not invalidate a stored backup.
"""

import asyncio
import logging

from itam_backup.adapters.base import DataAccess
from itam_backup.backup.models import BackupDocument
from itam_backup.delivery.archive import build_archive
from itam_backup.delivery.mailer import Mailer
from itam_backup.errors import DeliveryFailure

logger = logging.getLogger(__name__)

RECIPIENT_ROLES: frozenset[str] = frozenset({"admin", "department_officer"})


async def resolve_recipients(adapter: DataAccess) -> list[str]:
    """Emails of users holding an elevated role, deduplicated, in table order."""
    users = await adapter.read_all("users")
    emails: list[str] = []
    for user in users:
        email = user.get("email")
        if user.get("role") in RECIPIENT_ROLES and email and email not in emails:
            emails.append(email)
    return emails


class BackupDelivery:
    """Packages backups as zip archives and mails them.

    Args:
        mailer: Email transport.
        timeout: Per-recipient deadline in seconds.
    """

    def __init__(self, mailer: Mailer, timeout: float = 60.0) -> None:
        self._mailer = mailer
        self._timeout = timeout

    async def deliver(self, document: BackupDocument, recipients: list[str]) -> list[DeliveryFailure]:
        """Email ``document`` to every recipient.

        Returns:
            One ``DeliveryFailure`` per recipient that could not be reached.
            Empty when every send succeeded.
        """
        if not recipients:
            logger.info(f"No recipients for backup '{document.name}', skipping email")
            return []

        try:
            filename, payload = build_archive(document)
        except Exception as e:
            logger.warning(f"Could not package backup '{document.name}': {e!r}")
            return [DeliveryFailure(r, e) for r in recipients]

        subject = f"New System Backup Created - {document.name}"
        body = (
            "A new backup has been created and is attached as a ZIP file.\n\n"
            f"Description: {document.description or '-'}\n\n"
            f"Date: {document.timestamp}"
        )

        failures: list[DeliveryFailure] = []
        for recipient in recipients:
            try:
                await asyncio.wait_for(
                    self._mailer.send(recipient, subject, body, filename, payload),
                    timeout=self._timeout,
                )
            except Exception as e:
                failure = DeliveryFailure(recipient, e)
                logger.warning(str(failure))
                failures.append(failure)

        sent = len(recipients) - len(failures)
        logger.info(f"Backup '{document.name}' emailed to {sent}/{len(recipients)} recipient(s)")
        return failures
