"""Email delivery of backup archives.

Usage:
    from itam_backup.delivery import BackupDelivery, SendGridMailer, resolve_recipients
"""

from itam_backup.delivery.archive import build_archive
from itam_backup.delivery.delivery import BackupDelivery, resolve_recipients
from itam_backup.delivery.mailer import Mailer, SendGridMailer

__all__ = [
    "BackupDelivery",
    "Mailer",
    "SendGridMailer",
    "build_archive",
    "resolve_recipients",
]
