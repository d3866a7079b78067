"""Zip packaging of backup documents for email delivery."""

import io
import re
import zipfile

from itam_backup.backup.models import BackupDocument

_UNSAFE_CHARS = re.compile(r'[\\/:*?"<>|]+')


def archive_basename(document: BackupDocument) -> str:
    """File-system safe base name derived from the backup name."""
    name = document.name or f"backup-{document.timestamp[:10]}"
    return _UNSAFE_CHARS.sub("-", name).strip() or "backup"


def build_archive(document: BackupDocument) -> tuple[str, bytes]:
    """Package ``document`` as a single-file zip.

    Returns:
        ``("<name>.zip", zip_bytes)`` where the archive contains
        ``<name>.json`` (pretty-printed wire format).
    """
    basename = archive_basename(document)
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        zf.writestr(f"{basename}.json", document.to_json(indent=2))
    return f"{basename}.zip", buffer.getvalue()
