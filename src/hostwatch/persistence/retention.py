"""Retention sweep of date-named snapshot folders."""

from __future__ import annotations

import re
import shutil
from collections.abc import Iterable
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Optional

import structlog

from ..monitoring.models import SweepReport

logger = structlog.get_logger(__name__)

DATE_FOLDER_FORMAT = "%Y%m%d"
_DATE_FOLDER_RE = re.compile(r"[0-9]{8}")


def parse_date_folder(name: str) -> Optional[date]:
    """Parse a folder name strictly as YYYYMMDD; None if it does not conform."""
    if not _DATE_FOLDER_RE.fullmatch(name):
        return None
    try:
        return datetime.strptime(name, DATE_FOLDER_FORMAT).date()
    except ValueError:
        return None


def sweep_expired_folders(
    roots: Iterable[str | Path],
    retention_days: int,
    today: Optional[date] = None,
) -> SweepReport:
    """Delete date folders on or before today - retention_days.

    Folders whose names are not YYYYMMDD dates are never touched. A failed
    deletion is recorded and the sweep continues with the next folder.

    Args:
        roots: Folders whose immediate children are date folders
        retention_days: Retention window (>= 1)
        today: Reference date (default: local today)

    Raises:
        ValueError: If retention_days is below 1
    """
    if retention_days < 1:
        raise ValueError(f"retention_days must be at least 1, got {retention_days}")

    cutoff = (today or date.today()) - timedelta(days=retention_days)
    report = SweepReport()

    for root in roots:
        root_path = Path(root)
        if not root_path.is_dir():
            report.missing_roots.append(str(root_path))
            logger.warning("retention_root_missing", root=str(root_path))
            continue

        try:
            children = sorted(root_path.iterdir())
        except OSError as exc:
            report.failed.append((str(root_path), str(exc)))
            logger.warning("retention_root_unreadable", root=str(root_path), error=str(exc))
            continue

        for folder in children:
            if not folder.is_dir():
                continue
            folder_date = parse_date_folder(folder.name)
            if folder_date is None or folder_date > cutoff:
                continue
            try:
                shutil.rmtree(folder)
            except OSError as exc:
                report.failed.append((str(folder), str(exc)))
                logger.warning("retention_folder_delete_failed", folder=str(folder), error=str(exc))
                continue
            report.deleted.append(str(folder))
            logger.info("retention_folder_deleted", folder=str(folder), folder_date=folder_date.isoformat())

    return report
