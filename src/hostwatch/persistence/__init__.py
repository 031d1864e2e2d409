# Persistence Layer - per-day JSON snapshot logs and retention

from .retention import parse_date_folder, sweep_expired_folders
from .snapshot_store import SnapshotStore, load_snapshot_log, read_snapshot_log, write_snapshot_log

__all__ = [
    "SnapshotStore",
    "load_snapshot_log",
    "parse_date_folder",
    "read_snapshot_log",
    "sweep_expired_folders",
    "write_snapshot_log",
]
