"""Unit tests for the retention sweep."""

import shutil
from datetime import date
from unittest.mock import patch

import pytest

from src.hostwatch.persistence import retention as retention_module
from src.hostwatch.persistence.retention import parse_date_folder, sweep_expired_folders

TODAY = date(2024, 3, 15)


def _make_folders(root, names):
    for name in names:
        folder = root / name
        folder.mkdir(parents=True)
        (folder / "SM_10.0.0.5_x.json").write_text("{}", encoding="utf-8")


class TestParseDateFolder:
    @pytest.mark.parametrize(
        "name,expected",
        [
            ("20240315", date(2024, 3, 15)),
            ("20240229", date(2024, 2, 29)),
            ("20230229", None),  # not a leap year
            ("20241301", None),
            ("2024031", None),
            ("202403150", None),
            ("backup", None),
            ("2024-03-15", None),
            ("２０２４０３１５", None),  # full-width digits
        ],
    )
    def test_strict_yyyymmdd(self, name, expected):
        assert parse_date_folder(name) == expected


class TestSweep:
    def test_deletes_on_or_before_cutoff(self, tmp_path):
        # cutoff = 2024-03-15 - 60 days = 2024-01-15
        _make_folders(tmp_path, ["20240114", "20240115", "20240116", "20240315"])

        report = sweep_expired_folders([tmp_path], retention_days=60, today=TODAY)

        remaining = sorted(p.name for p in tmp_path.iterdir())
        assert remaining == ["20240116", "20240315"]
        assert sorted(report.deleted) == sorted(
            [str(tmp_path / "20240114"), str(tmp_path / "20240115")]
        )
        assert report.failed == []

    def test_non_date_folders_untouched(self, tmp_path):
        _make_folders(tmp_path, ["archive", "2019-01-01", "20191301", "19990101"])
        (tmp_path / "19980101").write_text("a file, not a folder", encoding="utf-8")

        report = sweep_expired_folders([tmp_path], retention_days=1, today=TODAY)

        assert report.deleted == [str(tmp_path / "19990101")]
        assert sorted(p.name for p in tmp_path.iterdir()) == [
            "19980101",
            "2019-01-01",
            "20191301",
            "archive",
        ]

    def test_multiple_roots(self, tmp_path):
        local = tmp_path / "local"
        shared = tmp_path / "shared"
        _make_folders(local, ["20230101", "20240315"])
        _make_folders(shared, ["20230101"])

        report = sweep_expired_folders([local, shared], retention_days=60, today=TODAY)

        assert len(report.deleted) == 2
        assert not (local / "20230101").exists()
        assert not (shared / "20230101").exists()
        assert (local / "20240315").exists()

    def test_missing_root_recorded(self, tmp_path):
        _make_folders(tmp_path / "local", ["20230101"])
        missing = tmp_path / "unreachable"

        report = sweep_expired_folders([missing, tmp_path / "local"], retention_days=60, today=TODAY)

        assert report.missing_roots == [str(missing)]
        assert report.deleted == [str(tmp_path / "local" / "20230101")]

    def test_delete_failure_recorded_and_sweep_continues(self, tmp_path):
        _make_folders(tmp_path, ["20230101", "20230102"])
        real_rmtree = shutil.rmtree

        def flaky_rmtree(path, *args, **kwargs):
            if path.name == "20230101":
                raise PermissionError("file in use")
            return real_rmtree(path, *args, **kwargs)

        with patch.object(retention_module.shutil, "rmtree", side_effect=flaky_rmtree):
            report = sweep_expired_folders([tmp_path], retention_days=60, today=TODAY)

        assert report.deleted == [str(tmp_path / "20230102")]
        assert len(report.failed) == 1
        folder, error = report.failed[0]
        assert folder == str(tmp_path / "20230101")
        assert "file in use" in error
        assert (tmp_path / "20230101").exists()

    def test_retention_below_one_rejected(self, tmp_path):
        with pytest.raises(ValueError, match="at least 1"):
            sweep_expired_folders([tmp_path], retention_days=0, today=TODAY)

    def test_defaults_to_local_today(self, tmp_path):
        _make_folders(tmp_path, ["20000101"])
        report = sweep_expired_folders([tmp_path], retention_days=1)
        assert report.deleted == [str(tmp_path / "20000101")]
